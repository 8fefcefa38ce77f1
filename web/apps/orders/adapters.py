"""In-process adapters for the orders domain ports.

``InventoryStub`` implements ``InventoryPort`` without any network calls and
is wired when ``settings.USE_HTTP_ADAPTERS`` is off (tests, local
development). One instance lives per process, so reservations made by one
request are seen by the next. ``CouponAdapter`` bridges the coupons app into
``CouponPort``.
"""

import threading
from decimal import Decimal
from typing import Dict, List, Optional

from .domain import AppliedCoupon, InventoryPort, LineItem, OrderError


def _merged(items: List[LineItem]) -> Dict[str, int]:
    wanted: Dict[str, int] = {}
    for it in items:
        pid = str(it.product_id)
        wanted[pid] = wanted.get(pid, 0) + it.quantity
    return wanted


class InventoryStub(InventoryPort):
    """Deterministic in-memory inventory.

    Every product starts with ``default_stock`` units unless ``stock`` says
    otherwise. Reservations are all-or-nothing and counters never go below
    zero, mirroring the inventory service.
    """

    def __init__(self, stock: Optional[Dict[str, int]] = None, default_stock: int = 10):
        self.default_stock = default_stock
        self.stock: Dict[str, int] = {str(k): v for k, v in (stock or {}).items()}
        self.reserved: Dict[str, int] = {}
        self._lock = threading.Lock()

    def on_hand(self, product_id) -> int:
        return self.stock.get(str(product_id), self.default_stock)

    def available(self, product_id) -> int:
        return self.on_hand(product_id) - self.reserved.get(str(product_id), 0)

    def set_stock(self, product_id, quantity: int) -> None:
        with self._lock:
            self.stock[str(product_id)] = quantity

    def reserve(self, items: List[LineItem]) -> bool:
        wanted = _merged(items)
        with self._lock:
            if any(qty > self.available(pid) for pid, qty in wanted.items()):
                return False
            for pid, qty in wanted.items():
                self.reserved[pid] = self.reserved.get(pid, 0) + qty
            return True

    def release(self, items: List[LineItem]) -> None:
        with self._lock:
            for pid, qty in _merged(items).items():
                self.reserved[pid] = max(0, self.reserved.get(pid, 0) - qty)

    def confirm(self, items: List[LineItem]) -> None:
        with self._lock:
            for pid, qty in _merged(items).items():
                self.stock[pid] = max(0, self.on_hand(pid) - qty)
                self.reserved[pid] = max(0, self.reserved.get(pid, 0) - qty)

    def deduct(self, items: List[LineItem]) -> None:
        with self._lock:
            for pid, qty in _merged(items).items():
                self.stock[pid] = max(0, self.on_hand(pid) - qty)

    def reset(self) -> None:
        """Drop every reservation and stock override."""
        with self._lock:
            self.stock.clear()
            self.reserved.clear()


class CouponAdapter:
    """``CouponPort`` backed by ``apps.coupons.service.CouponService``."""

    def __init__(self, service):
        self.service = service

    def apply(self, code: str, user_id: Optional[str], subtotal: Decimal, product_ids: List[str]) -> AppliedCoupon:
        result = self.service.validate(code, user_id, subtotal, product_ids)
        if not result.is_valid:
            raise OrderError("INVALID_COUPON", result.error)
        return AppliedCoupon(coupon_id=result.coupon.id, code=result.coupon.code, discount=result.discount)

    def record_usage(self, user_id: str, coupon_id: int) -> None:
        self.service.record_usage(user_id, coupon_id)
