"""SQLAlchemy repository for product inventory counters.

Each product has a ``stock_quantity`` (units on hand) and a
``reserved_quantity`` (units held for unconfirmed orders). ``available``
is their difference and never goes below zero: a reservation is a single
conditional UPDATE, so two concurrent requests cannot both take the last
unit.

The database is configured with ``DATABASE_URL``; without it the service
connects to the ``inventory-db`` PostgreSQL container using the
``DB_*`` variables.
"""

import os
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import DateTime, Integer, String, case, create_engine, select, update
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DEFAULT_REORDER_POINT = 5

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)


class Base(DeclarativeBase):
    pass


class InventoryItem(Base):
    """Stock counters for one product.

    Attributes:
        product_id: Catalog product id (UUID as text).
        stock_quantity: Physical units on hand.
        reserved_quantity: Units allocated to orders not yet shipped.
        reorder_point: Low-stock alert threshold on available units.
        last_restocked: When stock was last overwritten by an admin.
    """

    __tablename__ = "inventory_items"
    product_id = mapped_column(String(64), primary_key=True)
    stock_quantity = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity = mapped_column(Integer, nullable=False, default=0)
    reorder_point = mapped_column(Integer, nullable=False, default=DEFAULT_REORDER_POINT)
    last_restocked = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def available(self) -> int:
        return max(0, self.stock_quantity - self.reserved_quantity)


def init_db() -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    """Yield a session that is closed when the block exits."""
    with Session(engine) as s:
        yield s


def _merge(items: Iterable[Tuple[str, int]]) -> "OrderedDict[str, int]":
    # one counter update per product, even if the batch repeats it
    merged: "OrderedDict[str, int]" = OrderedDict()
    for pid, qty in items:
        merged[pid] = merged.get(pid, 0) + qty
    return merged


def _floored(column, qty: int):
    return case((column < qty, 0), else_=column - qty)


class InventoryRepo:
    """Inventory operations. Batch operations are all-or-nothing."""

    def get(self, product_id: str) -> Optional[InventoryItem]:
        with get_session() as s:
            return s.get(InventoryItem, product_id)

    def create(self, product_id: str, stock_quantity: int, reorder_point: int = DEFAULT_REORDER_POINT) -> Optional[InventoryItem]:
        """Insert a new record. Returns None when the product already has one."""
        with get_session() as s:
            if s.get(InventoryItem, product_id) is not None:
                return None
            item = InventoryItem(
                product_id=product_id,
                stock_quantity=stock_quantity,
                reserved_quantity=0,
                reorder_point=reorder_point,
                last_restocked=datetime.now(timezone.utc),
            )
            s.add(item)
            s.commit()
            s.refresh(item)
            return item

    def update_stock(self, product_id: str, stock_quantity: int) -> Optional[InventoryItem]:
        """Administrative overwrite of the on-hand quantity."""
        with get_session() as s:
            item = s.get(InventoryItem, product_id)
            if item is None:
                return None
            item.stock_quantity = stock_quantity
            item.last_restocked = datetime.now(timezone.utc)
            s.commit()
            s.refresh(item)
            return item

    def low_stock(self) -> List[InventoryItem]:
        """Items whose available quantity is at or below their reorder point."""
        col = InventoryItem
        with get_session() as s:
            stmt = (
                select(col)
                .where(col.stock_quantity - col.reserved_quantity <= col.reorder_point)
                .order_by(col.stock_quantity - col.reserved_quantity, col.product_id)
            )
            return list(s.scalars(stmt))

    def reserve(self, items: Iterable[Tuple[str, int]]) -> bool:
        """Reserve every quantity or none.

        Each product is a conditional ``UPDATE ... WHERE stock - reserved >= qty``;
        if any row does not match, the whole batch is rolled back.

        Returns:
            bool: True when all items were reserved. Unknown products count
                as having no stock.
        """
        col = InventoryItem
        with get_session() as s:
            for pid, qty in _merge(items).items():
                res = s.execute(
                    update(col)
                    .where(col.product_id == pid, col.stock_quantity - col.reserved_quantity >= qty)
                    .values(reserved_quantity=col.reserved_quantity + qty)
                )
                if res.rowcount != 1:
                    s.rollback()
                    return False
            s.commit()
            return True

    def release(self, items: Iterable[Tuple[str, int]]) -> List[str]:
        """Return held units; reserved never drops below zero.

        Returns:
            Product ids without an inventory record. Nothing is changed when
            the list is non-empty.
        """
        return self._adjust(items, reserved=True, stock=False)

    def confirm(self, items: Iterable[Tuple[str, int]]) -> List[str]:
        """Turn a reservation into a permanent deduction of stock."""
        return self._adjust(items, reserved=True, stock=True)

    def deduct(self, items: Iterable[Tuple[str, int]]) -> List[str]:
        """Take units off stock for an order that never held a reservation.

        Reserved counts are untouched, so other orders keep their holds.
        """
        return self._adjust(items, reserved=False, stock=True)

    def _adjust(self, items, reserved: bool, stock: bool) -> List[str]:
        merged = _merge(items)
        col = InventoryItem
        with get_session() as s:
            found = set(s.scalars(select(col.product_id).where(col.product_id.in_(list(merged)))))
            missing = [pid for pid in merged if pid not in found]
            if missing:
                return missing
            for pid, qty in merged.items():
                values = {}
                if reserved:
                    values["reserved_quantity"] = _floored(col.reserved_quantity, qty)
                if stock:
                    values["stock_quantity"] = _floored(col.stock_quantity, qty)
                s.execute(update(col).where(col.product_id == pid).values(**values))
            s.commit()
            return []
