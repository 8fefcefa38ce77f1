"""Coupon validation, discount calculation and usage tracking.

``CouponService.validate`` runs the checks in a fixed order and stops at
the first failure, returning a ``CouponValidation`` with a customer-facing
reason. Business-rule rejections never raise; database errors are logged
and reported as a generic validation failure.

Listings for the storefront (available coupons, header promotion) are
memoised in the ``TTLCache`` handed to the service.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from django.db import DatabaseError, transaction
from django.db.models import F, Q
from django.utils import timezone

from .cache import TTLCache
from .models import Coupon, UserCoupon

logger = logging.getLogger(__name__)

HEADER_KEY = "header"


def _q2(value) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def rupees(amount) -> str:
    """``500`` → ``₹500``, ``499.5`` → ``₹499.50``."""
    d = Decimal(amount)
    if d == d.to_integral_value():
        return f"₹{int(d)}"
    return f"₹{_q2(d)}"


@dataclass
class CouponValidation:
    """Outcome of validating a code against a cart.

    Attributes:
        is_valid: True when every check passed.
        error: Customer-facing rejection reason when ``is_valid`` is False.
        discount: Discount granted, in rupees (zero on rejection).
        coupon: The matched coupon, when one exists.
    """

    is_valid: bool
    error: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    coupon: Optional[Coupon] = None

    @classmethod
    def reject(cls, error: str, coupon: Optional[Coupon] = None) -> "CouponValidation":
        return cls(is_valid=False, error=error, coupon=coupon)


def calculate_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal``.

    Percentage coupons are capped by ``maximum_discount_amount`` when set;
    fixed coupons never exceed the subtotal.
    """
    subtotal = Decimal(subtotal)
    if coupon.discount_type == Coupon.DiscountType.PERCENTAGE:
        discount = subtotal * coupon.value / Decimal(100)
        if coupon.maximum_discount_amount is not None:
            discount = min(discount, coupon.maximum_discount_amount)
    else:
        discount = min(coupon.value, subtotal)
    return _q2(max(discount, Decimal(0)))


class CouponService:
    """Coupon rules backed by the ORM.

    Args:
        cache: Cache for storefront listings.
        now: Callable returning the current aware datetime.
    """

    def __init__(self, cache: TTLCache, now=timezone.now):
        self.cache = cache
        self.now = now

    # ---- validation ----
    def validate(
        self,
        code: str,
        user_id: Optional[str],
        subtotal: Decimal,
        product_ids: Iterable[str] = (),
    ) -> CouponValidation:
        """Validate ``code`` for a user (None for guests) and a cart."""
        try:
            coupon = Coupon.objects.filter(code=(code or "").strip().upper()).first()
            if coupon is None:
                return CouponValidation.reject("Invalid coupon code")
            error = self._first_failure(coupon, user_id, Decimal(subtotal), [str(p) for p in product_ids])
        except DatabaseError:
            logger.exception("coupon validation failed", extra={"code": code})
            return CouponValidation.reject("Failed to validate coupon")
        if error:
            return CouponValidation.reject(error, coupon)
        return CouponValidation(is_valid=True, discount=calculate_discount(coupon, subtotal), coupon=coupon)

    def _first_failure(self, coupon: Coupon, user_id, subtotal: Decimal, product_ids: List[str]) -> Optional[str]:
        now = self.now()
        if not coupon.is_active:
            return "This coupon is no longer active"
        if coupon.valid_from and now < coupon.valid_from:
            return "This coupon is not yet valid"
        if coupon.valid_until and now > coupon.valid_until:
            return "This coupon has expired"
        if coupon.minimum_order_amount is not None and subtotal < coupon.minimum_order_amount:
            return f"Minimum order amount of {rupees(coupon.minimum_order_amount)} required"
        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            return "This coupon has reached its usage limit"

        if user_id is not None:
            uid = str(user_id)
            if coupon.user_usage_limit is not None and self._user_usage(uid, coupon) >= coupon.user_usage_limit:
                return "You have already used this coupon the maximum number of times"
            allowed = [str(u) for u in coupon.allowed_users or []]
            excluded = [str(u) for u in coupon.excluded_users or []]
            if uid in excluded or (allowed and uid not in allowed):
                return "This coupon is not available for your account"
        elif coupon.is_user_restricted:
            return "Please sign in to use this coupon"

        applicable = {str(p) for p in coupon.applicable_products or []}
        excluded_products = {str(p) for p in coupon.excluded_products or []}
        if applicable and not applicable.intersection(product_ids):
            return "This coupon is not applicable to items in your cart"
        if excluded_products and excluded_products.intersection(product_ids):
            return "This coupon cannot be applied to some items in your cart"
        return None

    @staticmethod
    def _user_usage(user_id: str, coupon: Coupon) -> int:
        row = UserCoupon.objects.filter(user_id=user_id, coupon=coupon).values_list("usage_count", flat=True).first()
        return row or 0

    # ---- bookkeeping ----
    @transaction.atomic
    def record_usage(self, user_id: str, coupon_id: int) -> None:
        """Increment the per-user and global counters for a redeemed coupon."""
        now = self.now()
        rec, created = UserCoupon.objects.get_or_create(
            user_id=str(user_id), coupon_id=coupon_id, defaults={"usage_count": 1, "last_used_at": now}
        )
        if not created:
            UserCoupon.objects.filter(pk=rec.pk).update(usage_count=F("usage_count") + 1, last_used_at=now)
        Coupon.objects.filter(pk=coupon_id).update(usage_count=F("usage_count") + 1)
        self.invalidate(user_id)
        logger.info("coupon usage recorded", extra={"coupon_id": coupon_id, "user_id": str(user_id)})

    # ---- storefront listings ----
    def _usable_queryset(self):
        now = self.now()
        return (
            Coupon.objects.filter(is_active=True)
            .filter(Q(valid_from__isnull=True) | Q(valid_from__lte=now))
            .filter(Q(valid_until__isnull=True) | Q(valid_until__gte=now))
            .filter(Q(usage_limit__isnull=True) | Q(usage_limit__gt=F("usage_count")))
        )

    def available_for(self, user_id: Optional[str]) -> List[Coupon]:
        """Coupons the user could redeem right now, newest first.

        Guests only see coupons without user restrictions.
        """
        key = f"available:{user_id or 'guest'}"
        return self.cache.get_or_set(key, lambda: self._load_available(user_id))

    def _load_available(self, user_id: Optional[str]) -> List[Coupon]:
        out = []
        for c in self._usable_queryset().order_by("-created_at"):
            if user_id is None:
                if c.is_user_restricted:
                    continue
            else:
                uid = str(user_id)
                if uid in [str(u) for u in c.excluded_users or []]:
                    continue
                if c.allowed_users and uid not in [str(u) for u in c.allowed_users]:
                    continue
                if c.user_usage_limit is not None and self._user_usage(uid, c) >= c.user_usage_limit:
                    continue
            out.append(c)
        return out

    def header_promotion(self) -> Optional[Coupon]:
        """Newest usable unrestricted coupon flagged for the site header."""
        return self.cache.get_or_set(HEADER_KEY, self._load_header)

    def _load_header(self) -> Optional[Coupon]:
        for c in self._usable_queryset().filter(show_on_header=True).order_by("-created_at"):
            if not c.is_user_restricted:
                return c
        return None

    def invalidate(self, user_id: Optional[str] = None) -> None:
        """Drop cached listings for one user, or everything when no user is given."""
        if user_id is None:
            self.cache.clear()
        else:
            self.cache.invalidate(f"available:{user_id}")


def format_for_display(coupon: Coupon) -> dict:
    """Storefront representation of a coupon."""
    if coupon.discount_type == Coupon.DiscountType.PERCENTAGE:
        label = f"{coupon.value.normalize():f}% OFF"
    else:
        label = f"{rupees(coupon.value)} OFF"
    conditions = []
    if coupon.minimum_order_amount:
        conditions.append(f"Min order {rupees(coupon.minimum_order_amount)}")
    if coupon.maximum_discount_amount and coupon.discount_type == Coupon.DiscountType.PERCENTAGE:
        conditions.append(f"Max discount {rupees(coupon.maximum_discount_amount)}")
    return {
        "code": coupon.code,
        "name": coupon.name,
        "description": coupon.description,
        "discount_text": label,
        "conditions": " • ".join(conditions),
        "valid_until": coupon.valid_until.date().isoformat() if coupon.valid_until else None,
    }
