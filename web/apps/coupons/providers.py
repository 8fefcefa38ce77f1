"""Wiring for ``CouponService``.

The listing cache lives for the lifetime of the worker process and is
created on first use so ``settings.COUPON_CACHE_TTL`` can be overridden.
"""

from django.conf import settings

from .cache import TTLCache
from .service import CouponService

_listing_cache: TTLCache | None = None


def get_coupon_cache() -> TTLCache:
    global _listing_cache
    if _listing_cache is None:
        _listing_cache = TTLCache(getattr(settings, "COUPON_CACHE_TTL", 30.0))
    return _listing_cache


def get_coupon_service() -> CouponService:
    return CouponService(cache=get_coupon_cache())
