"""Coupon validation rules, discount maths and usage bookkeeping."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from apps.coupons.cache import TTLCache
from apps.coupons.models import Coupon, UserCoupon
from apps.coupons.service import CouponService, calculate_discount, format_for_display, rupees

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service():
    return CouponService(TTLCache(30), now=lambda: NOW)


def coupon(**kw):
    fields = {
        "code": "SAVE10",
        "name": "Save 10",
        "discount_type": Coupon.DiscountType.PERCENTAGE,
        "value": Decimal("10"),
    }
    fields.update(kw)
    return Coupon.objects.create(**fields)


def test_rupees():
    assert rupees(500) == "₹500"
    assert rupees(Decimal("499.5")) == "₹499.50"


def test_percentage_discount_is_capped():
    c = Coupon(discount_type="percentage", value=Decimal("10"), maximum_discount_amount=Decimal("150"))
    assert calculate_discount(c, Decimal("2000")) == Decimal("150.00")
    assert calculate_discount(c, Decimal("1000")) == Decimal("100.00")


def test_fixed_discount_never_exceeds_subtotal():
    c = Coupon(discount_type="fixed_amount", value=Decimal("500"))
    assert calculate_discount(c, Decimal("300")) == Decimal("300.00")


@pytest.mark.django_db
def test_valid_coupon(service):
    coupon(code="save10")
    res = service.validate(" Save10 ", "42", Decimal("2000"))
    assert res.is_valid and res.error is None
    assert res.discount == Decimal("200.00")
    assert res.coupon.code == "SAVE10"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "fields, subtotal, user_id, message",
    [
        ({"is_active": False}, "2000", "42", "This coupon is no longer active"),
        ({"valid_from": NOW + timedelta(days=1)}, "2000", "42", "This coupon is not yet valid"),
        ({"valid_until": NOW - timedelta(seconds=1)}, "2000", "42", "This coupon has expired"),
        ({"minimum_order_amount": Decimal("2500")}, "2000", "42", "Minimum order amount of ₹2500 required"),
        ({"usage_limit": 3, "usage_count": 3}, "2000", "42", "This coupon has reached its usage limit"),
        ({"excluded_users": ["42"]}, "2000", "42", "This coupon is not available for your account"),
        ({"allowed_users": ["7"]}, "2000", "42", "This coupon is not available for your account"),
        ({"allowed_users": ["7"]}, "2000", None, "Please sign in to use this coupon"),
        ({"applicable_products": ["p-9"]}, "2000", "42", "This coupon is not applicable to items in your cart"),
        ({"excluded_products": ["p-1"]}, "2000", "42", "This coupon cannot be applied to some items in your cart"),
    ],
)
def test_rejections(service, fields, subtotal, user_id, message):
    coupon(**fields)
    res = service.validate("SAVE10", user_id, Decimal(subtotal), ["p-1"])
    assert res.is_valid is False
    assert res.error == message
    assert res.discount == Decimal("0.00")


@pytest.mark.django_db
def test_expired_wins_over_everything_else(service):
    coupon(valid_until=NOW - timedelta(days=1), minimum_order_amount=Decimal("99999"), allowed_users=["7"])
    assert service.validate("SAVE10", None, Decimal("1")).error == "This coupon has expired"


@pytest.mark.django_db
def test_unknown_code(service):
    assert service.validate("NOPE", None, Decimal("100")).error == "Invalid coupon code"


@pytest.mark.django_db
def test_per_user_limit_after_recorded_usage(service):
    c = coupon(user_usage_limit=1)
    assert service.validate("SAVE10", "42", Decimal("100")).is_valid
    service.record_usage("42", c.id)
    service.record_usage("43", c.id)

    c.refresh_from_db()
    assert c.usage_count == 2
    assert UserCoupon.objects.get(user_id="42", coupon=c).usage_count == 1
    res = service.validate("SAVE10", "42", Decimal("100"))
    assert res.error == "You have already used this coupon the maximum number of times"
    assert service.validate("SAVE10", "44", Decimal("100")).is_valid


@pytest.mark.django_db
def test_available_for_guest_hides_restricted(service):
    coupon(code="OPEN")
    coupon(code="VIP", allowed_users=["42"])
    coupon(code="OLD", valid_until=NOW - timedelta(days=1))
    assert [c.code for c in service.available_for(None)] == ["OPEN"]
    assert sorted(c.code for c in service.available_for("42")) == ["OPEN", "VIP"]


@pytest.mark.django_db
def test_listings_are_cached_until_invalidated(service):
    coupon(code="FIRST", show_on_header=True)
    assert service.header_promotion().code == "FIRST"
    coupon(code="SECOND", show_on_header=True)
    assert service.header_promotion().code == "FIRST"
    service.invalidate()
    assert service.header_promotion().code == "SECOND"


def test_display_format():
    c = Coupon(
        code="SAVE10",
        name="Save",
        discount_type="percentage",
        value=Decimal("10.00"),
        minimum_order_amount=Decimal("1000"),
        maximum_discount_amount=Decimal("150"),
        valid_until=NOW,
    )
    d = format_for_display(c)
    assert d["discount_text"] == "10% OFF"
    assert d["conditions"] == "Min order ₹1000 • Max discount ₹150"
    assert d["valid_until"] == "2024-06-01"
