"""API tests for checkout (POST /api/orders/).

The guest cart is addressed with the ``X-Session-Id`` header; inventory is
the in-process stub (ten units per product) and notification providers are
unconfigured, so every side effect stays in the process.
"""

from decimal import Decimal

import pytest

from apps.cart.models import ShoppingCart
from apps.coupons.models import Coupon, UserCoupon
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"
SESSION_ID = "sess-test-0001"
SESSION = {"HTTP_X_SESSION_ID": SESSION_ID}


def post(client, payload, **headers):
    return client.post(CREATE_URL, data=payload, content_type="application/json", **{**SESSION, **headers})


@pytest.mark.django_db
def test_guest_checkout_creates_pending_order(client, make_product, guest_cart, checkout_payload):
    """Two units at 1000: free shipping, 18% tax, 2360 total; the cart is emptied."""
    p = make_product(price="1000.00", name="Classic Mangalsutra")
    cart = guest_cart((p, 2))

    r = post(client, checkout_payload)
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["payment_status"] == "pending"
    assert body["confirmation_number"].startswith("ORD-")
    assert body["totals"] == {
        "subtotal": "2000.00",
        "tax": "360.00",
        "shipping": "0.00",
        "discount": "0.00",
        "total": "2360.00",
    }
    assert body["items"][0]["product_name"] == "Classic Mangalsutra"
    assert body["billing_address"] == body["shipping_address"]

    o = OrderModel.objects.get(id=body["id"])
    assert o.is_guest and o.customer_id.startswith("guest_")
    assert o.customer_email == "priya@example.com"
    assert o.items.count() == 1
    assert ShoppingCart.objects.get(id=cart.id).items.count() == 0


@pytest.mark.django_db
def test_checkout_applies_capped_percentage_coupon(client, make_product, guest_cart, checkout_payload):
    p = make_product(price="1000.00")
    guest_cart((p, 2))
    Coupon.objects.create(
        code="SAVE10",
        name="10% off",
        discount_type=Coupon.DiscountType.PERCENTAGE,
        value=Decimal("10"),
        maximum_discount_amount=Decimal("150"),
    )

    r = post(client, {**checkout_payload, "coupon_code": " save10 "})
    assert r.status_code == 201
    assert r.json()["totals"]["discount"] == "150.00"
    assert r.json()["totals"]["total"] == "2210.00"
    assert r.json()["coupon_code"] == "SAVE10"
    # guests do not consume per-user usage
    assert UserCoupon.objects.count() == 0


@pytest.mark.django_db
def test_registered_checkout_records_coupon_usage(client, customer, make_product, checkout_payload):
    from apps.cart.service import CartService

    p = make_product(price="500.00")
    svc = CartService()
    svc.add_item(svc.get_or_create_cart(user=customer), p.id, 1)
    c = Coupon.objects.create(
        code="FLAT50", name="Flat 50", discount_type=Coupon.DiscountType.FIXED_AMOUNT, value=Decimal("50")
    )
    client.force_login(customer)

    r = client.post(CREATE_URL, data={**checkout_payload, "coupon_code": "FLAT50"}, content_type="application/json")
    assert r.status_code == 201
    # 500 + 90 tax + 100 shipping - 50
    assert r.json()["totals"]["total"] == "640.00"
    c.refresh_from_db()
    assert c.usage_count == 1
    assert UserCoupon.objects.get(user_id=str(customer.pk), coupon=c).usage_count == 1
    assert OrderModel.objects.get(id=r.json()["id"]).customer_id == str(customer.pk)


@pytest.mark.django_db
def test_guest_cannot_use_user_restricted_coupon(client, make_product, guest_cart, checkout_payload):
    p = make_product()
    guest_cart((p, 1))
    Coupon.objects.create(
        code="VIP",
        name="VIP",
        discount_type=Coupon.DiscountType.FIXED_AMOUNT,
        value=Decimal("100"),
        allowed_users=["42"],
    )
    r = post(client, {**checkout_payload, "coupon_code": "VIP"})
    assert r.status_code == 400
    assert r.json() == {"detail": "INVALID_COUPON", "error": "Please sign in to use this coupon"}
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_empty_cart_is_rejected(client, checkout_payload):
    r = post(client, checkout_payload)
    assert r.status_code == 400
    assert r.json()["detail"] == "EMPTY_ORDER"


@pytest.mark.django_db
def test_insufficient_stock_returns_422(client, make_product, guest_cart, checkout_payload):
    """The stub holds ten units, so eleven cannot be reserved."""
    p = make_product()
    guest_cart((p, 11))
    r = post(client, checkout_payload)
    assert r.status_code == 422
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
def test_write_failure_returns_500(client, make_product, guest_cart, checkout_payload, monkeypatch):
    from apps.orders.domain import PersistenceError
    from apps.orders.repository import OrderRepository

    def boom(self, order):
        raise PersistenceError("db down")

    monkeypatch.setattr(OrderRepository, "create", boom)
    p = make_product()
    guest_cart((p, 1))
    r = post(client, checkout_payload)
    assert r.status_code == 500
    assert r.json() == {"detail": "ORDER_WRITE_FAILED", "error": "Failed to create order"}


@pytest.mark.django_db
def test_unexpected_failure_returns_503(client, make_product, guest_cart, checkout_payload, monkeypatch):
    def broken():
        raise RuntimeError("wiring failed")

    monkeypatch.setattr("apps.orders.providers.get_order_service", broken, raising=True)
    p = make_product()
    guest_cart((p, 1))
    r = post(client, checkout_payload)
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "patch",
    [
        {"email": "not-an-email"},
        {"phone": "12"},
        {"payment_method": "bitcoin"},
        {"shipping_address": {"full_name": "P", "line1": "x", "city": "Pune", "state": "MH", "postal_code": "011001"}},
    ],
)
def test_create_order_validation_error(client, checkout_payload, patch):
    """Returns 400 when the payload fails Pydantic validation."""
    r = post(client, {**checkout_payload, **patch})
    assert r.status_code == 400


@pytest.mark.django_db
def test_reservations_persist_between_checkouts(client, make_product, guest_cart, checkout_payload, local_inventory):
    """Ten units in stock: a second checkout of six is refused while the first holds its six."""
    p = make_product()
    guest_cart((p, 6))
    assert post(client, checkout_payload).status_code == 201
    assert local_inventory.available(p.id) == 4

    guest_cart((p, 6))
    r = post(client, checkout_payload)
    assert r.status_code == 422
    assert r.json()["detail"] == "INSUFFICIENT_STOCK"
    assert OrderModel.objects.count() == 1
    assert local_inventory.available(p.id) == 4


@pytest.mark.django_db
def test_cancelled_checkout_frees_stock_for_the_next(client, make_product, guest_cart, checkout_payload, local_inventory):
    p = make_product()
    guest_cart((p, 6))
    first = post(client, checkout_payload).json()

    r = client.post(
        f"/api/orders/{first['id']}/cancel/",
        data={"email": checkout_payload["email"], "phone": checkout_payload["phone"]},
        content_type="application/json",
    )
    assert r.status_code == 200
    assert local_inventory.available(p.id) == 10

    guest_cart((p, 6))
    assert post(client, checkout_payload).status_code == 201
