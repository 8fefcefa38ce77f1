"""Cart endpoints for guests (``X-Session-Id``) and signed-in users."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.cart.models import ShoppingCart
from apps.cart.service import CartService

SESSION = {"HTTP_X_SESSION_ID": "sess-cart-1"}


def add(client, product, qty=1, **extra):
    return client.post(
        "/api/cart/items/",
        data={"product_id": str(product.id), "quantity": qty},
        content_type="application/json",
        **{**SESSION, **extra},
    )


@pytest.mark.django_db
def test_guest_needs_session_header(client):
    r = client.get("/api/cart/")
    assert r.status_code == 400
    assert r.json()["detail"] == "SESSION_REQUIRED"


@pytest.mark.django_db
def test_add_merges_lines_and_recomputes_totals(client, make_product):
    p = make_product(price="1000.00")
    assert add(client, p, 1).status_code == 201
    r = add(client, p, 1)
    body = r.json()
    assert len(body["items"]) == 1
    assert body["items"][0]["quantity"] == 2
    assert (body["subtotal"], body["tax"], body["shipping"], body["total"]) == ("2000.00", "360.00", "0.00", "2360.00")


@pytest.mark.django_db
def test_small_cart_pays_shipping(client, make_product):
    p = make_product(price="500.00")
    body = add(client, p, 1).json()
    assert body["shipping"] == "100.00"
    assert body["total"] == "690.00"


@pytest.mark.django_db
def test_update_and_remove_items(client, make_product):
    p = make_product(price="100.00")
    item_id = add(client, p, 3).json()["items"][0]["id"]

    r = client.patch(f"/api/cart/items/{item_id}/", data={"quantity": 5}, content_type="application/json", **SESSION)
    assert r.json()["items"][0]["quantity"] == 5

    r = client.patch(f"/api/cart/items/{item_id}/", data={"quantity": 0}, content_type="application/json", **SESSION)
    assert r.json()["items"] == []
    assert r.json()["total"] == "0.00"

    r = client.delete(f"/api/cart/items/{item_id}/", **SESSION)
    assert r.status_code == 404
    assert r.json()["detail"] == "ITEM_NOT_FOUND"


@pytest.mark.django_db
def test_unknown_or_inactive_product(client, make_product):
    p = make_product(is_active=False)
    r = add(client, p)
    assert r.status_code == 404
    assert r.json()["detail"] == "PRODUCT_NOT_FOUND"


@pytest.mark.django_db
def test_quantity_ceiling(client, make_product):
    p = make_product()
    add(client, p, 90)
    r = add(client, p, 10)
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_QUANTITY"


@pytest.mark.django_db
def test_clear(client, make_product):
    add(client, make_product(), 2)
    r = client.delete("/api/cart/", **SESSION)
    assert r.json()["items"] == []


@pytest.mark.django_db
def test_expired_cart_is_replaced(make_product):
    svc = CartService()
    old = svc.get_or_create_cart(session_id="sess-old")
    ShoppingCart.objects.filter(id=old.id).update(expires_at=timezone.now() - timedelta(seconds=1))
    assert svc.find_cart(session_id="sess-old") is None
    assert not ShoppingCart.objects.filter(id=old.id).exists()
    assert svc.get_or_create_cart(session_id="sess-old").id != old.id


@pytest.mark.django_db
def test_guest_and_registered_ttls(customer, settings):
    settings.CART_TTL_DAYS_GUEST = 7
    settings.CART_TTL_DAYS_REGISTERED = 30
    now = timezone.now()
    svc = CartService(now=lambda: now)
    assert svc.get_or_create_cart(session_id="s").expires_at == now + timedelta(days=7)
    assert svc.get_or_create_cart(user=customer).expires_at == now + timedelta(days=30)


@pytest.mark.django_db
def test_merge_guest_cart_on_sign_in(client, customer, make_product):
    p1, p2 = make_product(price="100.00"), make_product(price="200.00")
    add(client, p1, 2)
    add(client, p2, 1)
    svc = CartService()
    svc.add_item(svc.get_or_create_cart(user=customer), p1.id, 1)

    client.force_login(customer)
    r = client.post("/api/cart/merge/", **SESSION)
    assert r.status_code == 200
    qty = {i["product_id"]: i["quantity"] for i in r.json()["items"]}
    assert qty == {str(p1.id): 3, str(p2.id): 1}
    assert r.json()["subtotal"] == "500.00"
    assert not ShoppingCart.objects.filter(session_id="sess-cart-1").exists()


@pytest.mark.django_db
def test_line_items_for_checkout(make_product):
    p = make_product(price="99.90")
    svc = CartService()
    cart = svc.add_item(svc.get_or_create_cart(session_id="s"), p.id, 2)
    (line,) = CartService.line_items(cart)
    assert (line.product_id, line.quantity, line.unit_price) == (str(p.id), 2, Decimal("99.90"))
    assert CartService.line_items(None) == []
