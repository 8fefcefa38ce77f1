"""Read, cancel, guest lookup and invoice endpoints."""

import pytest

from apps.cart.service import CartService
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"
SESSION = {"HTTP_X_SESSION_ID": "sess-test-0001"}


@pytest.fixture
def guest_order(client, make_product, guest_cart, checkout_payload):
    p = make_product(price="1000.00")
    guest_cart((p, 2))
    r = client.post(CREATE_URL, data=checkout_payload, content_type="application/json", **SESSION)
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def customer_order(client, customer, make_product, checkout_payload):
    p = make_product(price="2500.00")
    svc = CartService()
    svc.add_item(svc.get_or_create_cart(user=customer), p.id, 1)
    client.force_login(customer)
    r = client.post(CREATE_URL, data=checkout_payload, content_type="application/json")
    assert r.status_code == 201
    return r.json()


@pytest.mark.django_db
def test_list_requires_sign_in(client):
    r = client.get(CREATE_URL)
    assert r.status_code == 401
    assert r.json()["detail"] == "SIGN_IN_REQUIRED"


@pytest.mark.django_db
def test_customer_sees_own_orders_only(client, customer_order, django_user_model):
    r = client.get(CREATE_URL)
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["results"]] == [customer_order["id"]]

    other = django_user_model.objects.create_user(username="other", password="pw")
    client.force_login(other)
    assert client.get(CREATE_URL).json()["count"] == 0
    assert client.get(f"{CREATE_URL}{customer_order['id']}/").status_code == 404


@pytest.mark.django_db
def test_detail_for_owner_and_staff(client, customer_order, staff_user):
    r = client.get(f"{CREATE_URL}{customer_order['id']}/")
    assert r.status_code == 200
    assert r.json()["totals"]["total"] == "2950.00"

    client.force_login(staff_user)
    assert client.get(f"{CREATE_URL}{customer_order['id']}/").status_code == 200


@pytest.mark.django_db
def test_detail_of_guest_order_is_hidden_from_anonymous(client, guest_order):
    assert client.get(f"{CREATE_URL}{guest_order['id']}/").status_code == 404


@pytest.mark.django_db
def test_guest_lookup(client, guest_order):
    url = f"{CREATE_URL}lookup/"
    ok = {"confirmation_number": guest_order["confirmation_number"], "email": "PRIYA@example.com", "phone": "9876543210"}
    r = client.post(url, data=ok, content_type="application/json")
    assert r.status_code == 200
    assert r.json()["id"] == guest_order["id"]

    r = client.post(url, data={**ok, "phone": "9999999999"}, content_type="application/json")
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_guest_cancels_with_credentials(client, guest_order):
    url = f"{CREATE_URL}{guest_order['id']}/cancel/"
    r = client.post(url, data={"email": "priya@example.com", "phone": "1111111111"}, content_type="application/json")
    assert r.status_code == 403
    assert r.json()["detail"] == "CREDENTIALS_MISMATCH"

    r = client.post(
        url,
        data={"email": "priya@example.com", "phone": "+91 98765 43210", "reason": "ordered twice"},
        content_type="application/json",
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Order cancelled successfully."
    assert r.json()["order"]["status"] == "cancelled"
    o = OrderModel.objects.get(id=guest_order["id"])
    assert o.cancellation_reason == "ordered twice"
    assert o.cancelled_at is not None

    # second attempt is refused and changes nothing
    r = client.post(url, data={"email": "priya@example.com", "phone": "9876543210"}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["error"] == "Order has already been cancelled."


@pytest.mark.django_db
def test_customer_cannot_cancel_shipped_order(client, customer_order):
    OrderModel.objects.filter(id=customer_order["id"]).update(status="shipped")
    r = client.post(f"{CREATE_URL}{customer_order['id']}/cancel/", data={}, content_type="application/json")
    assert r.status_code == 409
    assert "already been shipped" in r.json()["error"]
    assert OrderModel.objects.get(id=customer_order["id"]).status == "shipped"


@pytest.mark.django_db
def test_registered_order_cannot_be_cancelled_anonymously(client, customer_order):
    client.logout()
    r = client.post(
        f"{CREATE_URL}{customer_order['id']}/cancel/",
        data={"email": "priya@example.com", "phone": "9876543210"},
        content_type="application/json",
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "SIGN_IN_REQUIRED"


@pytest.mark.django_db
def test_staff_cancel_is_audited(client, customer_order, staff_user):
    from apps.audit.models import AuditLog

    client.force_login(staff_user)
    r = client.post(f"{CREATE_URL}{customer_order['id']}/cancel/", data={"reason": "fraud"}, content_type="application/json")
    assert r.status_code == 200
    log = AuditLog.objects.get(action="order_cancel")
    assert log.resource_id == customer_order["id"]
    assert log.success is True


@pytest.mark.django_db
def test_invoice_pdf(client, guest_order):
    url = f"{CREATE_URL}{guest_order['id']}/invoice/"
    assert client.get(url).status_code == 404

    r = client.get(url, {"email": "priya@example.com", "phone": "9876543210"})
    assert r.status_code == 200
    assert r["Content-Type"] == "application/pdf"
    assert guest_order["confirmation_number"] in r["Content-Disposition"]
    assert r.content.startswith(b"%PDF")
