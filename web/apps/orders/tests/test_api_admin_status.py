"""Back-office status changes, payment webhook and overdue deliveries."""

import hashlib
import hmac
import json
from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.audit.models import AuditLog, SecurityEvent
from apps.orders.models import OrderModel

CREATE_URL = "/api/orders/"
ADMIN_URL = "/api/admin/orders/"
WEBHOOK_URL = "/api/payments/webhook/"
SESSION = {"HTTP_X_SESSION_ID": "sess-test-0001"}


@pytest.fixture
def order(client, make_product, guest_cart, checkout_payload):
    p = make_product(price="1000.00")
    guest_cart((p, 1))
    r = client.post(CREATE_URL, data=checkout_payload, content_type="application/json", **SESSION)
    assert r.status_code == 201
    return r.json()


@pytest.fixture
def admin_client(client, staff_user, order):
    client.force_login(staff_user)
    return client


def put_status(c, oid, payload):
    return c.put(f"{ADMIN_URL}{oid}/status/", data=payload, content_type="application/json")


def signed(client, payload, secret="whsec_test", signature=None):
    body = json.dumps(payload)
    sig = signature or hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()
    return client.post(WEBHOOK_URL, data=body, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE=sig)


def payment_event(event, order_id, payment_id="pay_123"):
    return {"event": event, "payload": {"payment": {"entity": {"id": payment_id, "notes": {"order_id": order_id}}}}}


@pytest.mark.django_db
def test_admin_endpoints_require_staff(client, order):
    assert client.get(ADMIN_URL).status_code in (401, 403)
    assert put_status(client, order["id"], {"status": "processing"}).status_code in (401, 403)


@pytest.mark.django_db
def test_admin_list_filters_by_status(admin_client, order):
    r = admin_client.get(ADMIN_URL, {"status": "pending"})
    assert r.status_code == 200
    assert r.json()["count"] == 1
    assert admin_client.get(ADMIN_URL, {"status": "shipped"}).json()["count"] == 0


@pytest.mark.django_db
@pytest.mark.parametrize("size, expected", [("0", 1), ("-3", 1), ("500", 100), ("", 20)])
def test_admin_list_clamps_page_size(admin_client, order, size, expected):
    r = admin_client.get(ADMIN_URL, {"page_size": size})
    assert r.status_code == 200
    assert r.json()["page_size"] == expected
    assert r.json()["count"] == 1


@pytest.mark.django_db
def test_admin_list_rejects_non_numeric_page_size(admin_client, order):
    r = admin_client.get(ADMIN_URL, {"page_size": "abc"})
    assert r.status_code == 400
    assert r.json() == {"detail": "INVALID_QUERY", "error": "page_size must be an integer"}


@pytest.mark.django_db
def test_status_payload_errors(admin_client, order):
    r = put_status(admin_client, order["id"], {})
    assert r.status_code == 400 and r.json()["detail"] == "Status is required"
    r = put_status(admin_client, order["id"], {"status": "lost"})
    assert r.status_code == 400 and r.json()["detail"] == "Invalid status value"


@pytest.mark.django_db
def test_ship_requires_tracking_then_records_it(admin_client, order):
    oid = order["id"]
    assert put_status(admin_client, oid, {"status": "processing"}).status_code == 200

    r = put_status(admin_client, oid, {"status": "shipped"})
    assert r.status_code == 400
    assert r.json() == {
        "detail": "TRACKING_REQUIRED",
        "error": "Tracking number is required for this status update",
    }

    r = put_status(admin_client, oid, {"status": "shipped", "trackingNumber": "BD123456789IN"})
    assert r.status_code == 200
    assert r.json()["tracking_number"] == "BD123456789IN"
    assert r.json()["estimated_delivery"]

    info = admin_client.get(f"{ADMIN_URL}{oid}/status/").json()
    assert info["status"] == "shipped"
    assert info["shipped_at"]
    assert info["allowed_next"] == ["delivered"]

    logs = AuditLog.objects.filter(action="order_status_update")
    assert logs.filter(success=True).count() == 2
    assert logs.filter(success=False).count() == 1


@pytest.mark.django_db
def test_invalid_transition(admin_client, order):
    r = put_status(admin_client, order["id"], {"status": "delivered"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid status transition from pending to delivered"


@pytest.mark.django_db
def test_admin_cancel_through_status(admin_client, order):
    r = put_status(admin_client, order["id"], {"status": "cancelled", "notes": "out of stock"})
    assert r.status_code == 200
    o = OrderModel.objects.get(id=order["id"])
    assert o.status == "cancelled"
    assert o.cancellation_reason == "out of stock"


@pytest.mark.django_db
def test_webhook_rejects_bad_signature(client, order):
    r = signed(client, payment_event("payment.captured", order["id"]), signature="deadbeef")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_SIGNATURE"
    assert SecurityEvent.objects.filter(event_type="invalid_webhook_signature").count() == 1
    assert OrderModel.objects.get(id=order["id"]).payment_status == "pending"


@pytest.mark.django_db
def test_webhook_capture_marks_paid_and_processing(client, order):
    r = signed(client, payment_event("payment.captured", order["id"]))
    assert r.status_code == 200
    assert r.json()["status"] == "processed"
    o = OrderModel.objects.get(id=order["id"])
    assert (o.payment_status, o.status, o.payment_id) == ("paid", "processing", "pay_123")

    # replay is harmless
    assert signed(client, payment_event("payment.captured", order["id"])).status_code == 200
    assert OrderModel.objects.get(id=order["id"]).status == "processing"


@pytest.mark.django_db
def test_webhook_failed_payment_cancels_pending_order(client, order):
    r = signed(client, payment_event("payment.failed", order["id"]))
    assert r.status_code == 200
    o = OrderModel.objects.get(id=order["id"])
    assert (o.payment_status, o.status) == ("failed", "cancelled")
    assert o.cancellation_reason == "Payment failed"


@pytest.mark.django_db
def test_webhook_refund(client, order):
    signed(client, payment_event("payment.captured", order["id"]))
    refund = {"event": "refund.processed", "payload": {"refund": {"entity": {"id": "rfnd_1", "payment_id": "pay_123", "notes": {"order_id": order["id"]}}}}}
    assert signed(client, refund).status_code == 200
    o = OrderModel.objects.get(id=order["id"])
    assert (o.payment_status, o.status) == ("refunded", "refunded")


@pytest.mark.django_db
def test_webhook_ignores_unknown_events(client, order):
    r = signed(client, payment_event("payment.authorized", order["id"]))
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"


@pytest.mark.django_db
@pytest.mark.parametrize("body", [[], "x", 7, {"event": "payment.captured", "payload": ["not", "an", "object"]}])
def test_webhook_rejects_non_object_payloads(client, order, body):
    r = signed(client, body)
    if isinstance(body, dict):
        assert r.status_code == 200
        assert r.json() == {"status": "ignored"}
    else:
        assert r.status_code == 400
        assert r.json() == {"detail": "INVALID_PAYLOAD"}
    assert OrderModel.objects.get(id=order["id"]).payment_status == "pending"


@pytest.mark.django_db
def test_shipping_converts_reservation_into_deduction(admin_client, order, local_inventory):
    pid = order["items"][0]["product_id"]
    assert (local_inventory.on_hand(pid), local_inventory.available(pid)) == (10, 9)

    put_status(admin_client, order["id"], {"status": "processing"})
    r = put_status(admin_client, order["id"], {"status": "shipped", "trackingNumber": "BD123"})
    assert r.status_code == 200
    assert local_inventory.on_hand(pid) == 9
    assert local_inventory.reserved[pid] == 0


@pytest.mark.django_db
def test_order_placed_while_inventory_down_ships_without_touching_holds(
    client, staff_user, make_product, guest_cart, checkout_payload, local_inventory, monkeypatch
):
    p = make_product()
    pid = str(p.id)
    real_reserve = local_inventory.reserve

    def down(items):
        raise ConnectionError("inventory down")

    monkeypatch.setattr(local_inventory, "reserve", down)
    guest_cart((p, 3))
    unreserved = client.post(CREATE_URL, data=checkout_payload, content_type="application/json", **SESSION).json()
    assert OrderModel.objects.get(id=unreserved["id"]).inventory_reserved is False

    monkeypatch.setattr(local_inventory, "reserve", real_reserve)
    guest_cart((p, 4))
    held = client.post(CREATE_URL, data=checkout_payload, content_type="application/json", **SESSION).json()
    assert OrderModel.objects.get(id=held["id"]).inventory_reserved is True
    assert local_inventory.reserved[pid] == 4

    client.force_login(staff_user)
    put_status(client, unreserved["id"], {"status": "processing"})
    assert put_status(client, unreserved["id"], {"status": "shipped", "trackingNumber": "BD9"}).status_code == 200
    assert local_inventory.on_hand(pid) == 7
    assert local_inventory.reserved[pid] == 4
    assert local_inventory.available(pid) == 3


@pytest.mark.django_db
def test_deliver_overdue_orders_command(order, capsys):
    OrderModel.objects.filter(id=order["id"]).update(
        status="shipped", tracking_number="BD1", estimated_delivery=timezone.now().date() - timedelta(days=2)
    )
    call_command("deliver_overdue_orders")
    assert "1 order(s) marked as delivered" in capsys.readouterr().out
    o = OrderModel.objects.get(id=order["id"])
    assert o.status == "delivered"
    assert o.delivered_at is not None
