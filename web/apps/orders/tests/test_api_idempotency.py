"""Checkout idempotency via the ``Idempotency-Key`` header."""

import pytest

from apps.orders.models import IdempotencyKey, OrderModel

CREATE_URL = "/api/orders/"
SESSION = {"HTTP_X_SESSION_ID": "sess-test-0001"}


def post(client, payload, key):
    return client.post(
        CREATE_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY=key, **SESSION
    )


@pytest.mark.django_db
def test_idempotent_same_payload_returns_same_order_on_retry(client, make_product, guest_cart, checkout_payload):
    p = make_product()
    guest_cart((p, 1))

    r1 = post(client, checkout_payload, "idem-same-1")
    assert r1.status_code == 201

    # the cart is empty now; a replay must not try to place it again
    r2 = post(client, checkout_payload, "idem-same-1")
    assert r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1
    assert str(IdempotencyKey.objects.get(key="idem-same-1").order_id) == r1.json()["id"]


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload_with_same_key(client, make_product, guest_cart, checkout_payload):
    p = make_product()
    guest_cart((p, 1))
    r1 = post(client, checkout_payload, "idem-conflict-1")
    assert r1.status_code == 201

    r2 = post(client, {**checkout_payload, "notes": "gift wrap"}, "idem-conflict-1")
    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_idempotent_replay_preserves_422_status(client, make_product, guest_cart, checkout_payload):
    p = make_product()
    guest_cart((p, 11))

    r1 = post(client, checkout_payload, "idem-422")
    assert r1.status_code == 422
    r2 = post(client, checkout_payload, "idem-422")
    assert r2.status_code == 422
    assert r2.json() == r1.json()


@pytest.mark.django_db
def test_in_flight_key_is_reported(client, checkout_payload):
    from apps.orders.idempotency import get_or_create_idempotent

    # a first request that has not finished yet
    get_or_create_idempotent("idem-busy", checkout_payload)
    r = post(client, checkout_payload, "idem-busy")
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_IN_PROGRESS"
