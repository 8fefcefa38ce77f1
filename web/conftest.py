"""Shared fixtures for the storefront tests.

Every test runs with the in-process inventory stub (emptied between
tests), empty notification provider keys (so nothing leaves the process)
and fresh caches.
"""

from decimal import Decimal

import pytest
from django.core.cache import cache

from apps.coupons import providers as coupon_providers

SESSION_ID = "sess-test-0001"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.EMAIL_API_KEY = ""
    settings.SMS_API_KEY = ""
    settings.PAYMENT_WEBHOOK_SECRET = "whsec_test"


@pytest.fixture(autouse=True)
def local_inventory():
    from apps.orders.providers import get_local_inventory

    inv = get_local_inventory()
    inv.reset()
    yield inv
    inv.reset()


@pytest.fixture(autouse=True)
def clear_caches():
    cache.clear()
    coupon_providers.get_coupon_cache().clear()
    yield
    coupon_providers.get_coupon_cache().clear()


@pytest.fixture
def make_product(db):
    from apps.catalog.models import Product

    counter = {"n": 0}

    def _make(price="1000.00", name=None, **kw):
        counter["n"] += 1
        n = counter["n"]
        return Product.objects.create(
            sku=kw.pop("sku", f"MS-{n:03d}"),
            name=name or f"Mangalsutra {n}",
            price=Decimal(price),
            **kw,
        )

    return _make


@pytest.fixture
def guest_cart(db):
    """Return a callable that fills the guest cart for ``SESSION_ID``."""
    from apps.cart.service import CartService

    def _fill(*lines):
        svc = CartService()
        cart = svc.get_or_create_cart(session_id=SESSION_ID)
        for product, qty in lines:
            svc.add_item(cart, product.id, qty)
        return cart

    return _fill


@pytest.fixture
def staff_user(django_user_model):
    return django_user_model.objects.create_user(
        username="admin", email="admin@example.com", password="pw", is_staff=True
    )


@pytest.fixture
def customer(django_user_model):
    return django_user_model.objects.create_user(username="priya", email="priya@example.com", password="pw")


@pytest.fixture
def address():
    return {
        "full_name": "Priya Sharma",
        "line1": "12 MG Road",
        "city": "Pune",
        "state": "Maharashtra",
        "postal_code": "411001",
        "phone": "9876543210",
    }


@pytest.fixture
def checkout_payload(address):
    return {
        "email": "Priya@Example.com",
        "phone": "+91 98765 43210",
        "shipping_address": address,
        "payment_method": "razorpay",
    }
