"""Service provider helpers for wiring the order services with ports.

``get_order_service`` and ``get_status_service`` return services wired with
the HTTP inventory client when ``settings.USE_HTTP_ADAPTERS`` is truthy,
and with the in-process ``InventoryStub`` otherwise (tests, local
development). Views call these through the module so tests can
monkeypatch them.
"""

from django.conf import settings

from apps.coupons.providers import get_coupon_service
from apps.notifications.dispatcher import NotificationDispatcher

from .adapters import CouponAdapter, InventoryStub
from .domain import InventoryPort, OrderService
from .http_adapters import HttpInventoryClient
from .repository import OrderRepository
from .status import OrderStatusService


# one stub per process so reservations persist across requests
_local_inventory = InventoryStub()


def get_local_inventory() -> InventoryStub:
    return _local_inventory


def get_inventory() -> InventoryPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpInventoryClient()
    return _local_inventory


def get_order_service() -> OrderService:
    """Return an ``OrderService`` wired for the current settings."""
    return OrderService(
        inventory=get_inventory(),
        coupons=CouponAdapter(get_coupon_service()),
        repository=OrderRepository(),
        notifier=NotificationDispatcher.from_settings(),
    )


def get_status_service() -> OrderStatusService:
    orders = get_order_service()
    return OrderStatusService(
        orders=orders,
        repository=orders.repository,
        inventory=orders.inventory,
        notifier=orders.notifier,
    )
