"""Repository layer for persisting orders.

The repository is the only place that knows about the Django ORM models of
the orders app. It accepts and returns the domain dataclasses so the
services stay decoupled from ORM types, and it wraps database failures on
the write path in ``PersistenceError``.
"""

import logging
import uuid
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from apps.catalog.models import Product

from .domain import (
    Address,
    NewOrder,
    OrderLine,
    OrderRecord,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PersistenceError,
)
from .identity import generate_confirmation_number
from .models import ADDRESS_FIELDS, OrderItemModel, OrderModel
from .pricing import Totals

logger = logging.getLogger(__name__)

CONFIRMATION_ATTEMPTS = 3


def _address_columns(prefix: str, address: Address) -> dict:
    return {f"{prefix}_{name}": getattr(address, name) or "" for name in ADDRESS_FIELDS}


def _address_from(obj: OrderModel, prefix: str) -> Address:
    return Address(**{name: getattr(obj, f"{prefix}_{name}") for name in ADDRESS_FIELDS})


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def to_record(obj: OrderModel) -> OrderRecord:
    """Map an ``OrderModel`` (items prefetched or not) to an ``OrderRecord``."""
    return OrderRecord(
        id=str(obj.id),
        confirmation_number=obj.confirmation_number,
        customer_id=obj.customer_id,
        is_guest=obj.is_guest,
        email=obj.customer_email,
        phone=obj.customer_phone,
        status=OrderStatus(obj.status),
        payment_status=PaymentStatus(obj.payment_status),
        payment_method=PaymentMethod(obj.payment_method),
        totals=Totals(
            subtotal=obj.subtotal,
            tax=obj.tax,
            shipping=obj.shipping,
            discount=obj.coupon_discount,
            total=obj.total_amount,
        ),
        shipping_address=_address_from(obj, "shipping"),
        billing_address=_address_from(obj, "billing"),
        items=[
            OrderLine(
                product_id=str(i.product_id),
                product_name=i.product_name,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total_price=i.total_price,
            )
            for i in obj.items.all()
        ],
        coupon_code=obj.coupon_code or None,
        payment_id=obj.payment_id or None,
        tracking_number=obj.tracking_number or None,
        estimated_delivery=obj.estimated_delivery,
        shipped_at=obj.shipped_at,
        delivered_at=obj.delivered_at,
        cancelled_at=obj.cancelled_at,
        cancellation_reason=obj.cancellation_reason,
        notes=obj.notes,
        created_at=obj.created_at,
        inventory_reserved=obj.inventory_reserved,
    )


class OrderRepository:
    """Repository that persists orders using the Django ORM."""

    def create(self, order: NewOrder) -> OrderRecord:
        """Persist the order header and all of its items atomically.

        Product names are fetched in one query and snapshotted onto the
        lines. A confirmation number collision is retried with a fresh
        number; any other database failure leaves nothing behind.

        Args:
            order: Fully priced order ready to be stored.

        Returns:
            The stored order as an ``OrderRecord``.

        Raises:
            PersistenceError: If the header or the items could not be written.
        """
        names = self._product_names(i.product_id for i in order.items)
        number = order.confirmation_number
        for attempt in range(1, CONFIRMATION_ATTEMPTS + 1):
            try:
                with transaction.atomic():
                    obj = OrderModel.objects.create(**self._header(order, number))
                    OrderItemModel.objects.bulk_create(
                        [
                            OrderItemModel(
                                order=obj,
                                product_id=item.product_id,
                                product_name=names.get(str(item.product_id), f"Product {item.product_id}"),
                                quantity=item.quantity,
                                unit_price=item.unit_price,
                                total_price=item.total_price,
                            )
                            for item in order.items
                        ]
                    )
                return self.get(obj.id)
            except IntegrityError as e:
                taken = OrderModel.objects.filter(confirmation_number=number).exists()
                if not taken or attempt == CONFIRMATION_ATTEMPTS:
                    raise PersistenceError("Failed to create order") from e
                logger.warning("confirmation number collision", extra={"confirmation_number": number})
                number = generate_confirmation_number()
            except (DatabaseError, ValidationError, ValueError) as e:
                raise PersistenceError("Failed to create order") from e
        raise PersistenceError("Failed to create order")

    def get(self, order_id) -> Optional[OrderRecord]:
        try:
            obj = OrderModel.objects.prefetch_related("items").get(id=order_id)
        except (OrderModel.DoesNotExist, ValidationError, ValueError):
            return None
        return to_record(obj)

    def get_by_confirmation(self, confirmation_number: str) -> Optional[OrderRecord]:
        obj = (
            OrderModel.objects.prefetch_related("items")
            .filter(confirmation_number=confirmation_number.strip().upper())
            .first()
        )
        return to_record(obj) if obj else None

    def list_for_customer(self, customer_id: str) -> List[OrderRecord]:
        qs = OrderModel.objects.filter(customer_id=customer_id).prefetch_related("items").order_by("-created_at")
        return [to_record(o) for o in qs]

    def transition(self, order_id, from_statuses: Iterable[OrderStatus], to_status: OrderStatus, **fields) -> bool:
        """Conditionally move an order to ``to_status``.

        The update only matches while the order is still in one of
        ``from_statuses``, so two concurrent transitions cannot both win.

        Returns:
            True when the row was updated, False when its status had changed.
        """
        values = {k: _plain(v) for k, v in fields.items()}
        updated = OrderModel.objects.filter(
            id=order_id, status__in=[_plain(s) for s in from_statuses]
        ).update(status=_plain(to_status), updated_at=timezone.now(), **values)
        return updated == 1

    def update_payment(self, order_id, payment_status: PaymentStatus, payment_id: str | None = None) -> bool:
        values = {"payment_status": _plain(payment_status), "updated_at": timezone.now()}
        if payment_id:
            values["payment_id"] = payment_id
        return OrderModel.objects.filter(id=order_id).update(**values) == 1

    def overdue_shipped(self, today: date) -> List[str]:
        qs = OrderModel.objects.filter(status=OrderStatus.SHIPPED.value, estimated_delivery__lt=today)
        return [str(pk) for pk in qs.values_list("id", flat=True)]

    # ---- helpers ----
    @staticmethod
    def _product_names(product_ids) -> dict:
        ids = []
        for pid in product_ids:
            try:
                ids.append(uuid.UUID(str(pid)))
            except ValueError:
                continue
        return {str(pk): p.name for pk, p in Product.objects.in_bulk(ids).items()}

    @staticmethod
    def _header(order: NewOrder, number: str) -> dict:
        totals = order.totals
        return {
            "confirmation_number": number,
            "customer_id": order.customer_id,
            "is_guest": order.is_guest,
            "customer_email": order.email,
            "customer_phone": order.phone,
            "status": OrderStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "payment_method": _plain(order.payment_method),
            "subtotal": totals.subtotal,
            "tax": totals.tax,
            "shipping": totals.shipping,
            "coupon_discount": totals.discount,
            "total_amount": totals.total,
            "coupon_id": order.coupon.coupon_id if order.coupon else None,
            "coupon_code": order.coupon.code if order.coupon else "",
            "estimated_delivery": order.estimated_delivery,
            "notes": order.notes or "",
            "inventory_reserved": order.inventory_reserved,
            **_address_columns("shipping", order.shipping_address),
            **_address_columns("billing", order.billing_address),
        }
