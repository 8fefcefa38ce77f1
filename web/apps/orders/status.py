"""Order status transitions, payment events and delivery housekeeping.

``OrderStatusService`` owns the transition table: which status may follow
which, and which roles may make the move. Cancellation is delegated to
``OrderService.cancel_order`` so every cancel path releases stock and
notifies the customer the same way.
"""

import logging
from datetime import date
from typing import Optional

from .delivery import estimate_delivery_date
from .domain import (
    Actor,
    ActorRole,
    InventoryPort,
    NotificationPort,
    OrderError,
    OrderRecord,
    OrderRepositoryPort,
    OrderService,
    OrderStatus,
    PaymentStatus,
)

logger = logging.getLogger(__name__)

S = OrderStatus
R = ActorRole

TRANSITIONS = {
    (S.PENDING, S.PROCESSING): {R.SYSTEM, R.ADMIN},
    (S.PENDING, S.CANCELLED): {R.CUSTOMER, R.ADMIN, R.SYSTEM},
    (S.PROCESSING, S.SHIPPED): {R.ADMIN},
    (S.PROCESSING, S.CANCELLED): {R.CUSTOMER, R.ADMIN, R.SYSTEM},
    (S.SHIPPED, S.DELIVERED): {R.ADMIN, R.SYSTEM},
    (S.PENDING, S.REFUNDED): {R.SYSTEM},
    (S.PROCESSING, S.REFUNDED): {R.SYSTEM},
    (S.SHIPPED, S.REFUNDED): {R.SYSTEM},
}

REQUIRES_TRACKING = {S.SHIPPED}

PAYMENT_CAPTURED = {"payment.captured", "order.paid"}
PAYMENT_FAILED = "payment.failed"
REFUND_PROCESSED = "refund.processed"


def allowed_next(status: OrderStatus, role: ActorRole) -> list:
    return [to for (frm, to), roles in TRANSITIONS.items() if frm == status and role in roles]


def check_transition(current: OrderStatus, new: OrderStatus, role: ActorRole) -> None:
    """Raise ``OrderError`` unless ``role`` may move an order from ``current`` to ``new``."""
    roles = TRANSITIONS.get((current, new))
    if roles is None:
        raise OrderError(
            "INVALID_TRANSITION", f"Invalid status transition from {current.value} to {new.value}"
        )
    if role not in roles:
        raise OrderError("FORBIDDEN", "Insufficient permissions for this status change")


class OrderStatusService:
    """Applies status changes with their side effects.

    Args:
        orders: Domain service used for cancellations.
        repository: Order store.
        inventory: Used on shipping to confirm a reservation, or to deduct stock
                directly for orders accepted without one.
        notifier: Email/SMS dispatcher.
    """

    def __init__(
        self,
        orders: OrderService,
        repository: OrderRepositoryPort,
        inventory: InventoryPort,
        notifier: NotificationPort,
        clock=None,
    ):
        self.orders = orders
        self.repository = repository
        self.inventory = inventory
        self.notifier = notifier
        self.clock = clock or orders.clock

    def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        actor: Actor,
        tracking_number: Optional[str] = None,
        estimated_delivery: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> OrderRecord:
        """Move an order to ``new_status``.

        Shipping requires a tracking number; when no estimated delivery is
        given it is computed from the shipping state in business days.

        Raises:
            OrderError: 'NOT_FOUND', 'INVALID_TRANSITION', 'FORBIDDEN',
                'TRACKING_REQUIRED' or 'CONCURRENT_UPDATE'.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise OrderError("NOT_FOUND", "Order not found")
        check_transition(order.status, new_status, actor.role)

        if new_status == S.CANCELLED:
            return self.orders.cancel_order(order_id, actor, reason=notes or "").order

        if new_status in REQUIRES_TRACKING and not (tracking_number or "").strip():
            raise OrderError("TRACKING_REQUIRED", "Tracking number is required for this status update")

        now = self.clock()
        fields = {}
        if notes:
            fields["admin_notes"] = notes
        if new_status == S.SHIPPED:
            fields["tracking_number"] = tracking_number.strip()
            fields["estimated_delivery"] = estimated_delivery or estimate_delivery_date(
                order.shipping_address.state, now.date()
            )
            fields["shipped_at"] = now
        elif new_status == S.DELIVERED:
            fields["delivered_at"] = now
        elif new_status == S.REFUNDED:
            fields["payment_status"] = PaymentStatus.REFUNDED

        if not self.repository.transition(order_id, [order.status], new_status, **fields):
            raise OrderError("CONCURRENT_UPDATE", "Order was modified by another request, please retry")

        if new_status == S.SHIPPED:
            try:
                if order.inventory_reserved:
                    self.inventory.confirm(order.line_items())
                else:
                    self.inventory.deduct(order.line_items())
            except Exception:
                logger.warning("inventory stock deduction failed", exc_info=True, extra={"order_id": order_id})

        updated = self.repository.get(order_id)
        try:
            self.notifier.status_changed(updated, order.status)
        except Exception:
            logger.exception("status notification failed", extra={"order_id": order_id})
        logger.info(
            "order status changed",
            extra={"order_id": order_id, "from": order.status.value, "to": new_status.value, "actor": actor.role.value},
        )
        return updated

    def handle_payment_event(self, order_id: str, event: str, payment_id: Optional[str] = None) -> bool:
        """Apply a payment provider event to an order.

        ``payment.captured``/``order.paid`` mark the order paid and move a
        pending order to processing. ``payment.failed`` marks it failed and
        cancels it when still cancellable. ``refund.processed`` marks it
        refunded. Replays of an already applied event are no-ops.

        Returns:
            True when the event was recognised and applied.

        Raises:
            OrderError: 'NOT_FOUND' for an unknown order.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise OrderError("NOT_FOUND", "Order not found")
        system = Actor.system()

        if event in PAYMENT_CAPTURED:
            if order.payment_status != PaymentStatus.PAID:
                self.repository.update_payment(order_id, PaymentStatus.PAID, payment_id)
            if order.status == S.PENDING:
                self._quiet_update(order_id, S.PROCESSING, system)
            return True

        if event == PAYMENT_FAILED:
            if order.payment_status == PaymentStatus.PAID:
                logger.warning("payment.failed for a paid order ignored", extra={"order_id": order_id})
                return False
            self.repository.update_payment(order_id, PaymentStatus.FAILED, payment_id)
            if order.status == S.PENDING:
                try:
                    self.orders.cancel_order(order_id, system, reason="Payment failed")
                except OrderError as e:
                    logger.info("order not cancelled after payment failure", extra={"order_id": order_id, "code": e.code})
            return True

        if event == REFUND_PROCESSED:
            if order.payment_status == PaymentStatus.REFUNDED and order.status in (S.REFUNDED, S.CANCELLED):
                return True
            self.repository.update_payment(order_id, PaymentStatus.REFUNDED, None)
            if (order.status, S.REFUNDED) in TRANSITIONS:
                self.repository.transition(order_id, [order.status], S.REFUNDED)
            refreshed = self.repository.get(order_id)
            try:
                self.notifier.refund_processed(refreshed)
            except Exception:
                logger.exception("refund notification failed", extra={"order_id": order_id})
            return True

        logger.info("payment event ignored", extra={"order_id": order_id, "event": event})
        return False

    def auto_deliver_overdue(self, today: Optional[date] = None) -> int:
        """Mark shipped orders past their estimated delivery date as delivered.

        Returns:
            Number of orders updated.
        """
        today = today or self.clock().date()
        count = 0
        for order_id in self.repository.overdue_shipped(today):
            if self._quiet_update(order_id, S.DELIVERED, Actor.system()):
                count += 1
        return count

    def _quiet_update(self, order_id: str, status: OrderStatus, actor: Actor) -> bool:
        try:
            self.update_status(order_id, status, actor)
            return True
        except OrderError as e:
            logger.warning("automatic status update skipped", extra={"order_id": order_id, "code": e.code})
            return False
