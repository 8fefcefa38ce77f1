"""Best-effort customer notifications for order events.

Every channel call is isolated: a provider failure, a missing credential
or a template error is logged and swallowed so the order operation that
triggered it is never affected. There is no retry queue.
"""

import logging

from django.conf import settings
from django.template.loader import render_to_string

from apps.orders.domain import NotificationPort, OrderRecord, OrderStatus, PaymentMethod

from . import sms as sms_texts
from .invoice import invoice_filename, render_invoice
from .mailer import EmailClient
from .sms import SmsClient

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    OrderStatus.PENDING: "Order Pending",
    OrderStatus.PROCESSING: "Order Processing",
    OrderStatus.SHIPPED: "Order Shipped",
    OrderStatus.DELIVERED: "Order Delivered",
    OrderStatus.CANCELLED: "Order Cancelled",
    OrderStatus.REFUNDED: "Order Refunded",
}

STATUS_MESSAGES = {
    OrderStatus.PENDING: "Your order has been received and is awaiting processing.",
    OrderStatus.PROCESSING: "Your order is being prepared for shipment.",
    OrderStatus.SHIPPED: "Your order has been shipped and is on its way to you.",
    OrderStatus.DELIVERED: "Your order has been delivered. We hope you love it!",
    OrderStatus.CANCELLED: "Your order has been cancelled.",
    OrderStatus.REFUNDED: "Your refund has been processed to your original payment method.",
}


class NotificationDispatcher(NotificationPort):
    """Sends order emails and SMS through the configured clients."""

    def __init__(self, email: EmailClient, sms: SmsClient):
        self.email = email
        self.sms = sms

    @classmethod
    def from_settings(cls) -> "NotificationDispatcher":
        return cls(EmailClient.from_settings(), SmsClient.from_settings())

    # ---- events ----
    def order_placed(self, order: OrderRecord) -> None:
        payment = "Cash on Delivery" if order.payment_method == PaymentMethod.CASH_ON_DELIVERY else "Paid Online"
        ctx = {"order": order, "payment_label": payment}
        self._email(order, f"Order Confirmation - {order.confirmation_number}", "order_placed", ctx)
        self._sms(order, sms_texts.order_confirmation_text(order))

    def order_cancelled(self, order: OrderRecord, refunded: bool) -> None:
        ctx = {"order": order, "refunded": refunded}
        self._email(order, f"Order Cancelled - {order.confirmation_number}", "order_cancelled", ctx)
        self._sms(order, sms_texts.cancellation_text(order))

    def status_changed(self, order: OrderRecord, previous: OrderStatus) -> None:
        if order.status == OrderStatus.CANCELLED:
            # cancellation has its own templates
            self.order_cancelled(order, refunded=order.payment_status.value == "refunded")
            return
        ctx = {
            "order": order,
            "previous": previous,
            "status_label": STATUS_LABELS.get(order.status, order.status.value.title()),
            "status_message": STATUS_MESSAGES.get(order.status, ""),
        }
        attachments = []
        if order.status == OrderStatus.SHIPPED and self.email.configured:
            pdf = self._invoice(order)
            if pdf:
                attachments.append((invoice_filename(order), pdf, "application/pdf"))
        self._email(order, f"{ctx['status_label']} - {order.confirmation_number}", "order_status", ctx, attachments)
        text = sms_texts.status_text(order)
        if text:
            self._sms(order, text)

    def refund_processed(self, order: OrderRecord) -> None:
        self._sms(order, sms_texts.refund_text(order))

    # ---- channels ----
    def _email(self, order: OrderRecord, subject: str, template: str, ctx: dict, attachments=()) -> None:
        try:
            ctx = {"store": settings.STORE_DETAILS, **ctx}
            html = render_to_string(f"notifications/{template}.html", ctx)
            text = render_to_string(f"notifications/{template}.txt", ctx)
            self.email.send(order.email, subject, html, text, attachments=attachments)
        except Exception:
            logger.exception("email notification failed", extra={"order_id": order.id, "template": template})

    def _sms(self, order: OrderRecord, message: str) -> None:
        try:
            self.sms.send(order.phone, message)
        except Exception:
            logger.exception("sms notification failed", extra={"order_id": order.id})

    @staticmethod
    def _invoice(order: OrderRecord):
        try:
            return render_invoice(order)
        except Exception:
            logger.exception("invoice render failed", extra={"order_id": order.id})
            return None
