"""SMS client and message texts."""

import logging
from typing import Optional

import httpx
from django.conf import settings

from apps.orders.domain import OrderRecord, OrderStatus, PaymentMethod, PaymentStatus
from apps.orders.http_adapters import request_headers
from apps.orders.identity import digits_only

logger = logging.getLogger(__name__)


class SmsClient:
    """Client for the cloud messaging API.

    Args:
        api_url: Endpoint that accepts the send request.
        api_key: Sent as the ``authkey`` header. Empty disables sending.
        sender_id: Registered sender id.
        country_code: Prefix applied to local ten digit numbers.
    """

    def __init__(self, api_url: str, api_key: str, sender_id: str, country_code: str = "91", timeout: float = 5.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.country_code = country_code
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "SmsClient":
        return cls(
            settings.SMS_API_URL,
            settings.SMS_API_KEY,
            settings.SMS_SENDER_ID,
            getattr(settings, "SMS_COUNTRY_CODE", "91"),
            getattr(settings, "NOTIFICATION_TIMEOUT_SECS", 5.0),
        )

    def format_e164(self, phone: str) -> str:
        """``98765 43210`` → ``+919876543210``; numbers already carrying the
        country code keep it."""
        digits = digits_only(phone)
        if not digits:
            raise ValueError("INVALID_PHONE")
        if digits.startswith("0") and len(digits) == 11:
            digits = digits[1:]
        if len(digits) == 10:
            return f"+{self.country_code}{digits}"
        if digits.startswith(self.country_code):
            return f"+{digits}"
        return f"+{self.country_code}{digits}"

    def send(self, phone: str, message: str) -> Optional[str]:
        if not self.api_key:
            logger.info("sms skipped, provider not configured")
            return None
        to = self.format_e164(phone)
        payload = {
            "sender": self.sender_id,
            "route": "4",
            "country": self.country_code,
            "sms": [{"message": message, "to": [to.lstrip("+")]}],
        }
        headers = request_headers({"authkey": self.api_key})
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(self.api_url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        message_id = data.get("request_id") or data.get("message")
        logger.info("sms sent", extra={"message_id": message_id})
        return message_id


def order_confirmation_text(order: OrderRecord) -> str:
    saved = ""
    if order.coupon_code and order.totals.discount > 0:
        saved = f" (Saved ₹{order.totals.discount} with {order.coupon_code})"
    payment = "COD" if order.payment_method == PaymentMethod.CASH_ON_DELIVERY else "Paid Online"
    return (
        f"Order Confirmed! Order #{order.confirmation_number}. "
        f"Amount: ₹{order.totals.total}{saved}. Payment: {payment}. Thank you for your order!"
    )


def status_text(order: OrderRecord) -> Optional[str]:
    """SMS for a status change, or None when the status has no SMS."""
    n = order.confirmation_number
    if order.status == OrderStatus.SHIPPED:
        tracking = f" Tracking: {order.tracking_number}." if order.tracking_number else ""
        return f"Order Shipped! Your order #{n} is on its way.{tracking} Track your package for updates."
    if order.status == OrderStatus.DELIVERED:
        return f"Order Delivered! Your order #{n} has been delivered. Thank you for shopping with us!"
    if order.status == OrderStatus.CANCELLED:
        return cancellation_text(order)
    return None


def cancellation_text(order: OrderRecord) -> str:
    text = f"Order Cancelled: Your order #{order.confirmation_number} has been cancelled."
    if order.payment_status == PaymentStatus.REFUNDED:
        text += " Refund will be processed within 5-7 business days."
    return text


def refund_text(order: OrderRecord) -> str:
    return (
        f"Refund Processed: ₹{order.totals.total} for order #{order.confirmation_number} "
        "has been refunded to your original payment method."
    )
