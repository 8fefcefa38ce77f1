"""Pydantic schemas for orders.

Request DTOs validate and normalise incoming payloads; ``OrderReadDTO``
shapes the JSON representation of an ``OrderRecord`` (money as strings).
"""

import re
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .domain import Address, OrderRecord, OrderStatus

PIN_RE = re.compile(r"^[1-9][0-9]{5}$")
PHONE_RE = re.compile(r"^\+?[0-9][0-9 \-]{8,16}$")


def _check_phone(v: str) -> str:
    v2 = v.strip()
    if not PHONE_RE.match(v2):
        raise ValueError("Invalid phone number")
    return v2


class AddressIn(BaseModel):
    """Postal address as submitted at checkout.

    Attributes:
        postal_code: Six digit Indian PIN code, not starting with 0.
        phone: Digits with optional leading ``+``, spaces or dashes.
    """

    full_name: str = Field(min_length=2, max_length=120)
    line1: str = Field(min_length=3, max_length=200)
    line2: str = Field(default="", max_length=200)
    city: str = Field(min_length=2, max_length=100)
    state: str = Field(min_length=2, max_length=100)
    postal_code: str
    country: str = Field(default="India", max_length=60)
    phone: str = ""

    @field_validator("postal_code")
    @classmethod
    def validate_pin(cls, v: str) -> str:
        v2 = v.strip()
        if not PIN_RE.match(v2):
            raise ValueError("Invalid PIN code")
        return v2

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v) if v.strip() else ""

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class CheckoutDTO(BaseModel):
    """Schema for placing an order from the caller's cart.

    ``billing_address`` defaults to the shipping address when omitted.
    """

    email: EmailStr
    phone: str
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    payment_method: Literal["razorpay", "cash_on_delivery"] = "razorpay"
    coupon_code: Optional[str] = Field(default=None, max_length=50)
    notes: str = Field(default="", max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v)

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v2 = v.strip().upper()
        return v2 or None


class GuestCredentialsDTO(BaseModel):
    email: EmailStr
    phone: str

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v)


class GuestLookupDTO(GuestCredentialsDTO):
    confirmation_number: str = Field(min_length=8, max_length=32)


class CancelDTO(BaseModel):
    reason: str = Field(default="", max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class StatusUpdateDTO(BaseModel):
    """Admin status change. Accepts ``trackingNumber``/``estimatedDelivery``
    as sent by the back office, or their snake_case names."""

    model_config = ConfigDict(populate_by_name=True)

    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, alias="trackingNumber", max_length=64)
    estimated_delivery: Optional[date] = Field(default=None, alias="estimatedDelivery")
    notes: Optional[str] = Field(default=None, max_length=1000)


class TotalsOut(BaseModel):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


class OrderLineOut(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class AddressOut(BaseModel):
    full_name: str
    line1: str
    line2: str
    city: str
    state: str
    postal_code: str
    country: str
    phone: str


class OrderReadDTO(BaseModel):
    id: str
    confirmation_number: str
    status: str
    payment_status: str
    payment_method: str
    totals: TotalsOut
    items: List[OrderLineOut]
    shipping_address: AddressOut
    billing_address: AddressOut
    coupon_code: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[date] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, o: OrderRecord) -> "OrderReadDTO":
        return cls.model_validate(
            {
                "id": o.id,
                "confirmation_number": o.confirmation_number,
                "status": o.status.value,
                "payment_status": o.payment_status.value,
                "payment_method": o.payment_method.value,
                "totals": asdict(o.totals),
                "items": [asdict(i) for i in o.items],
                "shipping_address": asdict(o.shipping_address),
                "billing_address": asdict(o.billing_address),
                "coupon_code": o.coupon_code,
                "tracking_number": o.tracking_number,
                "estimated_delivery": o.estimated_delivery,
                "cancellation_reason": o.cancellation_reason or None,
                "created_at": o.created_at,
            }
        )


def order_json(o: OrderRecord) -> dict:
    return OrderReadDTO.from_record(o).model_dump(mode="json", exclude_none=True)
