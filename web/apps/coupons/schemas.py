"""Pydantic schemas for the coupons API."""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ValidateCouponDTO(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    subtotal: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    product_ids: List[str] = Field(default_factory=list)


class CouponCreateDTO(BaseModel):
    """Admin payload for creating a coupon."""

    code: str = Field(min_length=3, max_length=50)
    name: str = Field(min_length=1, max_length=120)
    description: str = ""
    discount_type: Literal["percentage", "fixed_amount"]
    value: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    minimum_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    maximum_discount_amount: Optional[Decimal] = Field(default=None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(default=None, gt=0)
    user_usage_limit: Optional[int] = Field(default=None, gt=0)
    allowed_users: List[str] = Field(default_factory=list)
    excluded_users: List[str] = Field(default_factory=list)
    applicable_products: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    is_active: bool = True
    show_on_header: bool = False

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v2 = v.strip().upper()
        if not v2.replace("-", "").replace("_", "").isalnum():
            raise ValueError("Invalid coupon code format")
        return v2

    @model_validator(mode="after")
    def check_ranges(self):
        if self.discount_type == "percentage" and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self
