"""Order totals calculator.

All arithmetic is done with ``Decimal`` and every published amount is
quantized to paise with ROUND_HALF_UP, so totals never drift.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

PAISE = Decimal("0.01")


def q2(value) -> Decimal:
    """Quantize ``value`` to two decimal places, half up."""
    return Decimal(value).quantize(PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    """Monetary summary of an order or cart, in rupees."""

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


def _setting(name: str, fallback: Decimal) -> Decimal:
    from django.conf import settings

    return Decimal(getattr(settings, name, fallback))


def calculate_totals(
    lines: Iterable,
    discount: Decimal = Decimal("0"),
    tax_rate: Optional[Decimal] = None,
    free_shipping_threshold: Optional[Decimal] = None,
    shipping_fee: Optional[Decimal] = None,
) -> Totals:
    """Compute subtotal, tax, shipping, discount and grand total.

    Args:
        lines: Objects with ``quantity`` and ``unit_price`` attributes.
        discount: Coupon discount already capped by the coupon rules.
        tax_rate: Overrides ``settings.TAX_RATE``.
        free_shipping_threshold: Overrides ``settings.FREE_SHIPPING_THRESHOLD``.
        shipping_fee: Overrides ``settings.STANDARD_SHIPPING_FEE``.

    Returns:
        Totals: ``total = subtotal + tax + shipping - discount``. Shipping is
        waived once the subtotal reaches the threshold and for empty carts.

    Raises:
        ValueError: If a quantity, unit price or discount is negative.
    """
    tax_rate = _setting("TAX_RATE", Decimal("0.18")) if tax_rate is None else Decimal(tax_rate)
    if free_shipping_threshold is None:
        free_shipping_threshold = _setting("FREE_SHIPPING_THRESHOLD", Decimal("2000"))
    if shipping_fee is None:
        shipping_fee = _setting("STANDARD_SHIPPING_FEE", Decimal("100"))

    subtotal = Decimal("0")
    count = 0
    for line in lines:
        if line.quantity < 0 or Decimal(line.unit_price) < 0:
            raise ValueError("NEGATIVE_AMOUNT")
        subtotal += Decimal(line.unit_price) * line.quantity
        count += 1
    discount = Decimal(discount)
    if discount < 0:
        raise ValueError("NEGATIVE_AMOUNT")

    subtotal = q2(subtotal)
    tax = q2(subtotal * tax_rate)
    if count == 0 or subtotal >= free_shipping_threshold:
        shipping = q2(0)
    else:
        shipping = q2(shipping_fee)
    discount = q2(discount)
    total = subtotal + tax + shipping - discount
    return Totals(subtotal=subtotal, tax=tax, shipping=shipping, discount=discount, total=total)
