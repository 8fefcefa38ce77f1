"""PDF tax invoice rendering.

``render_invoice`` is a pure, synchronous render from an ``OrderRecord`` to
PDF bytes using ReportLab's platypus layout. GST is shown split evenly
into CGST and SGST. Amounts use the "Rs." prefix because the built-in
Helvetica font has no rupee glyph.
"""

import io
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone
from django.utils.html import escape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from apps.orders.domain import Address, OrderRecord, PaymentMethod

_ONES = [
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

# Indian numbering: crore = 10^7, lakh = 10^5
_SCALES = [(10_000_000, "Crore"), (100_000, "Lakh"), (1_000, "Thousand"), (100, "Hundred")]


def _below_hundred(n: int) -> str:
    if n < 20:
        return _ONES[n]
    tens, ones = divmod(n, 10)
    return f"{_TENS[tens]} {_ONES[ones]}".strip()


def number_to_words(n: int) -> str:
    """Spell a non-negative integer using the Indian numbering system."""
    if n == 0:
        return "Zero"
    parts = []
    for value, name in _SCALES:
        if n >= value:
            count, n = divmod(n, value)
            parts.append(f"{number_to_words(count)} {name}")
    if n:
        parts.append(_below_hundred(n))
    return " ".join(parts)


def amount_in_words(amount) -> str:
    """``2360`` → ``"Two Thousand Three Hundred Sixty Rupees Only"``."""
    amount = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    rupees = int(amount)
    paise = int((amount - rupees) * 100)
    words = f"{number_to_words(rupees)} Rupees"
    if paise:
        words += f" and {number_to_words(paise)} Paise"
    return f"{words} Only"


def invoice_number(order: OrderRecord) -> str:
    return "INV-" + order.confirmation_number.removeprefix("ORD-")


def invoice_filename(order: OrderRecord) -> str:
    issued = timezone.localdate(order.created_at) if order.created_at else timezone.localdate()
    return f"invoice-{order.confirmation_number}-{issued.isoformat()}.pdf"


def _rs(value) -> str:
    return f"Rs. {Decimal(value):,.2f}"


def _address_block(title: str, a: Address) -> str:
    lines = [f"<b>{title}</b>", escape(a.full_name), escape(a.line1)]
    if a.line2:
        lines.append(escape(a.line2))
    lines.append(escape(f"{a.city}, {a.state} {a.postal_code}"))
    lines.append(escape(a.country))
    if a.phone:
        lines.append(f"Phone: {escape(a.phone)}")
    return "<br/>".join(lines)


def render_invoice(order: OrderRecord) -> bytes:
    """Render the tax invoice for ``order`` and return the PDF bytes."""
    store = settings.STORE_DETAILS
    styles = getSampleStyleSheet()
    body = styles["BodyText"]
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=15 * mm,
        title=f"Invoice {invoice_number(order)}",
    )
    story = []

    header = "<br/>".join(
        [f"<b>{store['name']}</b>", *store["address_lines"], f"GSTIN: {store['gstin']}",
         f"Phone: {store['phone']} | Email: {store['email']}"]
    )
    story.append(Paragraph(header, body))
    story.append(Spacer(1, 6 * mm))
    story.append(Paragraph("TAX INVOICE", styles["Title"]))

    issued = timezone.localtime(order.created_at) if order.created_at else timezone.localtime()
    details = Table(
        [
            ["Invoice No:", invoice_number(order), "Order No:", order.confirmation_number],
            ["Invoice Date:", issued.strftime("%d %b %Y"), "Order Date:", issued.strftime("%d %b %Y")],
        ],
        colWidths=[28 * mm, 57 * mm, 28 * mm, 57 * mm],
    )
    details.setStyle(TableStyle([("FONTSIZE", (0, 0), (-1, -1), 9), ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                                 ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold")]))
    story.append(details)
    story.append(Spacer(1, 4 * mm))

    parties = Table(
        [[Paragraph(_address_block("Bill To", order.billing_address), body),
          Paragraph(_address_block("Ship To", order.shipping_address), body)]],
        colWidths=[85 * mm, 85 * mm],
    )
    parties.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story.append(parties)
    story.append(Spacer(1, 4 * mm))

    rows = [["#", "Item", "Qty", "Unit Price", "Amount"]]
    for idx, line in enumerate(order.items, start=1):
        rows.append([str(idx), Paragraph(escape(line.product_name), body), str(line.quantity),
                     _rs(line.unit_price), _rs(line.total_price)])
    t = order.totals
    half_tax = (t.tax / 2).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    summary = [["", "", "", "Subtotal", _rs(t.subtotal)]]
    if t.discount:
        label = f"Discount ({order.coupon_code})" if order.coupon_code else "Discount"
        summary.append(["", "", "", label, f"- {_rs(t.discount)}"])
    summary += [
        ["", "", "", "CGST (9%)", _rs(half_tax)],
        ["", "", "", "SGST (9%)", _rs(t.tax - half_tax)],
        ["", "", "", "Shipping", _rs(t.shipping) if t.shipping else "FREE"],
        ["", "", "", "Total", _rs(t.total)],
    ]
    items = Table(rows + summary, colWidths=[10 * mm, 80 * mm, 15 * mm, 35 * mm, 30 * mm], repeatRows=1)
    n_rows = len(rows)
    items.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f0f0f0")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("GRID", (0, 0), (-1, n_rows - 1), 0.5, colors.grey),
                ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
                ("FONTNAME", (3, -1), (-1, -1), "Helvetica-Bold"),
                ("LINEABOVE", (3, -1), (-1, -1), 1, colors.black),
            ]
        )
    )
    story.append(items)
    story.append(Spacer(1, 4 * mm))
    story.append(Paragraph(f"<b>Amount in words:</b> {amount_in_words(t.total)}", body))

    method = "Cash on Delivery" if order.payment_method == PaymentMethod.CASH_ON_DELIVERY else "Online Payment"
    payment = f"<b>Payment Method:</b> {method}<br/><b>Payment Status:</b> {order.payment_status.value.title()}"
    if order.payment_id:
        payment += f"<br/><b>Transaction ID:</b> {order.payment_id}"
    story.append(Spacer(1, 3 * mm))
    story.append(Paragraph(payment, body))

    story.append(Spacer(1, 6 * mm))
    story.append(
        Paragraph(
            "<b>Terms &amp; Conditions</b><br/>"
            "1. Goods once sold can be returned within 7 days of delivery in original condition.<br/>"
            "2. This is a computer generated invoice and does not require a signature.",
            styles["Italic"],
        )
    )
    story.append(Spacer(1, 4 * mm))
    story.append(Paragraph("Thank you for your business!", styles["Heading4"]))

    doc.build(story)
    return buf.getvalue()
