"""Domain models, ports and service for orders.

This module contains the dataclasses exchanged between the order layers,
protocol definitions (ports) for the collaborators the domain depends on
(inventory, coupons, persistence and notifications) and the domain
service that places and cancels orders. Nothing here touches Django or
the network directly; concrete adapters are wired in ``providers``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Protocol

from .delivery import estimate_delivery_date
from .identity import digits_only, generate_confirmation_number, guest_customer_id
from .pricing import Totals, calculate_totals

logger = logging.getLogger(__name__)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order.

    Orders are created ``pending``; ``delivered``, ``cancelled`` and
    ``refunded`` are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    CASH_ON_DELIVERY = "cash_on_delivery"


class ActorRole(str, Enum):
    """Who is asking for a change. Status transitions are gated per role."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)


# ---- Errors ----
class OrderError(ValueError):
    """Business-rule failure carrying a short machine code.

    ``str(err)`` is the code (for example ``"INSUFFICIENT_STOCK"``) so callers
    can map it to an HTTP status; ``err.message`` is the customer-facing text.
    """

    def __init__(self, code: str, message: str | None = None):
        super().__init__(code)
        self.code = code
        self.message = message or code


class PersistenceError(RuntimeError):
    """The order store failed; raised with a normalised message."""


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Address:
    """Postal address snapshot copied onto the order at checkout.

    Attributes:
        full_name: Recipient name.
        line1: First address line.
        line2: Optional second address line.
        city: City or town.
        state: Indian state or union territory, used for delivery estimates.
        postal_code: Six digit PIN code.
        country: Country name.
        phone: Contact phone for the courier.
    """

    full_name: str
    line1: str
    city: str
    state: str
    postal_code: str
    line2: str = ""
    country: str = "India"
    phone: str = ""


@dataclass(frozen=True)
class LineItem:
    """A product and quantity priced at checkout time.

    Attributes:
        product_id: Catalog product identifier.
        quantity: Units ordered, a positive integer.
        unit_price: Price per unit in rupees.
    """

    product_id: str
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderLine:
    """A persisted order item including the product name snapshot."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class AppliedCoupon:
    """A coupon that passed validation and the discount it grants."""

    coupon_id: int
    code: str
    discount: Decimal


@dataclass(frozen=True)
class Actor:
    """The caller of an order operation.

    ``user_id`` identifies a signed-in customer. Guests authenticate with
    ``email`` and ``phone`` instead.
    """

    role: ActorRole
    user_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=ActorRole.SYSTEM)

    @classmethod
    def admin(cls, user_id: str) -> "Actor":
        return cls(role=ActorRole.ADMIN, user_id=user_id)


@dataclass
class CheckoutRequest:
    """Everything needed to place an order.

    Attributes:
        user_id: Id of the signed-in customer, or None for a guest checkout.
        email: Contact email for confirmations.
        phone: Contact phone for SMS updates.
        shipping_address: Where the parcel goes.
        billing_address: Address printed on the invoice.
        items: Priced line items taken from the cart.
        payment_method: How the customer pays.
        coupon_code: Optional promotional code.
        notes: Optional customer note for the store.
    """

    user_id: Optional[str]
    email: str
    phone: str
    shipping_address: Address
    billing_address: Address
    items: List[LineItem]
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY
    coupon_code: Optional[str] = None
    notes: str = ""


@dataclass
class NewOrder:
    """Header and lines handed to the repository for a single atomic write."""

    confirmation_number: str
    customer_id: str
    is_guest: bool
    email: str
    phone: str
    totals: Totals
    payment_method: PaymentMethod
    shipping_address: Address
    billing_address: Address
    items: List[LineItem]
    estimated_delivery: Optional[date] = None
    coupon: Optional[AppliedCoupon] = None
    notes: str = ""
    inventory_reserved: bool = True


@dataclass
class OrderRecord:
    """Read model of a persisted order."""

    id: str
    confirmation_number: str
    customer_id: str
    is_guest: bool
    email: str
    phone: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    totals: Totals
    shipping_address: Address
    billing_address: Address
    items: List[OrderLine] = field(default_factory=list)
    coupon_code: Optional[str] = None
    payment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[date] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None
    inventory_reserved: bool = True

    def line_items(self) -> List[LineItem]:
        return [LineItem(i.product_id, i.quantity, i.unit_price) for i in self.items]


@dataclass(frozen=True)
class CancellationResult:
    order: OrderRecord
    refunded: bool
    message: str


# ---- Ports (DIP) ----
class InventoryPort(Protocol):
    """Port describing the inventory counters used by the domain."""

    def reserve(self, items: List[LineItem]) -> bool:
        """Reserve every item or none.

        Returns:
            True when all quantities were reserved, False when any product
            lacks available stock.

        Raises:
            Exception: Transport failures reaching the inventory store.
        """
        raise NotImplementedError()

    def release(self, items: List[LineItem]) -> None:
        """Drop reservations; reserved counters never go below zero."""
        raise NotImplementedError()

    def confirm(self, items: List[LineItem]) -> None:
        """Turn reservations into permanent stock deductions."""
        raise NotImplementedError()

    def deduct(self, items: List[LineItem]) -> None:
        """Take units off stock for items that were never reserved."""
        raise NotImplementedError()


class CouponPort(Protocol):
    """Port for coupon validation and usage bookkeeping."""

    def apply(
        self, code: str, user_id: Optional[str], subtotal: Decimal, product_ids: List[str]
    ) -> AppliedCoupon:
        """Validate ``code`` against the cart.

        Raises:
            OrderError: ``INVALID_COUPON`` with the rejection reason as message.
        """
        raise NotImplementedError()

    def record_usage(self, user_id: str, coupon_id: int) -> None:
        raise NotImplementedError()


class OrderRepositoryPort(Protocol):
    """Persistence operations the order services rely on."""

    def create(self, order: NewOrder) -> OrderRecord:
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[OrderRecord]:
        raise NotImplementedError()

    def transition(self, order_id: str, from_statuses, to_status: OrderStatus, **fields) -> bool:
        """Move the order to ``to_status`` only if it is still in ``from_statuses``."""
        raise NotImplementedError()

    def update_payment(self, order_id: str, payment_status: PaymentStatus, payment_id: str | None = None) -> bool:
        raise NotImplementedError()

    def overdue_shipped(self, today: date) -> List[str]:
        """Ids of shipped orders whose estimated delivery is before ``today``."""
        raise NotImplementedError()


class NotificationPort(Protocol):
    """Best-effort customer notifications. Implementations never raise."""

    def order_placed(self, order: OrderRecord) -> None: ...

    def order_cancelled(self, order: OrderRecord, refunded: bool) -> None: ...

    def status_changed(self, order: OrderRecord, previous: OrderStatus) -> None: ...

    def refund_processed(self, order: OrderRecord) -> None: ...


def cancellation_block_reason(status: OrderStatus) -> str:
    """Customer-facing reason an order in ``status`` cannot be cancelled."""
    if status == OrderStatus.SHIPPED:
        return (
            "Order has already been shipped and cannot be cancelled. "
            "Please contact customer support for returns."
        )
    if status == OrderStatus.DELIVERED:
        return (
            "Order has been delivered and cannot be cancelled. "
            "Please contact customer support for returns."
        )
    if status == OrderStatus.CANCELLED:
        return "Order has already been cancelled."
    if status == OrderStatus.REFUNDED:
        return "Order has already been refunded."
    return "Order cannot be cancelled at this stage"


# ---- Domain service ----
class OrderService:
    """Domain service responsible for placing and cancelling orders.

    Placement runs totals, coupon validation, inventory reservation, the
    order write, coupon bookkeeping and notifications, in that order. Only
    business-rule rejections and a failed order write abort the request;
    every later side effect logs its own failure and carries on.
    """

    def __init__(
        self,
        inventory: InventoryPort,
        coupons: CouponPort,
        repository: OrderRepositoryPort,
        notifier: NotificationPort,
        clock=None,
    ):
        """Initialize the service with required dependencies.

        Args:
            inventory: InventoryPort used to reserve and release stock.
            coupons: CouponPort used to validate codes and record usage.
            repository: Order store.
            notifier: Email/SMS dispatcher.
            clock: Callable returning an aware ``datetime``; defaults to
                Django's ``timezone.now`` when omitted.
        """
        self.inventory = inventory
        self.coupons = coupons
        self.repository = repository
        self.notifier = notifier
        if clock is None:
            from django.utils import timezone

            clock = timezone.now
        self.clock = clock

    def place_order(
        self, req: CheckoutRequest, on_written: Optional[Callable[[OrderRecord], None]] = None
    ) -> OrderRecord:
        """Place an order for the given checkout request.

        Args:
            req: Validated checkout data, priced line items included.
            on_written: Called with the stored order after coupon bookkeeping
                and before notifications (the checkout view empties the cart
                here). Its failures are logged only.

        Returns:
            The persisted ``OrderRecord`` in ``pending`` status.

        Raises:
            OrderError: With one of the following codes:
                'EMPTY_ORDER' if there are no items.
                'INVALID_COUPON' if the coupon is rejected (message says why).
                'INSUFFICIENT_STOCK' if inventory cannot be reserved.
                'ORDER_WRITE_FAILED' if the order could not be stored.
        """
        if not req.items:
            raise OrderError("EMPTY_ORDER", "Your cart is empty")

        totals = calculate_totals(req.items)
        coupon = None
        if req.coupon_code:
            coupon = self.coupons.apply(
                req.coupon_code,
                req.user_id,
                totals.subtotal,
                [i.product_id for i in req.items],
            )
            totals = calculate_totals(req.items, discount=coupon.discount)

        # 1) Reserve stock
        reserved = self._reserve(req.items)

        # 2) Write header and lines
        is_guest = req.user_id is None
        new_order = NewOrder(
            confirmation_number=generate_confirmation_number(),
            customer_id=guest_customer_id(req.email, req.phone) if is_guest else str(req.user_id),
            is_guest=is_guest,
            email=req.email.lower(),
            phone=req.phone,
            totals=totals,
            payment_method=req.payment_method,
            shipping_address=req.shipping_address,
            billing_address=req.billing_address,
            items=list(req.items),
            estimated_delivery=estimate_delivery_date(req.shipping_address.state, self.clock().date()),
            coupon=coupon,
            notes=req.notes,
            inventory_reserved=reserved,
        )
        try:
            record = self.repository.create(new_order)
        except PersistenceError:
            logger.exception("order write failed", extra={"customer_id": new_order.customer_id})
            if reserved:
                self._release_quietly(req.items)
            raise OrderError("ORDER_WRITE_FAILED", "Failed to create order")

        # 3) Coupon bookkeeping, registered customers only
        if coupon and not is_guest:
            try:
                self.coupons.record_usage(str(req.user_id), coupon.coupon_id)
            except Exception:
                logger.exception("coupon usage not recorded", extra={"order_id": record.id})

        if on_written is not None:
            try:
                on_written(record)
            except Exception:
                logger.warning("post-write step failed", exc_info=True, extra={"order_id": record.id})

        # 4) Notify
        try:
            self.notifier.order_placed(record)
        except Exception:
            logger.exception("order notification failed", extra={"order_id": record.id})

        logger.info(
            "order placed",
            extra={"order_id": record.id, "confirmation_number": record.confirmation_number},
        )
        return record

    def cancel_order(self, order_id: str, actor: Actor, reason: str = "") -> CancellationResult:
        """Cancel an order on behalf of ``actor``.

        Customers may cancel their own orders; guests prove ownership with the
        email and phone used at checkout. Only ``pending`` and ``processing``
        orders can be cancelled. The status change is conditional on the
        status read here, so a concurrent transition is never overwritten.

        Raises:
            OrderError: 'NOT_FOUND', 'FORBIDDEN', 'SIGN_IN_REQUIRED',
                'CREDENTIALS_MISMATCH' or 'NOT_CANCELLABLE'.
        """
        order = self.repository.get(order_id)
        if order is None:
            raise OrderError("NOT_FOUND", "Order not found")
        self._authorize_cancel(order, actor)

        if order.status not in CANCELLABLE_STATUSES:
            raise OrderError("NOT_CANCELLABLE", cancellation_block_reason(order.status))

        refunded = order.payment_status == PaymentStatus.PAID
        fields = {"cancelled_at": self.clock(), "cancellation_reason": reason or ""}
        if refunded:
            fields["payment_status"] = PaymentStatus.REFUNDED
        if not self.repository.transition(order_id, CANCELLABLE_STATUSES, OrderStatus.CANCELLED, **fields):
            current = self.repository.get(order_id)
            status = current.status if current else order.status
            raise OrderError("NOT_CANCELLABLE", cancellation_block_reason(status))

        if order.inventory_reserved:
            self._release_quietly(order.line_items())
        cancelled = self.repository.get(order_id)
        try:
            self.notifier.order_cancelled(cancelled, refunded)
        except Exception:
            logger.exception("cancellation notification failed", extra={"order_id": order_id})

        message = (
            "Order cancelled successfully. Refund will be processed within 5-7 business days."
            if refunded
            else "Order cancelled successfully."
        )
        logger.info("order cancelled", extra={"order_id": order_id, "actor": actor.role.value})
        return CancellationResult(order=cancelled, refunded=refunded, message=message)

    # ---- helpers ----
    def _reserve(self, items: List[LineItem]) -> bool:
        try:
            ok = self.inventory.reserve(items)
        except Exception:
            # accepted unreserved; stock is deducted at shipping instead
            logger.warning("inventory reservation unavailable", exc_info=True)
            return False
        if not ok:
            raise OrderError("INSUFFICIENT_STOCK", "Insufficient inventory available")
        return True

    def _release_quietly(self, items: List[LineItem]) -> None:
        try:
            self.inventory.release(items)
        except Exception:
            logger.warning("inventory release failed", exc_info=True)

    @staticmethod
    def _authorize_cancel(order: OrderRecord, actor: Actor) -> None:
        if actor.role in (ActorRole.ADMIN, ActorRole.SYSTEM):
            return
        if actor.user_id is not None:
            if order.is_guest or order.customer_id != str(actor.user_id):
                raise OrderError("FORBIDDEN", "You are not authorized to cancel this order")
            return
        if not order.is_guest:
            raise OrderError(
                "SIGN_IN_REQUIRED",
                "This order belongs to a registered user. Please sign in to cancel it.",
            )
        same_email = (actor.email or "").strip().lower() == order.email.lower()
        same_phone = digits_only(actor.phone or "")[-10:] == digits_only(order.phone)[-10:]
        if not (same_email and same_phone):
            raise OrderError("CREDENTIALS_MISMATCH", "Order credentials do not match")
