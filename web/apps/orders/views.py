"""HTTP views for the orders app.

Views validate requests with Pydantic, map them to domain objects, delegate
to the services returned by ``providers`` and shape the response. Business
failures surface as ``{"detail": CODE, "error": message}`` with the status
from ``ERROR_STATUS``.

Idempotency: when an ``Idempotency-Key`` header is sent to checkout, the
first request creates a record and stores its response. Retries with the
same payload replay the stored response; reusing the key with a different
payload returns 409. A retry that arrives while the first request is still
running also gets 409.
"""

import hashlib
import hmac
import json
import logging

from django.conf import settings
from django.http import HttpResponse
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.audit.models import AuditAction, AuditResource, AuditSeverity, SecurityEventType
from apps.audit.service import AuditService, audit_from_request, client_ip
from apps.cart.service import CartService
from apps.cart.views import session_id_of
from apps.notifications.invoice import invoice_filename, render_invoice
from gateway.params import paginate

from . import providers
from .domain import Actor, ActorRole, CheckoutRequest, OrderError, OrderStatus, PaymentMethod
from .idempotency import finalize, get_or_create_idempotent
from .identity import digits_only
from .models import OrderModel
from .repository import OrderRepository, to_record
from .schemas import CancelDTO, CheckoutDTO, GuestLookupDTO, StatusUpdateDTO, order_json
from .status import allowed_next

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "EMPTY_ORDER": 400,
    "INVALID_COUPON": 400,
    "INVALID_TRANSITION": 400,
    "TRACKING_REQUIRED": 400,
    "FORBIDDEN": 403,
    "CREDENTIALS_MISMATCH": 403,
    "SIGN_IN_REQUIRED": 403,
    "NOT_FOUND": 404,
    "NOT_CANCELLABLE": 409,
    "CONCURRENT_UPDATE": 409,
    "INSUFFICIENT_STOCK": 422,
    "ORDER_WRITE_FAILED": 500,
}


def _error(e: OrderError) -> tuple:
    return {"detail": e.code, "error": e.message}, ERROR_STATUS.get(e.code, 400)


def _not_found() -> Response:
    return Response({"detail": "NOT_FOUND", "error": "Order not found"}, status=status.HTTP_404_NOT_FOUND)


def _owns(request, order) -> bool:
    user = request.user
    if not user.is_authenticated:
        return False
    return user.is_staff or (not order.is_guest and order.customer_id == str(user.pk))


def _guest_matches(order, email: str, phone: str) -> bool:
    return (
        order.is_guest
        and (email or "").strip().lower() == order.email.lower()
        and digits_only(phone or "")[-10:] == digits_only(order.phone)[-10:]
    )


class CheckoutView(APIView):
    """Place an order from the caller's cart, or list the caller's orders.

    POST responses:
        - 201 with the order when it is created.
        - replay of the stored response for an idempotent retry.
        - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
        - 400 for validation errors, an empty cart or a rejected coupon.
        - 422 ``INSUFFICIENT_STOCK``.
        - 500 ``ORDER_WRITE_FAILED``.
        - 503 ``UPSTREAM_UNAVAILABLE`` for any other failure.
    """

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # throttles run in initial(), before the handler
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        if not request.user.is_authenticated:
            return Response(
                {"detail": "SIGN_IN_REQUIRED", "error": "Sign in to view your orders"},
                status=status.HTTP_401_UNAUTHORIZED,
            )
        orders = OrderRepository().list_for_customer(str(request.user.pk))
        return Response({"count": len(orders), "results": [order_json(o) for o in orders]})

    def post(self, request):
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CheckoutDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        user = request.user if request.user.is_authenticated else None
        carts = CartService()
        try:
            cart = carts.find_cart(user=user, session_id=session_id_of(request))
        except ValueError:
            cart = None
        shipping = dto.shipping_address.to_domain()
        checkout = CheckoutRequest(
            user_id=str(user.pk) if user else None,
            email=dto.email,
            phone=dto.phone,
            shipping_address=shipping,
            billing_address=dto.billing_address.to_domain() if dto.billing_address else shipping,
            items=carts.line_items(cart),
            payment_method=PaymentMethod(dto.payment_method),
            coupon_code=dto.coupon_code,
            notes=dto.notes,
        )

        def empty_cart(_order):
            if cart is not None:
                carts.clear(cart)

        try:
            order = providers.get_order_service().place_order(checkout, on_written=empty_cart)
        except OrderError as e:
            body, status_code = _error(e)
            if rec:
                finalize(rec, status_code, body)
            return Response(body, status=status_code)
        except Exception:
            logger.exception("checkout failed")
            body = {"detail": "UPSTREAM_UNAVAILABLE"}
            if rec:
                finalize(rec, 503, body)
            return Response(body, status=503)

        body = order_json(order)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    """Order detail for its owner or staff. Guests use the lookup endpoint."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = OrderRepository().get(oid)
        if order is None or not _owns(request, order):
            return _not_found()
        return Response(order_json(order))


class CancelOrderView(APIView):
    """Cancel a pending or processing order.

    Signed-in customers cancel their own orders; staff cancel any order;
    guests send the ``email`` and ``phone`` used at checkout.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def post(self, request, oid):
        try:
            dto = CancelDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        user = request.user
        if user.is_authenticated and user.is_staff:
            actor = Actor.admin(str(user.pk))
        elif user.is_authenticated:
            actor = Actor(role=ActorRole.CUSTOMER, user_id=str(user.pk))
        else:
            actor = Actor(role=ActorRole.CUSTOMER, email=dto.email, phone=dto.phone)

        try:
            result = providers.get_order_service().cancel_order(str(oid), actor, reason=dto.reason)
        except OrderError as e:
            body, status_code = _error(e)
            if actor.role == ActorRole.ADMIN:
                audit_from_request(
                    request,
                    action=AuditAction.ORDER_CANCEL,
                    resource=AuditResource.ORDER,
                    resource_id=str(oid),
                    success=False,
                    error_message=e.message,
                )
            return Response(body, status=status_code)

        if actor.role == ActorRole.ADMIN:
            audit_from_request(
                request,
                action=AuditAction.ORDER_CANCEL,
                resource=AuditResource.ORDER,
                resource_id=str(oid),
                description=f"Cancelled order {result.order.confirmation_number}",
                target_user_email=result.order.email,
                severity=AuditSeverity.MEDIUM,
            )
        return Response(
            {"message": result.message, "refunded": result.refunded, "order": order_json(result.order)}
        )


class GuestOrderLookupView(APIView):
    """Find a guest order by confirmation number, email and phone."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_lookup"

    def post(self, request):
        try:
            dto = GuestLookupDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        order = OrderRepository().get_by_confirmation(dto.confirmation_number)
        # same answer for an unknown number and wrong credentials
        if order is None or not _guest_matches(order, dto.email, dto.phone):
            return _not_found()
        return Response(order_json(order))


class InvoiceView(APIView):
    """PDF tax invoice. Guests pass ``email`` and ``phone`` as query params."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = OrderRepository().get(oid)
        if order is None:
            return _not_found()
        allowed = _owns(request, order) or _guest_matches(
            order, request.GET.get("email", ""), request.GET.get("phone", "")
        )
        if not allowed:
            return _not_found()
        pdf = render_invoice(order)
        resp = HttpResponse(pdf, content_type="application/pdf")
        resp["Content-Disposition"] = f'attachment; filename="{invoice_filename(order)}"'
        return resp


class AdminOrdersView(APIView):
    """Staff listing of all orders, optionally filtered by ``status``."""

    permission_classes = [IsAdminUser]

    def get(self, request):
        qs = OrderModel.objects.prefetch_related("items").order_by("-created_at")
        wanted = request.GET.get("status")
        if wanted:
            qs = qs.filter(status=wanted)
        p, page_obj, page_size = paginate(request, qs)
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [order_json(to_record(o)) for o in page_obj.object_list],
            }
        )


class AdminOrderStatusView(APIView):
    """Read or change an order's status from the back office."""

    permission_classes = [IsAdminUser]

    def get(self, request, oid):
        order = OrderRepository().get(oid)
        if order is None:
            return _not_found()
        return Response(
            {
                "id": order.id,
                "confirmation_number": order.confirmation_number,
                "status": order.status.value,
                "payment_status": order.payment_status.value,
                "tracking_number": order.tracking_number,
                "estimated_delivery": order.estimated_delivery.isoformat() if order.estimated_delivery else None,
                "shipped_at": order.shipped_at.isoformat() if order.shipped_at else None,
                "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
                "allowed_next": [s.value for s in allowed_next(order.status, ActorRole.ADMIN)],
            }
        )

    def put(self, request, oid):
        raw = request.data.get("status") if hasattr(request.data, "get") else None
        if not raw:
            return Response({"detail": "Status is required"}, status=status.HTTP_400_BAD_REQUEST)
        if raw not in {s.value for s in OrderStatus}:
            return Response({"detail": "Invalid status value"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            dto = StatusUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = providers.get_status_service().update_status(
                str(oid),
                dto.status,
                Actor.admin(str(request.user.pk)),
                tracking_number=dto.tracking_number,
                estimated_delivery=dto.estimated_delivery,
                notes=dto.notes,
            )
        except OrderError as e:
            audit_from_request(
                request,
                action=AuditAction.ORDER_STATUS_UPDATE,
                resource=AuditResource.ORDER,
                resource_id=str(oid),
                metadata={"status": dto.status.value},
                success=False,
                error_message=e.message,
            )
            body, status_code = _error(e)
            return Response(body, status=status_code)

        audit_from_request(
            request,
            action=AuditAction.ORDER_STATUS_UPDATE,
            resource=AuditResource.ORDER,
            resource_id=order.id,
            description=f"Order {order.confirmation_number} moved to {order.status.value}",
            target_user_email=order.email,
            severity=AuditSeverity.MEDIUM,
            metadata={"status": order.status.value, "tracking_number": order.tracking_number},
        )
        return Response(order_json(order))


def _webhook_order_id(payload: dict):
    inner = payload.get("payload")
    if not isinstance(inner, dict):
        return None, None
    for key in ("payment", "order", "refund"):
        wrapper = inner.get(key)
        entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
        if not isinstance(entity, dict):
            continue
        notes = entity.get("notes") or {}
        if isinstance(notes, dict) and notes.get("order_id"):
            return notes["order_id"], entity.get("payment_id") or entity.get("id")
    return None, None


class PaymentWebhookView(APIView):
    """Razorpay webhook.

    The body is authenticated with ``X-Razorpay-Signature``, the hex
    HMAC-SHA256 of the raw body keyed with ``PAYMENT_WEBHOOK_SECRET``.
    The order is identified by ``notes.order_id`` set when the payment
    was created.
    """

    authentication_classes = []
    permission_classes = []

    def post(self, request):
        raw = request.body
        secret = settings.PAYMENT_WEBHOOK_SECRET
        signature = request.headers.get("X-Razorpay-Signature", "")
        expected = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest() if secret else ""
        if not secret or not signature or not hmac.compare_digest(expected, signature):
            AuditService().log_security_event(
                event_type=SecurityEventType.INVALID_WEBHOOK_SIGNATURE,
                description="Payment webhook with an invalid signature",
                severity=AuditSeverity.HIGH,
                ip_address=client_ip(request),
                user_agent=request.META.get("HTTP_USER_AGENT", ""),
            )
            return Response({"detail": "INVALID_SIGNATURE"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return Response({"detail": "INVALID_PAYLOAD"}, status=status.HTTP_400_BAD_REQUEST)
        if not isinstance(payload, dict):
            return Response({"detail": "INVALID_PAYLOAD"}, status=status.HTTP_400_BAD_REQUEST)

        event = payload.get("event", "")
        order_id, payment_id = _webhook_order_id(payload)
        if not order_id:
            logger.info("webhook without order reference", extra={"event": event})
            return Response({"status": "ignored"})

        try:
            applied = providers.get_status_service().handle_payment_event(order_id, event, payment_id)
        except OrderError as e:
            body, status_code = _error(e)
            return Response(body, status=status_code)
        return Response({"status": "processed" if applied else "ignored"})
