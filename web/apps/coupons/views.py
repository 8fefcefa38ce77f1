"""HTTP views for coupons: storefront validation/listing and admin management."""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.audit.models import AuditAction, AuditResource
from apps.audit.service import audit_from_request
from gateway.params import paginate

from . import providers
from .models import Coupon
from .schemas import CouponCreateDTO, ValidateCouponDTO
from .service import format_for_display

logger = logging.getLogger(__name__)


def _user_id(request):
    return str(request.user.pk) if request.user.is_authenticated else None


class ValidateCouponView(APIView):
    """Check a code against a subtotal and product list before checkout."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons"

    def post(self, request):
        try:
            dto = ValidateCouponDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        result = providers.get_coupon_service().validate(dto.code, _user_id(request), dto.subtotal, dto.product_ids)
        if not result.is_valid:
            return Response({"valid": False, "error": result.error}, status=status.HTTP_200_OK)
        return Response(
            {
                "valid": True,
                "discount": str(result.discount),
                "coupon": format_for_display(result.coupon),
            }
        )


class AvailableCouponsView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "coupons"

    def get(self, request):
        coupons = providers.get_coupon_service().available_for(_user_id(request))
        return Response({"results": [format_for_display(c) for c in coupons]})


class HeaderCouponView(APIView):
    def get(self, request):
        coupon = providers.get_coupon_service().header_promotion()
        return Response({"coupon": format_for_display(coupon) if coupon else None})


class AdminCouponsView(APIView):
    """Staff listing and creation of coupons."""

    permission_classes = [IsAdminUser]

    def get(self, request):
        qs = Coupon.objects.order_by("-created_at")
        p, page_obj, page_size = paginate(request, qs)
        results = [
            {
                "id": c.id,
                "usage_count": c.usage_count,
                "usage_limit": c.usage_limit,
                "is_active": c.is_active,
                **format_for_display(c),
            }
            for c in page_obj.object_list
        ]
        return Response({"count": p.count, "page": page_obj.number, "page_size": page_size, "results": results})

    def post(self, request):
        try:
            dto = CouponCreateDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        if Coupon.objects.filter(code=dto.code).exists():
            return Response({"detail": "COUPON_EXISTS"}, status=status.HTTP_409_CONFLICT)

        coupon = Coupon.objects.create(**dto.model_dump())
        providers.get_coupon_service().invalidate()
        audit_from_request(
            request,
            action=AuditAction.COUPON_CREATE,
            resource=AuditResource.COUPON,
            resource_id=str(coupon.id),
            description=f"Created coupon {coupon.code}",
        )
        logger.info("coupon created", extra={"coupon_id": coupon.id, "code": coupon.code})
        return Response({"id": coupon.id, **format_for_display(coupon)}, status=status.HTTP_201_CREATED)
