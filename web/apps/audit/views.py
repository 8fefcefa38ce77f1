"""Staff endpoints over the audit trail."""

from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from gateway.params import int_param, paginate

from .models import AuditLog
from .service import AuditService

FILTERS = ("admin_id", "action", "resource", "severity")


def log_to_dict(e: AuditLog) -> dict:
    return {
        "id": e.id,
        "admin_id": e.admin_id,
        "admin_email": e.admin_email,
        "action": e.action,
        "resource": e.resource,
        "resource_id": e.resource_id,
        "description": e.description,
        "severity": e.severity,
        "success": e.success,
        "error_message": e.error_message,
        "ip_address": e.ip_address,
        "metadata": e.metadata,
        "created_at": e.created_at.isoformat(),
    }


class AuditLogListView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        qs = AuditLog.objects.order_by("-created_at")
        for name in FILTERS:
            value = request.GET.get(name)
            if value:
                qs = qs.filter(**{name: value})
        if request.GET.get("success") in ("true", "false"):
            qs = qs.filter(success=request.GET["success"] == "true")

        p, page_obj, page_size = paginate(request, qs, default_size=50, max_size=200)
        return Response(
            {
                "count": p.count,
                "page": page_obj.number,
                "page_size": page_size,
                "results": [log_to_dict(e) for e in page_obj.object_list],
            }
        )


class SuspiciousActivityView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        hours = int_param(request, "hours", 24, lo=1, hi=24 * 30)
        return Response(AuditService().detect_suspicious_activity(window_hours=hours))
