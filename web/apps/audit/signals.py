"""Track staff login windows as ``AdminSession`` rows."""

from django.contrib.auth.signals import user_logged_in, user_logged_out
from django.dispatch import receiver

from .models import AuditAction, AuditResource
from .service import AuditService, client_ip


@receiver(user_logged_in)
def staff_logged_in(sender, request, user, **kwargs):
    if not user.is_staff or request is None:
        return
    if not request.session.session_key:
        request.session.save()
    service = AuditService()
    service.start_admin_session(
        admin_id=str(user.pk),
        admin_email=user.email or "",
        session_id=request.session.session_key,
        ip_address=client_ip(request),
        user_agent=request.META.get("HTTP_USER_AGENT", ""),
    )
    service.log_admin_action(
        admin_id=str(user.pk),
        admin_email=user.email or "",
        action=AuditAction.LOGIN,
        resource=AuditResource.SESSION,
        ip_address=client_ip(request),
        session_id=request.session.session_key,
    )


@receiver(user_logged_out)
def staff_logged_out(sender, request, user, **kwargs):
    if user is None or not user.is_staff or request is None:
        return
    key = request.session.session_key
    if key:
        AuditService().end_admin_session(key)
