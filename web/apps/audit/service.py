"""Audit trail for the back office.

Writes are best effort: a failure to record an audit row is logged and
never breaks the admin action that triggered it.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import Count, F
from django.utils import timezone

from .models import AdminSession, AuditLog, AuditSeverity, SecurityEvent, SecurityEventType

logger = logging.getLogger(__name__)

BUSINESS_HOURS = (6, 22)


def client_ip(request) -> Optional[str]:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.META.get("REMOTE_ADDR") or None


def _session_key(request) -> str:
    session = getattr(request, "session", None)
    return (getattr(session, "session_key", None) or "") if session is not None else ""


class AuditService:
    """Records admin actions, security events and admin sessions."""

    def __init__(self, now=timezone.now):
        self.now = now

    def log_admin_action(
        self,
        *,
        admin_id: str,
        action: str,
        resource: str,
        admin_email: str = "",
        resource_id: str = "",
        description: str = "",
        target_user_id: str = "",
        target_user_email: str = "",
        ip_address: Optional[str] = None,
        user_agent: str = "",
        session_id: str = "",
        severity: str = AuditSeverity.LOW,
        metadata: Optional[dict] = None,
        success: bool = True,
        error_message: str = "",
    ) -> Optional[AuditLog]:
        try:
            with transaction.atomic():
                entry = AuditLog.objects.create(
                    admin_id=str(admin_id),
                    admin_email=admin_email,
                    target_user_id=target_user_id,
                    target_user_email=target_user_email,
                    action=action,
                    resource=resource,
                    resource_id=resource_id,
                    description=description,
                    ip_address=ip_address,
                    user_agent=user_agent[:400],
                    session_id=session_id,
                    severity=severity,
                    metadata=metadata or {},
                    success=success,
                    error_message=error_message,
                )
                if session_id:
                    self.touch_admin_session(session_id)
            return entry
        except DatabaseError:
            logger.exception("audit log write failed", extra={"action": action, "admin_id": str(admin_id)})
            return None

    def log_security_event(
        self,
        *,
        event_type: str,
        description: str,
        severity: str = AuditSeverity.MEDIUM,
        user_id: str = "",
        admin_id: str = "",
        ip_address: Optional[str] = None,
        user_agent: str = "",
        metadata: Optional[dict] = None,
    ) -> Optional[SecurityEvent]:
        try:
            with transaction.atomic():
                event = SecurityEvent.objects.create(
                    event_type=event_type,
                    description=description,
                    severity=severity,
                    user_id=user_id,
                    admin_id=admin_id,
                    ip_address=ip_address,
                    user_agent=user_agent[:400],
                    metadata=metadata or {},
                )
        except DatabaseError:
            logger.exception("security event write failed", extra={"event_type": event_type})
            return None
        logger.warning("security event", extra={"event_type": event_type, "severity": severity})
        return event

    # ---- sessions ----
    def start_admin_session(self, *, admin_id: str, session_id: str, admin_email: str = "",
                            ip_address: Optional[str] = None, user_agent: str = "") -> Optional[AdminSession]:
        now = self.now()
        try:
            with transaction.atomic():
                session, _ = AdminSession.objects.update_or_create(
                    session_id=session_id,
                    defaults={
                        "admin_id": str(admin_id),
                        "admin_email": admin_email,
                        "ip_address": ip_address,
                        "user_agent": user_agent[:400],
                        "login_time": now,
                        "last_activity": now,
                        "is_active": True,
                        "logout_time": None,
                    },
                )
            return session
        except DatabaseError:
            logger.exception("admin session start failed", extra={"admin_id": str(admin_id)})
            return None

    def touch_admin_session(self, session_id: str) -> bool:
        return bool(
            AdminSession.objects.filter(session_id=session_id, is_active=True).update(
                last_activity=self.now(), actions_performed=F("actions_performed") + 1
            )
        )

    def end_admin_session(self, session_id: str) -> bool:
        now = self.now()
        try:
            return bool(
                AdminSession.objects.filter(session_id=session_id, is_active=True).update(
                    is_active=False, logout_time=now, last_activity=now
                )
            )
        except DatabaseError:
            logger.exception("admin session end failed")
            return False

    # ---- heuristics ----
    def detect_suspicious_activity(self, window_hours: int = 24) -> dict:
        """Flag admins with repeated failures or heavy off-hours activity.

        Looks at audit rows from the last ``window_hours``. An admin with at
        least ``AUDIT_FAILED_ACTION_THRESHOLD`` failed actions, or at least
        ``AUDIT_OFF_HOURS_THRESHOLD`` actions outside 06:00-22:00 local time,
        is reported and a ``SecurityEvent`` is recorded per finding.

        Returns:
            dict: ``{"suspicious_patterns": [...], "total_checked": int}``.
        """
        since = self.now() - timedelta(hours=window_hours)
        recent = AuditLog.objects.filter(created_at__gte=since)
        failed_threshold = getattr(settings, "AUDIT_FAILED_ACTION_THRESHOLD", 5)
        off_hours_threshold = getattr(settings, "AUDIT_OFF_HOURS_THRESHOLD", 10)

        patterns = []
        failures = (
            recent.filter(success=False)
            .values("admin_id")
            .annotate(n=Count("id"))
            .filter(n__gte=failed_threshold)
        )
        for row in failures:
            patterns.append({"admin_id": row["admin_id"], "pattern": "repeated_failures", "count": row["n"]})
            self.log_security_event(
                event_type=SecurityEventType.REPEATED_FAILURES,
                admin_id=row["admin_id"],
                severity=AuditSeverity.HIGH,
                description=f"{row['n']} failed admin actions in the last {window_hours}h",
                metadata={"count": row["n"], "window_hours": window_hours},
            )

        start, end = BUSINESS_HOURS
        off_hours = Counter()
        total = 0
        for admin_id, created_at in recent.values_list("admin_id", "created_at"):
            total += 1
            hour = timezone.localtime(created_at).hour
            if hour < start or hour >= end:
                off_hours[admin_id] += 1
        for admin_id, n in sorted(off_hours.items()):
            if n < off_hours_threshold:
                continue
            patterns.append({"admin_id": admin_id, "pattern": "off_hours_activity", "count": n})
            self.log_security_event(
                event_type=SecurityEventType.OFF_HOURS_ACTIVITY,
                admin_id=admin_id,
                severity=AuditSeverity.MEDIUM,
                description=f"{n} admin actions outside business hours in the last {window_hours}h",
                metadata={"count": n, "window_hours": window_hours},
            )

        return {"suspicious_patterns": patterns, "total_checked": total}


def audit_from_request(request, *, action: str, resource: str, **fields) -> Optional[AuditLog]:
    """Record an admin action using identity and client details from ``request``."""
    user = request.user
    return AuditService().log_admin_action(
        admin_id=str(user.pk),
        admin_email=getattr(user, "email", "") or "",
        action=action,
        resource=resource,
        ip_address=client_ip(request),
        user_agent=request.META.get("HTTP_USER_AGENT", ""),
        session_id=_session_key(request),
        **fields,
    )
