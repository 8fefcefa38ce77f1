"""Audit trail writes, suspicious-activity heuristics and staff endpoints."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from apps.audit.models import AdminSession, AuditLog, SecurityEvent
from apps.audit.service import AuditService

IST = ZoneInfo("Asia/Kolkata")
NOW = datetime(2024, 3, 5, 3, 0, tzinfo=IST)


def log(service, admin_id="7", success=True, **kw):
    return service.log_admin_action(
        admin_id=admin_id, action="order_status_update", resource="order", success=success, **kw
    )


@pytest.mark.django_db
def test_repeated_failures_are_flagged(settings):
    settings.AUDIT_FAILED_ACTION_THRESHOLD = 5
    svc = AuditService(now=lambda: NOW)
    for _ in range(5):
        log(svc, admin_id="7", success=False, error_message="Invalid status transition")
    for _ in range(4):
        log(svc, admin_id="8", success=False)

    out = svc.detect_suspicious_activity(window_hours=24)
    assert {"admin_id": "7", "pattern": "repeated_failures", "count": 5} in out["suspicious_patterns"]
    assert not any(p["admin_id"] == "8" for p in out["suspicious_patterns"])
    assert SecurityEvent.objects.filter(event_type="repeated_failures", admin_id="7").count() == 1


@pytest.mark.django_db
def test_off_hours_activity_is_flagged(settings):
    settings.AUDIT_OFF_HOURS_THRESHOLD = 10
    svc = AuditService(now=lambda: NOW)
    for _ in range(10):
        log(svc, admin_id="9")
    # 02:00 local time, inside the window
    AuditLog.objects.update(created_at=NOW - timedelta(hours=1))
    # outside the window: ignored
    stale = log(svc, admin_id="9")
    AuditLog.objects.filter(pk=stale.pk).update(created_at=NOW - timedelta(days=3))

    out = svc.detect_suspicious_activity(window_hours=24)
    assert out["total_checked"] == 10
    assert out["suspicious_patterns"] == [{"admin_id": "9", "pattern": "off_hours_activity", "count": 10}]


@pytest.mark.django_db
def test_admin_sessions_track_activity():
    svc = AuditService(now=lambda: NOW)
    svc.start_admin_session(admin_id="7", session_id="s-1", ip_address="10.0.0.1")
    log(svc, session_id="s-1")
    assert svc.end_admin_session("s-1") is True
    s = AdminSession.objects.get(session_id="s-1")
    assert s.is_active is False
    assert s.logout_time is not None


@pytest.mark.django_db
def test_staff_login_is_recorded(client, staff_user):
    client.force_login(staff_user)
    assert AuditLog.objects.filter(action="login", admin_id=str(staff_user.pk)).exists()
    assert AdminSession.objects.filter(admin_id=str(staff_user.pk), is_active=True).exists()


@pytest.mark.django_db
def test_audit_endpoints(client, staff_user):
    client.force_login(staff_user)
    svc = AuditService()
    log(svc, admin_id="7", success=False)
    log(svc, admin_id="7")

    r = client.get("/api/admin/audit/logs/", {"admin_id": "7", "success": "false"})
    assert r.status_code == 200
    assert r.json()["count"] == 1
    assert r.json()["results"][0]["success"] is False

    r = client.get("/api/admin/audit/suspicious/", {"hours": "1"})
    assert r.status_code == 200
    assert set(r.json()) == {"suspicious_patterns", "total_checked"}


@pytest.mark.django_db
def test_audit_endpoints_require_staff(client):
    assert client.get("/api/admin/audit/logs/").status_code in (401, 403)


@pytest.mark.django_db
def test_audit_endpoints_validate_numbers(client, staff_user):
    client.force_login(staff_user)
    assert client.get("/api/admin/audit/logs/", {"page_size": "0"}).json()["page_size"] == 1
    r = client.get("/api/admin/audit/logs/", {"page_size": "x"})
    assert r.status_code == 400
    assert r.json() == {"detail": "INVALID_QUERY", "error": "page_size must be an integer"}
    r = client.get("/api/admin/audit/suspicious/", {"hours": "a day"})
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_QUERY"
