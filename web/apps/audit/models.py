from django.db import models


class AuditAction(models.TextChoices):
    LOGIN = "login"
    LOGOUT = "logout"
    ORDER_VIEW = "order_view"
    ORDER_STATUS_UPDATE = "order_status_update"
    ORDER_CANCEL = "order_cancel"
    ORDER_REFUND = "order_refund"
    COUPON_CREATE = "coupon_create"
    COUPON_UPDATE = "coupon_update"
    COUPON_DELETE = "coupon_delete"
    PRODUCT_UPDATE = "product_update"
    INVENTORY_UPDATE = "inventory_update"
    USER_UPDATE = "user_update"
    AUDIT_VIEW = "audit_view"


class AuditResource(models.TextChoices):
    ORDER = "order"
    COUPON = "coupon"
    PRODUCT = "product"
    INVENTORY = "inventory"
    USER = "user"
    SESSION = "session"
    AUDIT_LOG = "audit_log"
    PAYMENT = "payment"


class AuditSeverity(models.TextChoices):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(models.TextChoices):
    FAILED_LOGIN = "failed_login"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    REPEATED_FAILURES = "repeated_failures"
    OFF_HOURS_ACTIVITY = "off_hours_activity"
    INVALID_WEBHOOK_SIGNATURE = "invalid_webhook_signature"
    UNAUTHORIZED_ACCESS = "unauthorized_access"


class AuditLog(models.Model):
    """Append-only record of an administrative action."""

    admin_id = models.CharField(max_length=64, db_index=True)
    admin_email = models.CharField(max_length=254, blank=True, default="")
    target_user_id = models.CharField(max_length=64, blank=True, default="")
    target_user_email = models.CharField(max_length=254, blank=True, default="")
    action = models.CharField(max_length=32, choices=AuditAction.choices, db_index=True)
    resource = models.CharField(max_length=32, choices=AuditResource.choices)
    resource_id = models.CharField(max_length=64, blank=True, default="")
    description = models.TextField(blank=True, default="")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=400, blank=True, default="")
    session_id = models.CharField(max_length=64, blank=True, default="")
    severity = models.CharField(max_length=16, choices=AuditSeverity.choices, default=AuditSeverity.LOW)
    metadata = models.JSONField(default=dict, blank=True)
    success = models.BooleanField(default=True)
    error_message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-created_at"]


class SecurityEvent(models.Model):
    event_type = models.CharField(max_length=32, choices=SecurityEventType.choices)
    user_id = models.CharField(max_length=64, blank=True, default="")
    admin_id = models.CharField(max_length=64, blank=True, default="")
    severity = models.CharField(max_length=16, choices=AuditSeverity.choices, default=AuditSeverity.MEDIUM)
    description = models.TextField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=400, blank=True, default="")
    location = models.CharField(max_length=120, blank=True, default="")
    resolved = models.BooleanField(default=False)
    resolved_by = models.CharField(max_length=64, blank=True, default="")
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolution_notes = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "security_events"
        ordering = ["-created_at"]


class AdminSession(models.Model):
    admin_id = models.CharField(max_length=64, db_index=True)
    admin_email = models.CharField(max_length=254, blank=True, default="")
    session_id = models.CharField(max_length=64, unique=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=400, blank=True, default="")
    location = models.CharField(max_length=120, blank=True, default="")
    login_time = models.DateTimeField()
    logout_time = models.DateTimeField(null=True, blank=True)
    last_activity = models.DateTimeField()
    is_active = models.BooleanField(default=True)
    actions_performed = models.PositiveIntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "admin_sessions"
        ordering = ["-login_time"]
