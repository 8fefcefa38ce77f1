from django.db import models


class Coupon(models.Model):
    """Promotional code.

    User and product scopes are stored as JSON lists of ids; an empty list
    means "no restriction".
    """

    class DiscountType(models.TextChoices):
        PERCENTAGE = "percentage"
        FIXED_AMOUNT = "fixed_amount"

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    value = models.DecimalField(max_digits=12, decimal_places=2)
    minimum_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    maximum_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    user_usage_limit = models.PositiveIntegerField(null=True, blank=True)
    allowed_users = models.JSONField(default=list, blank=True)
    excluded_users = models.JSONField(default=list, blank=True)
    applicable_products = models.JSONField(default=list, blank=True)
    excluded_products = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    show_on_header = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    @property
    def is_user_restricted(self) -> bool:
        return bool(self.allowed_users or self.excluded_users)

    def __str__(self):
        return self.code


class UserCoupon(models.Model):
    """Per-user usage counter for a coupon."""

    user_id = models.CharField(max_length=64)
    coupon = models.ForeignKey(Coupon, on_delete=models.CASCADE, related_name="user_usages")
    usage_count = models.PositiveIntegerField(default=0)
    last_used_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "user_coupons"
        constraints = [models.UniqueConstraint(fields=["user_id", "coupon"], name="uniq_user_coupon")]
