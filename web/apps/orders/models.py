import uuid

from django.db import models

ADDRESS_FIELDS = ("full_name", "line1", "line2", "city", "state", "postal_code", "country", "phone")


def _money(**kw):
    return models.DecimalField(max_digits=12, decimal_places=2, **kw)


class OrderModel(models.Model):
    # UUID PK exposed by the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    confirmation_number = models.CharField(max_length=32, unique=True)

    # registered user pk, or "guest_<hash>"
    customer_id = models.CharField(max_length=64, db_index=True)
    is_guest = models.BooleanField(default=False)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=20)

    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        SHIPPED = "shipped"
        DELIVERED = "delivered"
        CANCELLED = "cancelled"
        REFUNDED = "refunded"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        FAILED = "failed"
        REFUNDED = "refunded"

    class PaymentMethod(models.TextChoices):
        RAZORPAY = "razorpay"
        CASH_ON_DELIVERY = "cash_on_delivery"

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=32, choices=PaymentMethod.choices, default=PaymentMethod.RAZORPAY)
    payment_id = models.CharField(max_length=64, blank=True, default="")

    subtotal = _money()
    tax = _money()
    shipping = _money()
    coupon_discount = _money(default=0)
    total_amount = _money()
    coupon = models.ForeignKey("coupons.Coupon", null=True, blank=True, on_delete=models.SET_NULL, related_name="orders")
    coupon_code = models.CharField(max_length=50, blank=True, default="")

    # address snapshots, copied at checkout
    shipping_full_name = models.CharField(max_length=120)
    shipping_line1 = models.CharField(max_length=200)
    shipping_line2 = models.CharField(max_length=200, blank=True, default="")
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_postal_code = models.CharField(max_length=10)
    shipping_country = models.CharField(max_length=60, default="India")
    shipping_phone = models.CharField(max_length=20, blank=True, default="")
    billing_full_name = models.CharField(max_length=120)
    billing_line1 = models.CharField(max_length=200)
    billing_line2 = models.CharField(max_length=200, blank=True, default="")
    billing_city = models.CharField(max_length=100)
    billing_state = models.CharField(max_length=100)
    billing_postal_code = models.CharField(max_length=10)
    billing_country = models.CharField(max_length=60, default="India")
    billing_phone = models.CharField(max_length=20, blank=True, default="")

    tracking_number = models.CharField(max_length=64, blank=True, default="")
    estimated_delivery = models.DateField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    admin_notes = models.TextField(blank=True, default="")
    # false when checkout went ahead without an inventory reservation
    inventory_reserved = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]


class OrderItemModel(models.Model):
    order = models.ForeignKey(OrderModel, on_delete=models.CASCADE, related_name="items")
    # plain reference: the line must survive product deletion
    product_id = models.UUIDField(db_index=True)
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField()
    unit_price = _money()
    total_price = _money()

    class Meta:
        db_table = "order_items"
        ordering = ["id"]


class IdempotencyKey(models.Model):
    key = models.CharField(max_length=128, unique=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
