import uuid

from django.conf import settings
from django.db import models


def _money(**kw):
    return models.DecimalField(max_digits=12, decimal_places=2, default=0, **kw)


class ShoppingCart(models.Model):
    """Pre-order basket owned by a user or by a guest session id."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE, related_name="carts"
    )
    session_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    subtotal = _money()
    tax = _money()
    shipping = _money()
    total = _money()
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "shopping_carts"

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


class CartItem(models.Model):
    cart = models.ForeignKey(ShoppingCart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey("catalog.Product", on_delete=models.CASCADE)
    quantity = models.PositiveIntegerField(default=1)
    # price captured when the item was added
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "cart_items"
        ordering = ["added_at", "id"]
        constraints = [models.UniqueConstraint(fields=["cart", "product"], name="uniq_cart_product")]

    @property
    def total_price(self):
        return self.unit_price * self.quantity
