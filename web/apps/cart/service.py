"""Cart operations.

Carts belong to a signed-in user or to a guest session id and expire after
``CART_TTL_DAYS_REGISTERED`` / ``CART_TTL_DAYS_GUEST`` days. Totals are
recomputed with the order pricing rules after every mutation. Business
failures raise ``ValueError`` with a short code.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.catalog.models import Product
from apps.orders.domain import LineItem
from apps.orders.pricing import calculate_totals

from .models import CartItem, ShoppingCart

logger = logging.getLogger(__name__)

MAX_QUANTITY = 99


class CartService:
    def __init__(self, now=timezone.now):
        self.now = now

    # ---- lookup ----
    def _ttl(self, registered: bool) -> timedelta:
        days = settings.CART_TTL_DAYS_REGISTERED if registered else settings.CART_TTL_DAYS_GUEST
        return timedelta(days=days)

    def _owner_filter(self, user=None, session_id: Optional[str] = None) -> dict:
        if user is not None and user.is_authenticated:
            return {"user": user}
        if session_id:
            return {"user__isnull": True, "session_id": session_id}
        raise ValueError("SESSION_REQUIRED")

    def find_cart(self, user=None, session_id: Optional[str] = None) -> Optional[ShoppingCart]:
        """Return the live cart for the owner, or None. Expired carts are purged."""
        owner = self._owner_filter(user, session_id)
        cart = ShoppingCart.objects.filter(**owner).order_by("-created_at").first()
        if cart and cart.expires_at <= self.now():
            logger.info("expired cart discarded", extra={"cart_id": str(cart.id)})
            cart.delete()
            return None
        return cart

    def get_or_create_cart(self, user=None, session_id: Optional[str] = None) -> ShoppingCart:
        cart = self.find_cart(user, session_id)
        if cart:
            return cart
        registered = user is not None and user.is_authenticated
        return ShoppingCart.objects.create(
            user=user if registered else None,
            session_id="" if registered else session_id,
            expires_at=self.now() + self._ttl(registered),
        )

    # ---- mutations ----
    @transaction.atomic
    def add_item(self, cart: ShoppingCart, product_id, quantity: int) -> ShoppingCart:
        """Add ``quantity`` units, merging with an existing line for the product."""
        if quantity < 1 or quantity > MAX_QUANTITY:
            raise ValueError("INVALID_QUANTITY")
        product = Product.objects.filter(id=product_id, is_active=True).first()
        if product is None:
            raise ValueError("PRODUCT_NOT_FOUND")
        item, created = CartItem.objects.select_for_update().get_or_create(
            cart=cart, product=product, defaults={"quantity": quantity, "unit_price": product.price}
        )
        if not created:
            new_qty = item.quantity + quantity
            if new_qty > MAX_QUANTITY:
                raise ValueError("INVALID_QUANTITY")
            item.quantity = new_qty
            item.save(update_fields=["quantity"])
        return self.recompute(cart)

    @transaction.atomic
    def update_item(self, cart: ShoppingCart, item_id: int, quantity: int) -> ShoppingCart:
        """Set a line's quantity; zero or less removes the line."""
        if quantity > MAX_QUANTITY:
            raise ValueError("INVALID_QUANTITY")
        item = CartItem.objects.filter(cart=cart, id=item_id).first()
        if item is None:
            raise ValueError("ITEM_NOT_FOUND")
        if quantity <= 0:
            item.delete()
        else:
            item.quantity = quantity
            item.save(update_fields=["quantity"])
        return self.recompute(cart)

    @transaction.atomic
    def remove_item(self, cart: ShoppingCart, item_id: int) -> ShoppingCart:
        deleted, _ = CartItem.objects.filter(cart=cart, id=item_id).delete()
        if not deleted:
            raise ValueError("ITEM_NOT_FOUND")
        return self.recompute(cart)

    @transaction.atomic
    def clear(self, cart: ShoppingCart) -> ShoppingCart:
        cart.items.all().delete()
        return self.recompute(cart)

    @transaction.atomic
    def merge_guest_cart(self, user, session_id: str) -> ShoppingCart:
        """Move a guest session's lines into the user's cart after sign-in."""
        target = self.get_or_create_cart(user=user)
        guest = self.find_cart(session_id=session_id) if session_id else None
        if guest is None:
            return target
        for item in guest.items.select_related("product"):
            existing = CartItem.objects.filter(cart=target, product=item.product).first()
            if existing:
                existing.quantity = min(existing.quantity + item.quantity, MAX_QUANTITY)
                existing.save(update_fields=["quantity"])
            else:
                CartItem.objects.create(
                    cart=target, product=item.product, quantity=item.quantity, unit_price=item.unit_price
                )
        guest.delete()
        logger.info("guest cart merged", extra={"cart_id": str(target.id)})
        return self.recompute(target)

    def recompute(self, cart: ShoppingCart) -> ShoppingCart:
        totals = calculate_totals(cart.items.all())
        cart.subtotal = totals.subtotal
        cart.tax = totals.tax
        cart.shipping = totals.shipping
        cart.total = totals.total
        cart.save(update_fields=["subtotal", "tax", "shipping", "total", "updated_at"])
        return cart

    # ---- checkout ----
    @staticmethod
    def line_items(cart: Optional[ShoppingCart]) -> List[LineItem]:
        if cart is None:
            return []
        return [
            LineItem(product_id=str(i.product_id), quantity=i.quantity, unit_price=i.unit_price)
            for i in cart.items.all()
        ]


def cart_to_dict(cart: ShoppingCart) -> dict:
    return {
        "id": str(cart.id),
        "items": [
            {
                "id": i.id,
                "product_id": str(i.product_id),
                "name": i.product.name,
                "quantity": i.quantity,
                "unit_price": str(i.unit_price),
                "total_price": str(i.total_price),
            }
            for i in cart.items.select_related("product")
        ],
        "subtotal": str(cart.subtotal),
        "tax": str(cart.tax),
        "shipping": str(cart.shipping),
        "total": str(cart.total),
        "expires_at": cart.expires_at.isoformat(),
    }
