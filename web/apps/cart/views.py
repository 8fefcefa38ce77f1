"""Cart endpoints.

The caller is identified by the session user, or by the ``X-Session-Id``
header for guests. Business errors come back as ``{"detail": CODE}``.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .schemas import AddItemDTO, UpdateItemDTO
from .service import CartService, cart_to_dict

ERROR_STATUS = {
    "SESSION_REQUIRED": 400,
    "INVALID_QUANTITY": 400,
    "PRODUCT_NOT_FOUND": 404,
    "ITEM_NOT_FOUND": 404,
}


def session_id_of(request) -> str:
    return request.headers.get("X-Session-Id", "").strip()[:64]


def _error(e: ValueError) -> Response:
    code = str(e)
    return Response({"detail": code}, status=ERROR_STATUS.get(code, 400))


class CartBaseView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "cart"

    def owner(self, request) -> dict:
        return {"user": request.user, "session_id": session_id_of(request)}


class CartView(CartBaseView):
    def get(self, request):
        try:
            cart = CartService().get_or_create_cart(**self.owner(request))
        except ValueError as e:
            return _error(e)
        return Response(cart_to_dict(cart))

    def delete(self, request):
        service = CartService()
        try:
            cart = service.get_or_create_cart(**self.owner(request))
        except ValueError as e:
            return _error(e)
        return Response(cart_to_dict(service.clear(cart)))


class CartItemsView(CartBaseView):
    def post(self, request):
        try:
            dto = AddItemDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        service = CartService()
        try:
            cart = service.get_or_create_cart(**self.owner(request))
            cart = service.add_item(cart, dto.product_id, dto.quantity)
        except ValueError as e:
            return _error(e)
        return Response(cart_to_dict(cart), status=status.HTTP_201_CREATED)


class CartItemDetailView(CartBaseView):
    def patch(self, request, item_id: int):
        try:
            dto = UpdateItemDTO.model_validate(request.data)
        except ValidationError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        service = CartService()
        try:
            cart = service.get_or_create_cart(**self.owner(request))
            cart = service.update_item(cart, item_id, dto.quantity)
        except ValueError as e:
            return _error(e)
        return Response(cart_to_dict(cart))

    def delete(self, request, item_id: int):
        service = CartService()
        try:
            cart = service.get_or_create_cart(**self.owner(request))
            cart = service.remove_item(cart, item_id)
        except ValueError as e:
            return _error(e)
        return Response(cart_to_dict(cart))


class CartMergeView(CartBaseView):
    """Fold the guest cart named by ``X-Session-Id`` into the user's cart."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        cart = CartService().merge_guest_cart(request.user, session_id_of(request))
        return Response(cart_to_dict(cart))
