from django.urls import path

from .views import CartItemDetailView, CartItemsView, CartMergeView, CartView

app_name = "cart"

urlpatterns = [
    path("", CartView.as_view(), name="cart"),
    path("items/", CartItemsView.as_view(), name="items"),
    path("items/<int:item_id>/", CartItemDetailView.as_view(), name="item-detail"),
    path("merge/", CartMergeView.as_view(), name="merge"),
]
