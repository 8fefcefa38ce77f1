from django.urls import path

from .views import (
    AdminOrdersView,
    AdminOrderStatusView,
    CancelOrderView,
    CheckoutView,
    GuestOrderLookupView,
    InvoiceView,
    PaymentWebhookView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("", CheckoutView.as_view(), name="orders-collection"),  # GET own orders / POST checkout
    path("lookup/", GuestOrderLookupView.as_view(), name="orders-lookup"),
    path("<uuid:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<uuid:oid>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
    path("<uuid:oid>/invoice/", InvoiceView.as_view(), name="orders-invoice"),
]

admin_urlpatterns = [
    path("", AdminOrdersView.as_view(), name="list"),
    path("<uuid:oid>/status/", AdminOrderStatusView.as_view(), name="status"),
]

payment_urlpatterns = [
    path("webhook/", PaymentWebhookView.as_view(), name="webhook"),
]
