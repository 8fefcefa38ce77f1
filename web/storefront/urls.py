from django.urls import include, path

from apps.orders.urls import admin_urlpatterns as order_admin_urls
from apps.orders.urls import payment_urlpatterns

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/catalog/", include("apps.catalog.urls")),
    path("api/cart/", include("apps.cart.urls")),
    path("api/coupons/", include("apps.coupons.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/admin/orders/", include((order_admin_urls, "orders_admin"))),
    path("api/admin/coupons/", include("apps.coupons.admin_urls")),
    path("api/admin/audit/", include("apps.audit.urls")),
    path("api/payments/", include((payment_urlpatterns, "payments"))),
]
