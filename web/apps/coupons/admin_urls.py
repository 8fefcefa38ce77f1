from django.urls import path

from .views import AdminCouponsView

app_name = "coupons_admin"

urlpatterns = [
    path("", AdminCouponsView.as_view(), name="collection"),
]
