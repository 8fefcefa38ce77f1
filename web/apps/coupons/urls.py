from django.urls import path

from .views import AvailableCouponsView, HeaderCouponView, ValidateCouponView

app_name = "coupons"

urlpatterns = [
    path("validate/", ValidateCouponView.as_view(), name="validate"),
    path("available/", AvailableCouponsView.as_view(), name="available"),
    path("header/", HeaderCouponView.as_view(), name="header"),
]
