from django.urls import path

from .views import AuditLogListView, SuspiciousActivityView

app_name = "audit"

urlpatterns = [
    path("logs/", AuditLogListView.as_view(), name="logs"),
    path("suspicious/", SuspiciousActivityView.as_view(), name="suspicious"),
]
