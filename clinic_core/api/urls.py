# backend/clinic_core/api/urls.py
from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from clinic_core.audit.api.views import AuditLogViewSet, AuditReportViewSet, GdprLogViewSet
from clinic_core.common.api.auth import LoginView, RefreshView

router = DefaultRouter()

router.register(r"audit/logs", AuditLogViewSet, basename="audit-logs")
router.register(r"audit/gdpr-logs", GdprLogViewSet, basename="audit-gdpr-logs")
router.register(r"audit/reports", AuditReportViewSet, basename="audit-reports")

urlpatterns = [
    # Auth
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/refresh/", RefreshView.as_view(), name="refresh"),

    *router.urls,
]
