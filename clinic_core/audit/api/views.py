# backend/clinic_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from clinic_core.audit.api.serializers import (
    ActivityQuerySerializer,
    ActivitySummarySerializer,
    AuditEventSerializer,
    AuditFacetsSerializer,
    DashboardSerializer,
    GdprEventSerializer,
    GdprFacetsSerializer,
    PatientAccessQuerySerializer,
    PatientAccessReportSerializer,
    SecurityEventSerializer,
    SecurityEventsQuerySerializer,
)
from clinic_core.audit.budget import run_with_fallback
from clinic_core.audit.conf import audit_settings
from clinic_core.audit.facets import audit_filter_options, gdpr_filter_options
from clinic_core.audit.filters import AuditEventFilter, GdprEventFilter
from clinic_core.audit.models import AuditEvent
from clinic_core.audit.reports import build_activity_summary, build_dashboard, build_patient_access_reports
from clinic_core.audit.security import detect_security_events
from clinic_core.audit.selectors import list_audit_events, list_gdpr_events
from clinic_core.audit.store import DatabaseEventStore
from clinic_core.common.api.exceptions import build_success_envelope
from clinic_core.common.api.pagination import paginate
from clinic_core.common.permissions import AuditLogPermission, AuditReportPermission, GdprLogPermission


def _ok(data) -> Response:
    return Response(build_success_envelope(data))


def _query(serializer_class, request) -> dict:
    ser = serializer_class(data=request.query_params)
    ser.is_valid(raise_exception=True)
    return ser.validated_data


_LOG_PARAMS = [
    OpenApiParameter("start_date", OpenApiTypes.DATETIME, OpenApiParameter.QUERY, required=False),
    OpenApiParameter("end_date", OpenApiTypes.DATETIME, OpenApiParameter.QUERY, required=False),
    OpenApiParameter("action", OpenApiTypes.STR, OpenApiParameter.QUERY, required=False),
    OpenApiParameter("resource_id", OpenApiTypes.STR, OpenApiParameter.QUERY, required=False),
    OpenApiParameter("page", OpenApiTypes.INT, OpenApiParameter.QUERY, required=False),
    OpenApiParameter(
        "limit",
        OpenApiTypes.INT,
        OpenApiParameter.QUERY,
        required=False,
        description="Page size (default 50, max 100).",
    ),
]


class AuditLogViewSet(viewsets.GenericViewSet):
    """
    Paginated audit trail (admin) and a caller's own trail.
    """
    permission_classes = [AuditLogPermission]
    serializer_class = AuditEventSerializer
    filterset_class = AuditEventFilter
    queryset = AuditEvent.objects.none()

    def get_queryset(self):
        return list_audit_events()

    @extend_schema(tags=["Audit"], responses={200: AuditEventSerializer(many=True)})
    def list(self, request):
        qs = self.filter_queryset(self.get_queryset())
        return paginate(request, qs, AuditEventSerializer)

    @extend_schema(
        tags=["Audit"],
        parameters=_LOG_PARAMS,
        responses={200: AuditEventSerializer(many=True)},
        description="The caller's own audit trail. user_id is ignored.",
    )
    @action(detail=False, methods=["get"], url_path="mine", filterset_class=None)
    def mine(self, request):
        params = request.query_params.copy()
        params.pop("user_id", None)

        fs = AuditEventFilter(data=params, queryset=list_audit_events(actor_id=request.user.pk), request=request)
        if not fs.is_valid():
            raise ValidationError(fs.errors)
        return paginate(request, fs.qs, AuditEventSerializer)

    @extend_schema(tags=["Audit"], responses={200: AuditFacetsSerializer})
    @action(detail=False, methods=["get"], url_path="filter-options", filterset_class=None)
    def filter_options(self, request):
        facets = audit_filter_options(DatabaseEventStore())
        return _ok(AuditFacetsSerializer(facets).data)


class GdprLogViewSet(viewsets.GenericViewSet):
    """
    Audit events that process personal data, classified for GDPR.
    """
    permission_classes = [GdprLogPermission]
    serializer_class = GdprEventSerializer
    filterset_class = GdprEventFilter
    queryset = AuditEvent.objects.none()

    def get_queryset(self):
        return list_gdpr_events()

    @extend_schema(tags=["GDPR"], responses={200: GdprEventSerializer(many=True)})
    def list(self, request):
        qs = self.filter_queryset(self.get_queryset())
        return paginate(request, qs, GdprEventSerializer)

    @extend_schema(tags=["GDPR"], responses={200: GdprFacetsSerializer})
    @action(detail=False, methods=["get"], url_path="filter-options", filterset_class=None)
    def filter_options(self, request):
        facets = gdpr_filter_options(DatabaseEventStore())
        return _ok(GdprFacetsSerializer(facets).data)


class AuditReportViewSet(viewsets.GenericViewSet):
    """
    Derived compliance and security reports. Nothing here is persisted.

    Each report runs under AUDIT_REPORT_TIMEOUT_SECONDS. A timed out report
    is retried once over a shorter period and returned with degraded=true.
    """
    permission_classes = [AuditReportPermission]
    serializer_class = PatientAccessReportSerializer
    queryset = AuditEvent.objects.none()
    pagination_class = None
    filter_backends: list = []

    @extend_schema(
        tags=["Audit Reports"],
        parameters=[PatientAccessQuerySerializer],
        responses={200: PatientAccessReportSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="patient-access")
    def patient_access(self, request):
        conf = audit_settings()
        q = _query(PatientAccessQuerySerializer, request)
        store = DatabaseEventStore()

        result = run_with_fallback(
            lambda span, deadline: build_patient_access_reports(
                store,
                days=span,
                patient_id=q.get("patient_id"),
                window=conf.session_window_seconds,
                deadline=deadline,
                include_accesses=q["include_accesses"],
                burst_gap=conf.burst_gap_seconds,
            ),
            span=q.get("days") or conf.patient_report_days,
            seconds=conf.report_timeout_seconds,
            factor=conf.degraded_window_factor,
        )
        return _ok({
            "days": result.span,
            "degraded": result.degraded,
            "reports": PatientAccessReportSerializer(result.value, many=True).data,
        })

    @extend_schema(
        tags=["Audit Reports"],
        parameters=[SecurityEventsQuerySerializer],
        responses={200: SecurityEventSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="security-events")
    def security_events(self, request):
        conf = audit_settings()
        q = _query(SecurityEventsQuerySerializer, request)
        store = DatabaseEventStore()

        result = run_with_fallback(
            lambda span, deadline: detect_security_events(
                store,
                hours=span,
                failure_threshold=conf.failed_login_threshold,
                high_threshold=conf.failed_login_high_threshold,
                deadline=deadline,
            ),
            span=q.get("hours") or conf.security_window_hours,
            seconds=conf.report_timeout_seconds,
            factor=conf.degraded_window_factor,
        )
        return _ok({
            "hours": result.span,
            "degraded": result.degraded,
            "events": SecurityEventSerializer(result.value, many=True).data,
        })

    @extend_schema(
        tags=["Audit Reports"],
        parameters=[ActivityQuerySerializer],
        responses={200: ActivitySummarySerializer},
    )
    @action(detail=False, methods=["get"], url_path="activity-summary")
    def activity_summary(self, request):
        conf = audit_settings()
        q = _query(ActivityQuerySerializer, request)
        store = DatabaseEventStore()

        result = run_with_fallback(
            lambda span, deadline: build_activity_summary(store, days=span, deadline=deadline),
            span=q["days"],
            seconds=conf.report_timeout_seconds,
            factor=conf.degraded_window_factor,
        )
        return _ok({
            "days": result.span,
            "degraded": result.degraded,
            "summary": ActivitySummarySerializer(result.value).data,
        })

    @extend_schema(
        tags=["Audit Reports"],
        parameters=[ActivityQuerySerializer],
        responses={200: DashboardSerializer},
    )
    @action(detail=False, methods=["get"], url_path="dashboard")
    def dashboard(self, request):
        conf = audit_settings()
        q = _query(ActivityQuerySerializer, request)
        store = DatabaseEventStore()

        result = run_with_fallback(
            lambda span, deadline: build_dashboard(
                store,
                days=span,
                security_hours=conf.security_window_hours,
                failure_threshold=conf.failed_login_threshold,
                high_threshold=conf.failed_login_high_threshold,
                window=conf.session_window_seconds,
                deadline=deadline,
            ),
            span=q["days"],
            seconds=conf.report_timeout_seconds,
            factor=conf.degraded_window_factor,
        )
        return _ok({
            "days": result.span,
            "degraded": result.degraded,
            "dashboard": DashboardSerializer(result.value).data,
        })
