# backend/clinic_core/audit/conf.py
from __future__ import annotations

from dataclasses import dataclass, field

from django.conf import settings


@dataclass(frozen=True)
class AuditSettings:
    burst_gap_seconds: int = 30
    session_window_seconds: int = 300
    patient_report_days: int = 30
    security_window_hours: int = 24
    failed_login_threshold: int = 5
    failed_login_high_threshold: int = 10
    report_timeout_seconds: float = 20.0
    degraded_window_factor: float = 0.25
    query_chunk_size: int = 2000
    patient_data_routes: dict[str, str] = field(default_factory=dict)
    middleware_skip_prefixes: tuple[str, ...] = ()


def audit_settings() -> AuditSettings:
    """
    Read the AUDIT_* knobs on every call so override_settings works in tests.
    """
    d = AuditSettings()
    return AuditSettings(
        burst_gap_seconds=int(getattr(settings, "AUDIT_BURST_GAP_SECONDS", d.burst_gap_seconds)),
        session_window_seconds=int(getattr(settings, "AUDIT_SESSION_WINDOW_SECONDS", d.session_window_seconds)),
        patient_report_days=int(getattr(settings, "AUDIT_PATIENT_REPORT_DAYS", d.patient_report_days)),
        security_window_hours=int(getattr(settings, "AUDIT_SECURITY_WINDOW_HOURS", d.security_window_hours)),
        failed_login_threshold=int(getattr(settings, "AUDIT_FAILED_LOGIN_THRESHOLD", d.failed_login_threshold)),
        failed_login_high_threshold=int(
            getattr(settings, "AUDIT_FAILED_LOGIN_HIGH_THRESHOLD", d.failed_login_high_threshold)
        ),
        report_timeout_seconds=float(getattr(settings, "AUDIT_REPORT_TIMEOUT_SECONDS", d.report_timeout_seconds)),
        degraded_window_factor=float(getattr(settings, "AUDIT_DEGRADED_WINDOW_FACTOR", d.degraded_window_factor)),
        query_chunk_size=int(getattr(settings, "AUDIT_QUERY_CHUNK_SIZE", d.query_chunk_size)),
        patient_data_routes=dict(getattr(settings, "AUDIT_PATIENT_DATA_ROUTES", {}) or {}),
        middleware_skip_prefixes=tuple(getattr(settings, "AUDIT_MIDDLEWARE_SKIP_PREFIXES", ()) or ()),
    )
