# backend/clinic_core/audit/apps.py
from __future__ import annotations

from django.apps import AppConfig


class AuditConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinic_core.audit"

    def ready(self) -> None:
        import clinic_core.audit.signals  # noqa: F401
        from clinic_core.audit.constants import AUTH_RESOURCE_TYPE
        from clinic_core.audit.resources import register_resource

        register_resource(AUTH_RESOURCE_TYPE, label="Authentication", data_type="authentication_data")
