# backend/clinic_core/audit/admin.py
from django.contrib import admin

from clinic_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = (
        "occurred_at",
        "action",
        "resource_type",
        "resource_id",
        "actor",
        "source_ip",
    )
    list_filter = ("action", "resource_type")
    search_fields = ("resource_type", "resource_id", "description", "source_ip")
    ordering = ("-occurred_at",)

    # Audit rows are append-only; the admin is a viewer.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
