# backend/clinic_core/audit/models.py
import uuid

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from clinic_core.audit.exceptions import ImmutableAuditEvent


class AuditAction(models.TextChoices):
    CREATE = "CREATE", "Create"
    UPDATE = "UPDATE", "Update"
    DELETE = "DELETE", "Delete"
    LOGIN = "LOGIN", "Login"
    LOGOUT = "LOGOUT", "Logout"
    LOGIN_FAILED = "LOGIN_FAILED", "Login Failed"
    TOKEN_REFRESH = "TOKEN_REFRESH", "Token Refresh"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED", "Token Refresh Failed"
    VIEW_LIST = "VIEW_LIST", "View List"
    VIEW_DETAILED = "VIEW_DETAILED", "View Detailed"
    EXPORT = "EXPORT", "Export"
    UNKNOWN = "UNKNOWN", "Unknown"


class AuditEvent(models.Model):
    """
    Immutable audit record: one business-relevant action by one actor.
    Rows are only ever inserted; reports derive everything else on read.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="audit_events",
        null=True,
        blank=True,
    )

    action = models.CharField(max_length=32, choices=AuditAction.choices, db_index=True)
    resource_type = models.CharField(max_length=64, db_index=True)  # e.g. "Patient"
    resource_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    before_state = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    after_state = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    description = models.TextField(blank=True, default="")

    source_ip = models.GenericIPAddressField(null=True, blank=True, db_index=True)
    user_agent = models.TextField(blank=True, default="")

    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "audit_audit_event"
        ordering = ["occurred_at", "id"]
        indexes = [
            models.Index(fields=["resource_type", "occurred_at"], name="audit_res_type_time_idx"),
            models.Index(fields=["actor", "occurred_at"], name="audit_actor_time_idx"),
            models.Index(fields=["action", "occurred_at"], name="audit_action_time_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.resource_type}:{self.resource_id or '-'} @ {self.occurred_at:%Y-%m-%d %H:%M:%S}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableAuditEvent("Audit events cannot be modified.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableAuditEvent("Audit events cannot be deleted.")
