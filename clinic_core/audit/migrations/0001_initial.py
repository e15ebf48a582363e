import uuid

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("CREATE", "Create"),
                            ("UPDATE", "Update"),
                            ("DELETE", "Delete"),
                            ("LOGIN", "Login"),
                            ("LOGOUT", "Logout"),
                            ("LOGIN_FAILED", "Login Failed"),
                            ("TOKEN_REFRESH", "Token Refresh"),
                            ("TOKEN_REFRESH_FAILED", "Token Refresh Failed"),
                            ("VIEW_LIST", "View List"),
                            ("VIEW_DETAILED", "View Detailed"),
                            ("EXPORT", "Export"),
                            ("UNKNOWN", "Unknown"),
                        ],
                        db_index=True,
                        max_length=32,
                    ),
                ),
                ("resource_type", models.CharField(db_index=True, max_length=64)),
                ("resource_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("before_state", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("after_state", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("source_ip", models.GenericIPAddressField(blank=True, db_index=True, null=True)),
                ("user_agent", models.TextField(blank=True, default="")),
                ("occurred_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "audit_audit_event",
                "ordering": ["occurred_at", "id"],
                "indexes": [
                    models.Index(fields=["resource_type", "occurred_at"], name="audit_res_type_time_idx"),
                    models.Index(fields=["actor", "occurred_at"], name="audit_actor_time_idx"),
                    models.Index(fields=["action", "occurred_at"], name="audit_action_time_idx"),
                ],
            },
        ),
    ]
