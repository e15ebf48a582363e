# backend/clinic_core/audit/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from clinic_core.audit.gdpr import classify
from clinic_core.audit.models import AuditEvent
from clinic_core.audit.selectors import actor_info


class SortedListField(serializers.ListField):
    """ListField for set-valued attributes, rendered in a stable order."""

    def to_representation(self, data):
        return super().to_representation(sorted(data, key=str))


class ActorSerializer(serializers.Serializer):
    id = serializers.ReadOnlyField(source="pk")
    username = serializers.CharField(source="get_username", read_only=True)
    name = serializers.SerializerMethodField()
    email = serializers.EmailField(read_only=True)
    role = serializers.SerializerMethodField()

    def get_name(self, obj) -> str:
        return actor_info(obj).label

    def get_role(self, obj) -> str:
        return actor_info(obj).role


class AuditEventSerializer(serializers.ModelSerializer):
    # API names differ from model field names
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    resource = serializers.CharField(source="resource_type", read_only=True)
    ip_address = serializers.IPAddressField(source="source_ip", read_only=True)
    user = ActorSerializer(source="actor", read_only=True, allow_null=True)

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "timestamp",
            "action",
            "resource",
            "resource_id",
            "user",
            "description",
            "before_state",
            "after_state",
            "ip_address",
            "user_agent",
        ]
        read_only_fields = fields


class GdprEventSerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    action = serializers.SerializerMethodField()
    audit_action = serializers.CharField(source="action", read_only=True)
    data_type = serializers.SerializerMethodField()
    purpose = serializers.SerializerMethodField()
    legal_basis = serializers.SerializerMethodField()
    ip_address = serializers.IPAddressField(source="source_ip", read_only=True)
    user = ActorSerializer(source="actor", read_only=True, allow_null=True)

    class Meta:
        model = AuditEvent
        fields = [
            "id",
            "timestamp",
            "action",
            "audit_action",
            "data_type",
            "purpose",
            "legal_basis",
            "resource_type",
            "resource_id",
            "user",
            "ip_address",
            "user_agent",
        ]
        read_only_fields = fields

    def _classification(self, obj):
        return classify(obj.resource_type, obj.action)

    def get_action(self, obj) -> str | None:
        c = self._classification(obj)
        return c.action if c else None

    def get_data_type(self, obj) -> str | None:
        c = self._classification(obj)
        return c.data_type if c else None

    def get_purpose(self, obj) -> str | None:
        c = self._classification(obj)
        return c.purpose if c else None

    def get_legal_basis(self, obj) -> str | None:
        c = self._classification(obj)
        return c.legal_basis if c else None


# -------------------------------------------------------------------
# Report query params
# -------------------------------------------------------------------

class PatientAccessQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=3650)
    patient_id = serializers.UUIDField(required=False)
    include_accesses = serializers.BooleanField(required=False, default=False)


class SecurityEventsQuerySerializer(serializers.Serializer):
    hours = serializers.IntegerField(required=False, min_value=1, max_value=24 * 90)


class ActivityQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, default=7, min_value=1, max_value=365)


# -------------------------------------------------------------------
# Report output
# -------------------------------------------------------------------

class AccessSessionSerializer(serializers.Serializer):
    actor_id = serializers.ReadOnlyField()
    resource_id = serializers.CharField(allow_null=True)
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    event_count = serializers.IntegerField()
    member_event_ids = serializers.ListField(child=serializers.CharField())
    access_types = SortedListField(child=serializers.CharField())
    resource_types = SortedListField(child=serializers.CharField())
    ip_addresses = SortedListField(child=serializers.CharField())
    user_agents = SortedListField(child=serializers.CharField())


class ActorAccessSummarySerializer(serializers.Serializer):
    actor_id = serializers.ReadOnlyField()
    label = serializers.CharField()
    role = serializers.CharField()
    access_count = serializers.IntegerField()
    ip_addresses = serializers.ListField(child=serializers.CharField())
    user_agents = serializers.ListField(child=serializers.CharField())
    access_types = serializers.ListField(child=serializers.CharField())
    first_accessed = serializers.DateTimeField()
    last_accessed = serializers.DateTimeField()


class TimeSpanSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    seconds = serializers.FloatField()


class AccessSummarySerializer(serializers.Serializer):
    unique_users = serializers.IntegerField()
    unique_ips = serializers.IntegerField()
    access_type_histogram = serializers.DictField(child=serializers.IntegerField())
    time_span = TimeSpanSerializer()


class PatientAccessReportSerializer(serializers.Serializer):
    patient_id = serializers.CharField()
    patient_name = serializers.CharField()
    access_count = serializers.IntegerField()
    first_accessed = serializers.DateTimeField()
    last_accessed = serializers.DateTimeField()
    accessed_by = serializers.DictField(child=ActorAccessSummarySerializer())
    summary = AccessSummarySerializer()
    accesses = AccessSessionSerializer(many=True, allow_null=True, required=False)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if instance.accesses is None:
            data.pop("accesses", None)
        return data


class SecurityEventDetailsSerializer(serializers.Serializer):
    attempt_count = serializers.IntegerField()
    first_attempt = serializers.DateTimeField()
    last_attempt = serializers.DateTimeField()
    targeted_accounts = serializers.ListField(child=serializers.CharField())


class SecurityEventSerializer(serializers.Serializer):
    id = serializers.CharField()
    type = serializers.CharField()
    severity = serializers.CharField()
    ip_address = serializers.CharField()
    timestamp = serializers.DateTimeField()
    description = serializers.CharField()
    details = SecurityEventDetailsSerializer()


class ActionCountSerializer(serializers.Serializer):
    action = serializers.CharField()
    count = serializers.IntegerField()


class HourCountSerializer(serializers.Serializer):
    hour = serializers.IntegerField()
    count = serializers.IntegerField()


class UserActivitySerializer(serializers.Serializer):
    actor_id = serializers.ReadOnlyField()
    label = serializers.CharField()
    role = serializers.CharField()
    action_count = serializers.IntegerField()
    last_activity = serializers.DateTimeField()


class ActivitySummarySerializer(serializers.Serializer):
    total_actions = serializers.IntegerField()
    unique_users = serializers.IntegerField()
    top_actions = ActionCountSerializer(many=True)
    hourly_distribution = HourCountSerializer(many=True)
    user_activity = UserActivitySerializer(many=True)


class PeriodSerializer(serializers.Serializer):
    days = serializers.IntegerField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class SecurityOverviewSerializer(serializers.Serializer):
    events = SecurityEventSerializer(many=True)
    high_severity_events = serializers.IntegerField()
    medium_severity_events = serializers.IntegerField()


class PatientAccessOverviewSerializer(serializers.Serializer):
    total_patients = serializers.IntegerField()
    total_accesses = serializers.IntegerField()
    most_accessed_patients = PatientAccessReportSerializer(many=True)


class DashboardSerializer(serializers.Serializer):
    period = PeriodSerializer()
    activity = ActivitySummarySerializer()
    security = SecurityOverviewSerializer()
    patient_access = PatientAccessOverviewSerializer()
    total_audit_entries = serializers.IntegerField()
    generated_at = serializers.DateTimeField()


class FacetOptionSerializer(serializers.Serializer):
    value = serializers.CharField()
    label = serializers.CharField()


class UserFacetOptionSerializer(FacetOptionSerializer):
    role = serializers.CharField()


class AuditFacetsSerializer(serializers.Serializer):
    actions = FacetOptionSerializer(many=True)
    resources = FacetOptionSerializer(many=True)
    users = UserFacetOptionSerializer(many=True)


class GdprFacetsSerializer(serializers.Serializer):
    actions = FacetOptionSerializer(many=True)
    data_types = FacetOptionSerializer(many=True)
    users = UserFacetOptionSerializer(many=True)
