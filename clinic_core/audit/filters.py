# backend/clinic_core/audit/filters.py
from __future__ import annotations

import django_filters
from django import forms

from clinic_core.audit.gdpr import GdprAction
from clinic_core.audit.models import AuditAction, AuditEvent
from clinic_core.audit.selectors import personal_data_q


class IPAddressFilter(django_filters.CharFilter):
    field_class = forms.GenericIPAddressField


class DateRangeForm(forms.Form):
    def clean(self):
        cleaned = super().clean()
        start, end = cleaned.get("start_date"), cleaned.get("end_date")
        if start and end and start > end:
            self.add_error("end_date", "Start date must be before end date.")
        return cleaned


class AuditEventFilter(django_filters.FilterSet):
    start_date = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="gte")
    end_date = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="lte")
    user_id = django_filters.NumberFilter(field_name="actor_id")
    action = django_filters.ChoiceFilter(choices=AuditAction.choices)
    resource = django_filters.CharFilter(field_name="resource_type")
    resource_id = django_filters.CharFilter(field_name="resource_id")
    ip_address = IPAddressFilter(field_name="source_ip")

    class Meta:
        model = AuditEvent
        form = DateRangeForm
        fields = ["start_date", "end_date", "user_id", "action", "resource", "resource_id", "ip_address"]


class GdprEventFilter(django_filters.FilterSet):
    start_date = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="gte")
    end_date = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="lte")
    user_id = django_filters.NumberFilter(field_name="actor_id")
    action = django_filters.ChoiceFilter(choices=GdprAction.choices, method="filter_gdpr_action")
    resource_id = django_filters.CharFilter(field_name="resource_id")

    class Meta:
        model = AuditEvent
        form = DateRangeForm
        fields = ["start_date", "end_date", "user_id", "action", "resource_id"]

    def filter_gdpr_action(self, queryset, name, value):
        cond = personal_data_q(value)
        return queryset.none() if cond is None else queryset.filter(cond)
