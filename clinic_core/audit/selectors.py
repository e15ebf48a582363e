# backend/clinic_core/audit/selectors.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q, QuerySet

from clinic_core.audit.gdpr import audit_actions_by_resource
from clinic_core.audit.models import AuditEvent
from clinic_core.common.permissions import ROLE_ADMIN, ROLE_READONLY, pick_role


@dataclass(frozen=True)
class ActorInfo:
    actor_id: Any
    label: str
    email: str
    role: str


UNKNOWN_ACTOR_LABEL = "Unknown user"


def list_audit_events(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_id: int | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    ip_address: str | None = None,
) -> QuerySet[AuditEvent]:
    qs = AuditEvent.objects.select_related("actor").prefetch_related("actor__groups")

    if start is not None:
        qs = qs.filter(occurred_at__gte=start)
    if end is not None:
        qs = qs.filter(occurred_at__lte=end)
    if actor_id is not None:
        qs = qs.filter(actor_id=actor_id)
    if action:
        qs = qs.filter(action=action)
    if resource_type:
        qs = qs.filter(resource_type=resource_type)
    if resource_id:
        qs = qs.filter(resource_id=resource_id)
    if ip_address:
        qs = qs.filter(source_ip=ip_address)

    return qs.order_by("-occurred_at", "-id")


def personal_data_q(gdpr_action: str | None = None) -> Q | None:
    """
    Condition matching audit events that process personal data (narrowed to
    one GDPR processing action when given). None when nothing can match.
    """
    pairs = audit_actions_by_resource(gdpr_action)
    if not pairs:
        return None

    cond = Q()
    for resource_type, actions in pairs.items():
        cond |= Q(resource_type=resource_type, action__in=actions)
    return cond


def list_gdpr_events(*, gdpr_action: str | None = None) -> QuerySet[AuditEvent]:
    cond = personal_data_q(gdpr_action)
    if cond is None:
        return AuditEvent.objects.none()
    return AuditEvent.objects.select_related("actor").prefetch_related("actor__groups").filter(cond).order_by("-occurred_at", "-id")


def _label_for(user) -> str:
    full = (user.get_full_name() or "").strip()
    return full or user.get_username()


def actor_info(user) -> ActorInfo:
    """
    Label and role of one user; uses prefetched groups when present.
    """
    if getattr(user, "is_superuser", False):
        roles = {ROLE_ADMIN}
    else:
        roles = {g.name for g in user.groups.all()} or {ROLE_READONLY}
    return ActorInfo(
        actor_id=user.pk,
        label=_label_for(user),
        email=getattr(user, "email", "") or "",
        role=pick_role(roles),
    )


def actor_directory(actor_ids: Iterable[Any]) -> dict[str, ActorInfo]:
    """
    Display label and role per actor, keyed by str(actor_id). Unknown ids map
    to a placeholder entry so reports stay complete after user removal.
    """
    wanted = {str(a) for a in actor_ids if a is not None}
    if not wanted:
        return {}

    User = get_user_model()
    pk_values = []
    for raw in wanted:
        try:
            pk_values.append(User._meta.pk.to_python(raw))
        except DjangoValidationError:
            continue

    out: dict[str, ActorInfo] = {}
    for user in User.objects.filter(pk__in=pk_values).prefetch_related("groups"):
        out[str(user.pk)] = actor_info(user)

    for raw in wanted - set(out):
        out[raw] = ActorInfo(actor_id=raw, label=UNKNOWN_ACTOR_LABEL, email="", role=ROLE_READONLY)
    return out
