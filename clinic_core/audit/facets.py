# backend/clinic_core/audit/facets.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from clinic_core.audit.gdpr import GdprAction, audit_actions_by_resource, classify, data_type_for
from clinic_core.audit.models import AuditAction
from clinic_core.audit.resources import ResourceRegistry, registry as default_registry
from clinic_core.audit.selectors import actor_directory
from clinic_core.audit.store import EventFilter, EventStore

_UUID_RE = re.compile(r"^[0-9a-f]{8}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{12}$", re.IGNORECASE)
_SEPARATORS = re.compile(r"[_\-.]+")


@dataclass(frozen=True)
class FacetOption:
    value: str
    label: str


@dataclass(frozen=True)
class UserFacetOption:
    value: str
    label: str
    role: str


@dataclass(frozen=True)
class AuditFacets:
    actions: tuple[FacetOption, ...]
    resources: tuple[FacetOption, ...]
    users: tuple[UserFacetOption, ...]


@dataclass(frozen=True)
class GdprFacets:
    actions: tuple[FacetOption, ...]
    data_types: tuple[FacetOption, ...]
    users: tuple[UserFacetOption, ...]


def is_reportable_value(value: Any) -> bool:
    """
    False for values that are identifiers or request fragments rather than
    names: empty strings, UUIDs, query strings.
    """
    if not isinstance(value, str):
        return False
    v = value.strip()
    if not v:
        return False
    if _UUID_RE.match(v):
        return False
    if v.startswith("?") or "?" in v or "&" in v:
        return False
    return True


def humanize(value: str) -> str:
    words = [w for w in _SEPARATORS.split(value.strip()) if w]
    return " ".join(w.capitalize() if w.isupper() or w.islower() else w[0].upper() + w[1:] for w in words)


def _options(values: Iterable[Any], label_for) -> tuple[FacetOption, ...]:
    seen: dict[str, FacetOption] = {}
    for v in values:
        if is_reportable_value(v) and v not in seen:
            seen[v] = FacetOption(value=v, label=label_for(v))
    return tuple(sorted(seen.values(), key=lambda o: o.label))


def action_options(values: Iterable[Any]) -> tuple[FacetOption, ...]:
    labels = dict(AuditAction.choices)
    return _options(values, lambda v: labels.get(v) or humanize(v))


def resource_options(values: Iterable[Any], *, registry: ResourceRegistry | None = None) -> tuple[FacetOption, ...]:
    """
    Resource facet values. With registered resources only registered ones
    are kept (and carry their registered label); an empty registry leaves
    the shape check alone in charge.
    """
    reg = default_registry if registry is None else registry
    if len(reg):
        values = [v for v in values if v in reg]

    def label_for(v: str) -> str:
        entry = reg.get(v)
        return entry.label if entry is not None else humanize(v)

    return _options(values, label_for)


def user_options(actor_ids: Iterable[Any]) -> tuple[UserFacetOption, ...]:
    directory = actor_directory(actor_ids)
    opts = [UserFacetOption(value=key, label=info.label, role=info.role) for key, info in directory.items()]
    return tuple(sorted(opts, key=lambda o: (o.label, o.value)))


def audit_filter_options(store: EventStore, *, registry: ResourceRegistry | None = None) -> AuditFacets:
    return AuditFacets(
        actions=action_options(store.distinct_values("action")),
        resources=resource_options(store.distinct_values("resource_type"), registry=registry),
        users=user_options(store.distinct_values("actor_id")),
    )


def gdpr_filter_options(store: EventStore, *, registry: ResourceRegistry | None = None) -> GdprFacets:
    gdpr_actions: set[str] = set()
    data_types: set[str] = set()
    actor_ids: set[Any] = set()

    for resource_type, actions in audit_actions_by_resource(registry=registry).items():
        flt = EventFilter(resource_types=(resource_type,), actions=actions)
        present = store.distinct_values("action", flt)
        if not present:
            continue
        for action in present:
            c = classify(resource_type, action, registry=registry)
            if c is not None:
                gdpr_actions.add(c.action)
        dt = data_type_for(resource_type, registry=registry)
        if dt:
            data_types.add(dt)
        actor_ids.update(store.distinct_values("actor_id", flt))

    labels = dict(GdprAction.choices)
    return GdprFacets(
        actions=_options(gdpr_actions, lambda v: labels.get(v) or humanize(v)),
        data_types=_options(data_types, humanize),
        users=user_options(actor_ids),
    )
