# backend/clinic_core/audit/reports.py
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from django.utils import timezone

from clinic_core.audit.budget import Deadline
from clinic_core.audit.constants import PATIENT_RESOURCE_TYPES, Severity
from clinic_core.audit.security import SecurityEvent, detect_security_events
from clinic_core.audit.selectors import actor_directory
from clinic_core.audit.sessions import AccessSession, SessionStrategy, cluster
from clinic_core.audit.store import EventFilter, EventStore
from clinic_core.common.permissions import ROLE_READONLY
from clinic_core.patients.selectors import resolve_patient_refs

logger = logging.getLogger(__name__)

ANONYMOUS_ACTOR_KEY = "anonymous"


# -------------------------------------------------------------------
# Patient access
# -------------------------------------------------------------------

@dataclass(frozen=True)
class TimeSpan:
    start: datetime
    end: datetime
    seconds: float


@dataclass(frozen=True)
class ActorAccessSummary:
    actor_id: Any
    label: str
    role: str
    access_count: int
    ip_addresses: tuple[str, ...]
    user_agents: tuple[str, ...]
    access_types: tuple[str, ...]
    first_accessed: datetime
    last_accessed: datetime


@dataclass(frozen=True)
class AccessSummary:
    unique_users: int
    unique_ips: int
    access_type_histogram: dict[str, int]
    time_span: TimeSpan


@dataclass(frozen=True)
class PatientAccessReport:
    patient_id: str
    patient_name: str
    access_count: int
    first_accessed: datetime
    last_accessed: datetime
    accessed_by: dict[str, ActorAccessSummary]
    summary: AccessSummary
    accesses: tuple[AccessSession, ...] | None = None


def _actor_key(actor_id: Any) -> str:
    return ANONYMOUS_ACTOR_KEY if actor_id is None else str(actor_id)


def _summarize_actor(actor_id: Any, sessions: list[AccessSession], directory) -> ActorAccessSummary:
    info = directory.get(str(actor_id)) if actor_id is not None else None
    return ActorAccessSummary(
        actor_id=actor_id,
        label=info.label if info else "Anonymous",
        role=info.role if info else ROLE_READONLY,
        access_count=len(sessions),
        ip_addresses=tuple(sorted(set().union(*(s.ip_addresses for s in sessions)))),
        user_agents=tuple(sorted(set().union(*(s.user_agents for s in sessions)))),
        access_types=tuple(sorted(set().union(*(s.access_types for s in sessions)))),
        first_accessed=min(s.start for s in sessions),
        last_accessed=max(s.end for s in sessions),
    )


def _build_report(patient_id: str, name: str, sessions: list[AccessSession], directory, accesses):
    by_actor: dict[str, list[AccessSession]] = defaultdict(list)
    for s in sessions:
        by_actor[_actor_key(s.actor_id)].append(s)

    accessed_by = {
        key: _summarize_actor(group[0].actor_id, group, directory)
        for key, group in sorted(by_actor.items())
    }

    histogram: Counter[str] = Counter()
    for s in sessions:
        histogram.update(s.access_types)

    first = min(s.start for s in sessions)
    last = max(s.end for s in sessions)
    ips = set().union(*(s.ip_addresses for s in sessions))

    return PatientAccessReport(
        patient_id=patient_id,
        patient_name=name,
        access_count=len(sessions),
        first_accessed=first,
        last_accessed=last,
        accessed_by=accessed_by,
        summary=AccessSummary(
            unique_users=sum(1 for k in accessed_by if k != ANONYMOUS_ACTOR_KEY),
            unique_ips=len(ips),
            access_type_histogram=dict(sorted(histogram.items())),
            time_span=TimeSpan(start=first, end=last, seconds=(last - first).total_seconds()),
        ),
        accesses=accesses,
    )


def build_patient_access_reports(
    store: EventStore,
    *,
    days: int = 30,
    patient_id: str | None = None,
    now: datetime | None = None,
    window: timedelta | float | None = None,
    deadline: Deadline | None = None,
    include_accesses: bool = False,
    burst_gap: timedelta | float | None = None,
) -> list[PatientAccessReport]:
    """
    Who accessed which patient's data in the trailing ``days``.

    Access events on Patient and PatientHistory resources are clustered with
    the windowed-merge strategy; every session counts as one access. History
    records count towards their patient. Sessions whose resource cannot be
    resolved to a patient are skipped.

    With ``include_accesses`` each report also lists the individual accesses,
    coalesced with the burst strategy (``burst_gap`` apart at most), so rapid
    repeated reads show up as one entry while the windowed count is unchanged.

    Reports are ordered by most recent access, then patient id.
    """
    if days <= 0:
        raise ValueError("days must be positive.")

    wanted = str(UUID(str(patient_id))) if patient_id else None

    now = now or timezone.now()
    flt = EventFilter(start=now - timedelta(days=days), end=now, resource_types=PATIENT_RESOURCE_TYPES)

    events = store.query(flt)
    if include_accesses:
        events = list(events)

    sessions = cluster(events, SessionStrategy.WINDOW, span=window, presorted=True, deadline=deadline)
    bursts = (
        cluster(events, SessionStrategy.BURST, span=burst_gap, presorted=True, deadline=deadline)
        if include_accesses
        else []
    )

    refs = resolve_patient_refs({s.resource_id for s in sessions if s.resource_id})

    by_patient: dict[str, list[AccessSession]] = defaultdict(list)
    names: dict[str, str] = {}
    skipped = 0
    for s in sessions:
        ref = refs.get(s.resource_id) if s.resource_id else None
        if ref is None:
            skipped += 1
            logger.debug("Skipping access session on unresolved resource %r", s.resource_id)
            continue
        if wanted is not None and ref.patient_id != wanted:
            continue
        by_patient[ref.patient_id].append(s)
        names[ref.patient_id] = ref.name

    if skipped:
        logger.info("Patient access report skipped %d unresolved session(s)", skipped)

    bursts_by_patient: dict[str, list[AccessSession]] = defaultdict(list)
    for b in bursts:
        ref = refs.get(b.resource_id) if b.resource_id else None
        if ref is not None and ref.patient_id in by_patient:
            bursts_by_patient[ref.patient_id].append(b)

    directory = actor_directory({s.actor_id for group in by_patient.values() for s in group})

    reports = [
        _build_report(
            pid,
            names[pid],
            group,
            directory,
            tuple(bursts_by_patient[pid]) if include_accesses else None,
        )
        for pid, group in by_patient.items()
    ]
    reports.sort(key=lambda r: r.patient_id)
    reports.sort(key=lambda r: r.last_accessed, reverse=True)
    return reports


# -------------------------------------------------------------------
# System activity
# -------------------------------------------------------------------

@dataclass(frozen=True)
class ActionCount:
    action: str
    count: int


@dataclass(frozen=True)
class HourCount:
    hour: int
    count: int


@dataclass(frozen=True)
class UserActivity:
    actor_id: Any
    label: str
    role: str
    action_count: int
    last_activity: datetime


@dataclass(frozen=True)
class ActivitySummary:
    total_actions: int
    unique_users: int
    top_actions: tuple[ActionCount, ...]
    hourly_distribution: tuple[HourCount, ...]
    user_activity: tuple[UserActivity, ...]


def build_activity_summary(
    store: EventStore,
    *,
    days: int = 7,
    now: datetime | None = None,
    deadline: Deadline | None = None,
    top: int = 10,
) -> ActivitySummary:
    """
    Volume of audited activity over the trailing ``days``: totals, most
    frequent actions, activity per local hour of day and per user.
    """
    if days <= 0:
        raise ValueError("days must be positive.")

    now = now or timezone.now()
    flt = EventFilter(start=now - timedelta(days=days), end=now)

    total = 0
    actions: Counter[str] = Counter()
    hours: Counter[int] = Counter()
    per_actor: Counter[str] = Counter()
    last_seen: dict[str, datetime] = {}
    actor_ids: dict[str, Any] = {}

    for e in store.query(flt):
        if deadline is not None:
            deadline.check()
        total += 1
        actions[e.action] += 1
        hours[timezone.localtime(e.timestamp).hour] += 1
        if e.actor_id is not None:
            key = str(e.actor_id)
            per_actor[key] += 1
            actor_ids[key] = e.actor_id
            if key not in last_seen or e.timestamp > last_seen[key]:
                last_seen[key] = e.timestamp

    directory = actor_directory(actor_ids.values())

    top_actions = sorted(actions.items(), key=lambda kv: (-kv[1], kv[0]))[:top]
    users = sorted(per_actor.items(), key=lambda kv: (-kv[1], kv[0]))

    return ActivitySummary(
        total_actions=total,
        unique_users=len(per_actor),
        top_actions=tuple(ActionCount(action=a, count=c) for a, c in top_actions),
        hourly_distribution=tuple(HourCount(hour=h, count=hours.get(h, 0)) for h in range(24)),
        user_activity=tuple(
            UserActivity(
                actor_id=actor_ids[key],
                label=directory[key].label,
                role=directory[key].role,
                action_count=n,
                last_activity=last_seen[key],
            )
            for key, n in users
        ),
    )


# -------------------------------------------------------------------
# Dashboard
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Period:
    days: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class SecurityOverview:
    events: tuple[SecurityEvent, ...]
    high_severity_events: int
    medium_severity_events: int


@dataclass(frozen=True)
class PatientAccessOverview:
    total_patients: int
    total_accesses: int
    most_accessed_patients: tuple[PatientAccessReport, ...]


@dataclass(frozen=True)
class Dashboard:
    period: Period
    activity: ActivitySummary
    security: SecurityOverview
    patient_access: PatientAccessOverview
    total_audit_entries: int
    generated_at: datetime


def build_dashboard(
    store: EventStore,
    *,
    days: int = 7,
    now: datetime | None = None,
    security_hours: int = 24,
    failure_threshold: int = 5,
    high_threshold: int = 10,
    window: timedelta | float | None = None,
    deadline: Deadline | None = None,
) -> Dashboard:
    now = now or timezone.now()

    activity = build_activity_summary(store, days=days, now=now, deadline=deadline)
    security = detect_security_events(
        store,
        hours=security_hours,
        now=now,
        failure_threshold=failure_threshold,
        high_threshold=high_threshold,
        deadline=deadline,
    )
    patients = build_patient_access_reports(store, days=days, now=now, window=window, deadline=deadline)

    most_accessed = sorted(patients, key=lambda r: (-r.access_count, r.patient_id))[:10]

    return Dashboard(
        period=Period(days=days, start=now - timedelta(days=days), end=now),
        activity=activity,
        security=SecurityOverview(
            events=tuple(security),
            high_severity_events=sum(1 for e in security if e.severity == Severity.HIGH),
            medium_severity_events=sum(1 for e in security if e.severity == Severity.MEDIUM),
        ),
        patient_access=PatientAccessOverview(
            total_patients=len(patients),
            total_accesses=sum(r.access_count for r in patients),
            most_accessed_patients=tuple(most_accessed),
        ),
        total_audit_entries=activity.total_actions,
        generated_at=now,
    )
