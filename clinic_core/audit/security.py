# backend/clinic_core/audit/security.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from django.utils import timezone

from clinic_core.audit.budget import Deadline
from clinic_core.audit.constants import SecurityEventType, Severity
from clinic_core.audit.payloads import AuthenticationState, parse_state
from clinic_core.audit.store import EventFilter, EventRecord, EventStore

_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1}


@dataclass(frozen=True)
class SecurityEventDetails:
    attempt_count: int
    first_attempt: datetime
    last_attempt: datetime
    targeted_accounts: tuple[str, ...]


@dataclass(frozen=True)
class SecurityEvent:
    id: str
    type: str
    severity: str
    ip_address: str
    timestamp: datetime
    description: str
    details: SecurityEventDetails


def targeted_account(e: EventRecord) -> str | None:
    """
    The account a failed login was aimed at: the identity in the
    authentication payload, else the tail of "... for <identity>".
    """
    state = parse_state(e.resource_type, e.after_state)
    if isinstance(state, AuthenticationState) and state.identity:
        return state.identity

    desc = (e.description or "").strip()
    if " for " in desc:
        tail = desc.rsplit(" for ", 1)[1].strip()
        if tail:
            return tail
    return None


class _IpTally:
    __slots__ = ("count", "first", "last", "accounts")

    def __init__(self, ts: datetime) -> None:
        self.count = 0
        self.first = ts
        self.last = ts
        self.accounts: set[str] = set()


def detect_security_events(
    store: EventStore,
    *,
    hours: int = 24,
    now: datetime | None = None,
    failure_threshold: int = 5,
    high_threshold: int = 10,
    deadline: Deadline | None = None,
) -> list[SecurityEvent]:
    """
    Brute-force detection: one MULTIPLE_FAILED_LOGINS event per source IP
    with at least ``failure_threshold`` failed logins in the trailing window.
    Severity is HIGH from ``high_threshold`` attempts on, MEDIUM below.
    """
    if hours <= 0:
        raise ValueError("hours must be positive.")
    if failure_threshold < 1:
        raise ValueError("failure_threshold must be at least 1.")

    now = now or timezone.now()
    flt = EventFilter(start=now - timedelta(hours=hours), end=now, actions=("LOGIN_FAILED",))

    tallies: dict[str, _IpTally] = {}
    for e in store.query(flt):
        if deadline is not None:
            deadline.check()
        # Not attributable without an address
        if not e.source_ip:
            continue
        t = tallies.get(e.source_ip)
        if t is None:
            t = tallies[e.source_ip] = _IpTally(e.timestamp)
        t.count += 1
        t.first = min(t.first, e.timestamp)
        t.last = max(t.last, e.timestamp)
        account = targeted_account(e)
        if account:
            t.accounts.add(account)

    out: list[SecurityEvent] = []
    for ip, t in tallies.items():
        if t.count < failure_threshold:
            continue
        severity = Severity.HIGH if t.count >= high_threshold else Severity.MEDIUM
        out.append(
            SecurityEvent(
                id=str(uuid.uuid5(uuid.NAMESPACE_URL, f"{SecurityEventType.MULTIPLE_FAILED_LOGINS}:{ip}:{t.first.isoformat()}")),
                type=SecurityEventType.MULTIPLE_FAILED_LOGINS,
                severity=severity,
                ip_address=ip,
                timestamp=t.first,
                description=f"{t.count} failed login attempts from {ip} in the last {hours} hours",
                details=SecurityEventDetails(
                    attempt_count=t.count,
                    first_attempt=t.first,
                    last_attempt=t.last,
                    targeted_accounts=tuple(sorted(t.accounts)),
                ),
            )
        )

    out.sort(key=lambda ev: (_SEVERITY_RANK[ev.severity], -ev.details.attempt_count, ev.ip_address))
    return out
