# backend/clinic_core/audit/sessions.py
"""
Access-session clustering.

Two strategies collapse a stream of audit events into access sessions keyed
by (actor_id, resource_id):

* burst coalescing: consecutive events at most ``gap`` apart belong to one
  session (deduplicates the several API calls one user action produces);
* windowed merge: an event joins every open session whose interval, widened
  by ``window`` on both sides, contains it; sessions it bridges are merged.

Events are processed in global (timestamp, id) order, so the result does not
depend on input order. Sessions that can no longer grow are moved out of the
working set as the stream advances.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import count
from typing import Any, Callable, Iterable, Iterator

from clinic_core.audit.budget import Deadline
from clinic_core.audit.store import EventRecord

DEFAULT_BURST_GAP = timedelta(seconds=30)
DEFAULT_WINDOW = timedelta(minutes=5)


class SessionStrategy:
    BURST = "burst"
    WINDOW = "window"

    ALL = (BURST, WINDOW)


@dataclass(frozen=True)
class AccessSession:
    actor_id: Any
    resource_id: str | None
    start: datetime
    end: datetime
    member_event_ids: tuple[str, ...]
    access_types: frozenset[str]
    resource_types: frozenset[str] = frozenset()
    ip_addresses: frozenset[str] = frozenset()
    user_agents: frozenset[str] = frozenset()

    @property
    def event_count(self) -> int:
        return len(self.member_event_ids)

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.start).total_seconds()


def session_sort_key(s: AccessSession) -> tuple:
    return (s.start, _token(s.actor_id), _token(s.resource_id))


def _token(value: Any) -> str:
    return "" if value is None else str(value)


def _as_delta(value: timedelta | float | int) -> timedelta:
    delta = value if isinstance(value, timedelta) else timedelta(seconds=float(value))
    if delta < timedelta(0):
        raise ValueError("Session gap/window must not be negative.")
    return delta


def _event_key(e: EventRecord) -> tuple:
    return (e.timestamp, str(e.id))


def _ordered(events: Iterable[EventRecord], presorted: bool) -> Iterator[EventRecord]:
    if not presorted:
        yield from sorted(events, key=_event_key)
        return

    prev = None
    for e in events:
        k = _event_key(e)
        if prev is not None and k < prev:
            raise ValueError(f"Events out of order: {e.id} at {e.timestamp} after {prev[1]} at {prev[0]}")
        prev = k
        yield e


class _OpenSession:
    __slots__ = ("actor_id", "resource_id", "start", "end", "members",
                 "access_types", "resource_types", "ip_addresses", "user_agents")

    def __init__(self, e: EventRecord) -> None:
        self.actor_id = e.actor_id
        self.resource_id = e.resource_id
        self.start = e.timestamp
        self.end = e.timestamp
        self.members: list[tuple[datetime, str]] = []
        self.access_types: set[str] = set()
        self.resource_types: set[str] = set()
        self.ip_addresses: set[str] = set()
        self.user_agents: set[str] = set()
        self.add(e)

    def add(self, e: EventRecord) -> None:
        self.start = min(self.start, e.timestamp)
        self.end = max(self.end, e.timestamp)
        self.members.append(_event_key(e))
        self.access_types.add(e.action)
        self.resource_types.add(e.resource_type)
        if e.source_ip:
            self.ip_addresses.add(e.source_ip)
        if e.user_agent:
            self.user_agents.add(e.user_agent)

    def absorb(self, other: "_OpenSession") -> None:
        self.start = min(self.start, other.start)
        self.end = max(self.end, other.end)
        self.members.extend(other.members)
        self.access_types |= other.access_types
        self.resource_types |= other.resource_types
        self.ip_addresses |= other.ip_addresses
        self.user_agents |= other.user_agents

    def freeze(self) -> AccessSession:
        return AccessSession(
            actor_id=self.actor_id,
            resource_id=self.resource_id,
            start=self.start,
            end=self.end,
            member_event_ids=tuple(eid for _, eid in sorted(self.members)),
            access_types=frozenset(self.access_types),
            resource_types=frozenset(self.resource_types),
            ip_addresses=frozenset(self.ip_addresses),
            user_agents=frozenset(self.user_agents),
        )


class _Expiry:
    """
    Min-heap of (time after which a session can no longer grow, session).
    Entries go stale when a session grows or is merged; stale entries are
    recognized by comparing against the session's current expiry.
    """

    def __init__(self, reach: timedelta) -> None:
        self.reach = reach
        self._heap: list[tuple[datetime, int, tuple, _OpenSession]] = []
        self._seq = count()

    def push(self, key: tuple, s: _OpenSession) -> None:
        heapq.heappush(self._heap, (s.end + self.reach, next(self._seq), key, s))

    def pop_expired(self, now: datetime) -> Iterator[tuple[tuple, _OpenSession]]:
        while self._heap and self._heap[0][0] < now:
            expiry, _, key, s = heapq.heappop(self._heap)
            if s.end + self.reach == expiry:
                yield key, s


def coalesce_bursts(
    events: Iterable[EventRecord],
    *,
    gap: timedelta | float = DEFAULT_BURST_GAP,
    presorted: bool = False,
    deadline: Deadline | None = None,
) -> list[AccessSession]:
    """
    Burst coalescing. Within one (actor, resource) key a new session starts
    whenever the gap to the previous event exceeds ``gap``.
    """
    gap = _as_delta(gap)
    open_by_key: dict[tuple, _OpenSession] = {}
    expiry = _Expiry(gap)
    done: list[AccessSession] = []

    for e in _ordered(events, presorted):
        if deadline is not None:
            deadline.check()

        for key, s in expiry.pop_expired(e.timestamp):
            if open_by_key.get(key) is s:
                done.append(s.freeze())
                del open_by_key[key]

        key = (e.actor_id, e.resource_id)
        current = open_by_key.get(key)
        if current is not None and e.timestamp - current.end <= gap:
            current.add(e)
        else:
            if current is not None:
                done.append(current.freeze())
            current = _OpenSession(e)
            open_by_key[key] = current
        expiry.push(key, current)

    done.extend(s.freeze() for s in open_by_key.values())
    done.sort(key=session_sort_key)
    return done


def merge_windows(
    events: Iterable[EventRecord],
    *,
    window: timedelta | float = DEFAULT_WINDOW,
    presorted: bool = False,
    deadline: Deadline | None = None,
) -> list[AccessSession]:
    """
    Windowed merge. An event joins every open session of its key whose
    [start - window, end + window] interval contains the event's timestamp;
    when it matches several, they are merged into one. No match opens a new
    session.
    """
    window = _as_delta(window)
    open_by_key: dict[tuple, list[_OpenSession]] = {}
    expiry = _Expiry(window)
    done: list[AccessSession] = []

    for e in _ordered(events, presorted):
        if deadline is not None:
            deadline.check()

        for key, s in expiry.pop_expired(e.timestamp):
            group = open_by_key.get(key)
            if group and any(s is g for g in group):
                group[:] = [g for g in group if g is not s]
                done.append(s.freeze())
                if not group:
                    del open_by_key[key]

        key = (e.actor_id, e.resource_id)
        group = open_by_key.setdefault(key, [])
        t = e.timestamp
        matches = [s for s in group if s.start - window <= t <= s.end + window]

        if not matches:
            target = _OpenSession(e)
            group.append(target)
        else:
            target = matches[0]
            for other in matches[1:]:
                target.absorb(other)
            group[:] = [g for g in group if not any(g is m for m in matches[1:])]
            target.add(e)
        expiry.push(key, target)

    for group in open_by_key.values():
        done.extend(s.freeze() for s in group)
    done.sort(key=session_sort_key)
    return done


_STRATEGIES: dict[str, Callable[..., list[AccessSession]]] = {
    SessionStrategy.BURST: coalesce_bursts,
    SessionStrategy.WINDOW: merge_windows,
}


def cluster(
    events: Iterable[EventRecord],
    strategy: str = SessionStrategy.WINDOW,
    *,
    span: timedelta | float | None = None,
    presorted: bool = False,
    deadline: Deadline | None = None,
) -> list[AccessSession]:
    """
    Run the named strategy. ``span`` is the strategy's gap (burst) or
    window (windowed merge); omitted, the strategy default applies.
    """
    try:
        fn = _STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown session strategy: {strategy!r}") from None

    kwargs: dict[str, Any] = {"presorted": presorted, "deadline": deadline}
    if span is not None:
        kwargs["gap" if strategy == SessionStrategy.BURST else "window"] = span
    return fn(events, **kwargs)
