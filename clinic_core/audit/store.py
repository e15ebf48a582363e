# backend/clinic_core/audit/store.py
from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Iterator
from uuid import UUID

from django.db import DatabaseError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from clinic_core.audit.exceptions import StoreUnavailable
from clinic_core.audit.models import AuditEvent

logger = logging.getLogger(__name__)

# Read-side projection of AuditEvent
_COLUMNS = (
    "id",
    "actor_id",
    "action",
    "resource_type",
    "resource_id",
    "occurred_at",
    "source_ip",
    "user_agent",
    "description",
    "before_state",
    "after_state",
)

DISTINCT_FIELDS = frozenset({"actor_id", "action", "resource_type", "resource_id", "source_ip"})


@dataclass(frozen=True)
class EventRecord:
    """
    ORM-independent view of one audit event. All read-side computation
    (clustering, aggregation, detection, facets) works on these.
    """
    id: str
    actor_id: Any
    action: str
    resource_type: str
    resource_id: str | None
    timestamp: datetime
    source_ip: str | None = None
    user_agent: str = ""
    description: str = ""
    before_state: Any = None
    after_state: Any = None


@dataclass(frozen=True)
class EventFilter:
    start: datetime | None = None
    end: datetime | None = None
    actor_id: Any = None
    resource_types: tuple[str, ...] = ()
    actions: tuple[str, ...] = ()
    resource_id: str | None = None
    ip_address: str | None = None

    def matches(self, e: EventRecord) -> bool:
        if self.start is not None and e.timestamp < self.start:
            return False
        if self.end is not None and e.timestamp > self.end:
            return False
        if self.actor_id is not None and str(e.actor_id) != str(self.actor_id):
            return False
        if self.resource_types and e.resource_type not in self.resource_types:
            return False
        if self.actions and e.action not in self.actions:
            return False
        if self.resource_id is not None and e.resource_id != self.resource_id:
            return False
        if self.ip_address is not None and e.source_ip != self.ip_address:
            return False
        return True


class EventStore(abc.ABC):
    """
    Append-only audit event log with time-ordered range queries.
    """

    @abc.abstractmethod
    def append(
        self,
        *,
        actor_id: Any,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        before_state: Any = None,
        after_state: Any = None,
        description: str = "",
        source_ip: str | None = None,
        user_agent: str = "",
        occurred_at: datetime | None = None,
    ) -> UUID:
        raise NotImplementedError

    @abc.abstractmethod
    def query(self, flt: EventFilter | None = None) -> Iterator[EventRecord]:
        """Matching events ascending by (timestamp, id), lazily."""
        raise NotImplementedError

    @abc.abstractmethod
    def count(self, flt: EventFilter | None = None) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def distinct_values(self, field_name: str, flt: EventFilter | None = None) -> list:
        raise NotImplementedError

    def count_distinct(self, field_name: str, flt: EventFilter | None = None) -> int:
        return len(self.distinct_values(field_name, flt))


def _check_field(field_name: str) -> None:
    if field_name not in DISTINCT_FIELDS:
        raise ValueError(f"Unsupported field for distinct queries: {field_name}")


class DatabaseEventStore(EventStore):
    def __init__(self, *, chunk_size: int | None = None, using: str | None = None) -> None:
        if chunk_size is None:
            from clinic_core.audit.conf import audit_settings

            chunk_size = audit_settings().query_chunk_size
        self.chunk_size = max(1, int(chunk_size))
        self.using = using

    def append(
        self,
        *,
        actor_id: Any,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        before_state: Any = None,
        after_state: Any = None,
        description: str = "",
        source_ip: str | None = None,
        user_agent: str = "",
        occurred_at: datetime | None = None,
    ) -> UUID:
        try:
            with transaction.atomic(using=self.using):
                event = AuditEvent(
                    actor_id=actor_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=resource_id,
                    before_state=before_state,
                    after_state=after_state,
                    description=description or "",
                    source_ip=source_ip or None,
                    user_agent=user_agent or "",
                    occurred_at=occurred_at or timezone.now(),
                )
                event.save(using=self.using)
        except DatabaseError as exc:
            raise StoreUnavailable() from exc
        return event.id

    def queryset(self, flt: EventFilter | None = None) -> QuerySet[AuditEvent]:
        qs = AuditEvent.objects.all()
        if self.using:
            qs = qs.using(self.using)
        if flt is None:
            return qs

        if flt.start is not None:
            qs = qs.filter(occurred_at__gte=flt.start)
        if flt.end is not None:
            qs = qs.filter(occurred_at__lte=flt.end)
        if flt.actor_id is not None:
            qs = qs.filter(actor_id=flt.actor_id)
        if flt.resource_types:
            qs = qs.filter(resource_type__in=flt.resource_types)
        if flt.actions:
            qs = qs.filter(action__in=flt.actions)
        if flt.resource_id is not None:
            qs = qs.filter(resource_id=flt.resource_id)
        if flt.ip_address is not None:
            qs = qs.filter(source_ip=flt.ip_address)
        return qs

    def query(self, flt: EventFilter | None = None) -> Iterator[EventRecord]:
        rows = self.queryset(flt).order_by("occurred_at", "id").values_list(*_COLUMNS)
        try:
            for row in rows.iterator(chunk_size=self.chunk_size):
                yield _to_record(row)
        except DatabaseError as exc:
            logger.exception("Audit store read failed")
            raise StoreUnavailable() from exc

    def count(self, flt: EventFilter | None = None) -> int:
        try:
            return self.queryset(flt).count()
        except DatabaseError as exc:
            raise StoreUnavailable() from exc

    def distinct_values(self, field_name: str, flt: EventFilter | None = None) -> list:
        _check_field(field_name)
        qs = (
            self.queryset(flt)
            .exclude(**{f"{field_name}__isnull": True})
            .order_by(field_name)
            .values_list(field_name, flat=True)
            .distinct()
        )
        try:
            return list(qs)
        except DatabaseError as exc:
            raise StoreUnavailable() from exc

    def count_distinct(self, field_name: str, flt: EventFilter | None = None) -> int:
        _check_field(field_name)
        qs = (
            self.queryset(flt)
            .exclude(**{f"{field_name}__isnull": True})
            .order_by()
            .values(field_name)
            .distinct()
        )
        try:
            return qs.count()
        except DatabaseError as exc:
            raise StoreUnavailable() from exc


def _to_record(row: tuple) -> EventRecord:
    (eid, actor_id, action, resource_type, resource_id, occurred_at,
     source_ip, user_agent, description, before_state, after_state) = row
    return EventRecord(
        id=str(eid),
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        timestamp=occurred_at,
        source_ip=source_ip,
        user_agent=user_agent or "",
        description=description or "",
        before_state=before_state,
        after_state=after_state,
    )


@dataclass
class InMemoryEventStore(EventStore):
    """
    List-backed store for tests and offline analysis of exported events.
    """
    events: list[EventRecord] = field(default_factory=list)

    def append(
        self,
        *,
        actor_id: Any,
        action: str,
        resource_type: str,
        resource_id: str | None = None,
        before_state: Any = None,
        after_state: Any = None,
        description: str = "",
        source_ip: str | None = None,
        user_agent: str = "",
        occurred_at: datetime | None = None,
    ) -> UUID:
        eid = uuid.uuid4()
        self.events.append(
            EventRecord(
                id=str(eid),
                actor_id=actor_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                timestamp=occurred_at or timezone.now(),
                source_ip=source_ip or None,
                user_agent=user_agent or "",
                description=description or "",
                before_state=before_state,
                after_state=after_state,
            )
        )
        return eid

    def extend(self, records: Iterable[EventRecord]) -> None:
        self.events.extend(records)

    def query(self, flt: EventFilter | None = None) -> Iterator[EventRecord]:
        flt = flt or EventFilter()
        matching = [e for e in self.events if flt.matches(e)]
        return iter(sorted(matching, key=lambda e: (e.timestamp, e.id)))

    def count(self, flt: EventFilter | None = None) -> int:
        flt = flt or EventFilter()
        return sum(1 for e in self.events if flt.matches(e))

    def distinct_values(self, field_name: str, flt: EventFilter | None = None) -> list:
        _check_field(field_name)
        flt = flt or EventFilter()
        values = {getattr(e, field_name) for e in self.events if flt.matches(e)}
        values.discard(None)
        return sorted(values, key=str)
