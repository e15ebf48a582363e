# backend/clinic_core/audit/services.py
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_ipv46_address
from django.db import DatabaseError, transaction

from clinic_core.audit.constants import ANONYMOUS_ACTIONS
from clinic_core.audit.exceptions import ActorUnresolved, StoreUnavailable
from clinic_core.audit.models import AuditAction
from clinic_core.audit.payloads import prepare_state
from clinic_core.audit.store import DatabaseEventStore, EventStore

logger = logging.getLogger(__name__)

_MAX_USER_AGENT = 512


def client_ip(request) -> str | None:
    """
    Best-effort client address: first X-Forwarded-For hop, else REMOTE_ADDR.
    """
    meta = getattr(request, "META", {}) or {}
    forwarded = meta.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return meta.get("REMOTE_ADDR") or None


def _clean_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        validate_ipv46_address(value)
    except DjangoValidationError:
        return None
    return value


def _resolve_actor(actor_id: Any, action: str, system: bool) -> Any:
    if actor_id is None:
        if system or action in ANONYMOUS_ACTIONS:
            return None
        raise ActorUnresolved(actor_id=None, action=action)

    User = get_user_model()
    try:
        pk = User._meta.pk.to_python(actor_id)
    except DjangoValidationError:
        raise ActorUnresolved(actor_id=actor_id, action=action) from None
    if not User.objects.filter(pk=pk).exists():
        raise ActorUnresolved(actor_id=actor_id, action=action)
    return pk


class AuditService:
    """
    Central audit writer. Stateless: the store is passed per call (defaults
    to the database store).

    Recording is best-effort. A failed write is logged and reported as None;
    it never raises into, or rolls back, the caller's transaction.
    """

    @staticmethod
    def record(
        *,
        actor_id: Any = None,
        action: str,
        resource_type: str,
        resource_id: Any = None,
        before_state: Any = None,
        after_state: Any = None,
        description: str = "",
        source_ip: str | None = None,
        user_agent: str = "",
        system: bool = False,
        store: EventStore | None = None,
    ) -> UUID | None:
        if action not in AuditAction.values:
            logger.warning("Unknown audit action %r recorded as UNKNOWN", action)
            action = AuditAction.UNKNOWN

        store = store or DatabaseEventStore()
        try:
            with transaction.atomic():
                actor_pk = _resolve_actor(actor_id, action, system)
                return store.append(
                    actor_id=actor_pk,
                    action=action,
                    resource_type=resource_type,
                    resource_id=str(resource_id)[:64] if resource_id is not None else None,
                    before_state=prepare_state(before_state),
                    after_state=prepare_state(after_state),
                    description=description or "",
                    source_ip=_clean_ip(source_ip),
                    user_agent=(user_agent or "")[:_MAX_USER_AGENT],
                )
        except ActorUnresolved as exc:
            logger.warning("Audit write skipped (%s %s:%s): %s", action, resource_type, resource_id, exc)
        except (StoreUnavailable, DatabaseError):
            logger.exception("Audit write failed (%s %s:%s)", action, resource_type, resource_id)
        except (TypeError, ValueError):
            logger.exception("Audit state not storable (%s %s:%s)", action, resource_type, resource_id)
        return None

    @staticmethod
    def record_from_request(
        request,
        *,
        action: str,
        resource_type: str,
        resource_id: Any = None,
        before_state: Any = None,
        after_state: Any = None,
        description: str = "",
        store: EventStore | None = None,
    ) -> UUID | None:
        """
        record() with actor, client IP and user agent taken from a Django or
        DRF request. Anonymous requests record without an actor.
        """
        user = getattr(request, "user", None)
        actor_id = user.pk if user is not None and getattr(user, "is_authenticated", False) else None
        meta = getattr(request, "META", {}) or {}
        return AuditService.record(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            description=description,
            source_ip=client_ip(request),
            user_agent=meta.get("HTTP_USER_AGENT", ""),
            store=store,
        )
