# backend/clinic_core/audit/exceptions.py
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError

__all__ = [
    "ActorUnresolved",
    "ImmutableAuditEvent",
    "ReportTimeout",
    "StoreUnavailable",
    "ValidationError",
]


class ImmutableAuditEvent(Exception):
    """Raised on any attempt to update or delete a stored audit event."""


class ActorUnresolved(Exception):
    """
    A write names an actor that cannot be resolved, or omits the actor on an
    action that requires one. The write is skipped; callers never see this.
    """

    def __init__(self, actor_id=None, action: str | None = None):
        self.actor_id = actor_id
        self.action = action
        if actor_id is None:
            msg = f"Action {action} requires an actor."
        else:
            msg = f"Unknown actor {actor_id!r}."
        super().__init__(msg)


class StoreUnavailable(APIException):
    """
    503 when the audit store cannot be read from or written to.
    """
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Audit store is unavailable."
    default_code = "store_unavailable"


class ReportTimeout(APIException):
    """
    504 when a report exceeds its computation budget.
    """
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_detail = "Report computation exceeded its time budget."
    default_code = "report_timeout"
