# backend/clinic_core/audit/middleware.py
from __future__ import annotations

import logging
import re
import time

from django.utils.deprecation import MiddlewareMixin

from clinic_core.audit.conf import audit_settings
from clinic_core.audit.models import AuditAction
from clinic_core.audit.resources import match_route
from clinic_core.audit.services import AuditService

logger = logging.getLogger(__name__)

_ID_RE = re.compile(
    r"^(?:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{32}|\d+)$",
    re.IGNORECASE,
)

_WRITE_ACTIONS = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}


def resource_id_from_path(path: str, prefix: str) -> str | None:
    first = path[len(prefix):].strip("/").split("/", 1)[0]
    return first if first and _ID_RE.match(first) else None


def action_for(method: str, path: str, resource_id: str | None) -> str | None:
    method = method.upper()
    if method in _WRITE_ACTIONS:
        return _WRITE_ACTIONS[method]
    if method != "GET":
        return None
    if "/export" in path:
        return AuditAction.EXPORT
    return AuditAction.VIEW_DETAILED if resource_id else AuditAction.VIEW_LIST


class AuditTrailMiddleware(MiddlewareMixin):
    """
    Records one audit event per successful authenticated request to a
    patient-data route (AUDIT_PATIENT_DATA_ROUTES).

    Must run after AuthenticationMiddleware. DRF views authenticate inside
    the view and write the user back onto the Django request, so token
    authenticated callers are visible by process_response.
    """

    def process_request(self, request):
        request._audit_started = time.monotonic()
        return None

    def process_response(self, request, response):
        try:
            self._record(request, response)
        except Exception:
            logger.exception("Request audit failed for %s %s", request.method, request.path)
        return response

    def _record(self, request, response) -> None:
        conf = audit_settings()
        path = request.path

        if any(path.startswith(p) for p in conf.middleware_skip_prefixes):
            return
        if response.status_code >= 400:
            return

        user = getattr(request, "user", None)
        if user is None or not getattr(user, "is_authenticated", False):
            return

        route = match_route(path)
        if route is None:
            return

        prefix, resource_type = route
        resource_id = resource_id_from_path(path, prefix)
        action = action_for(request.method, path, resource_id)
        if action is None:
            return

        started = getattr(request, "_audit_started", None)
        ms = int((time.monotonic() - started) * 1000) if started is not None else 0

        AuditService.record_from_request(
            request,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=f"{request.method} {path} - {response.status_code} ({ms}ms)",
        )
