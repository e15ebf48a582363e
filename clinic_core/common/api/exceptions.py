# backend/clinic_core/common/api/exceptions.py
from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

# Checked in order; first match wins.
_CODES: tuple[tuple[type, str], ...] = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (PermissionDenied, "permission_denied"),
    (Http404, "not_found"),
)


def ensure_request_id(request) -> str:
    """
    Return the request's id, assigning a fresh one if it has none yet.
    Works on Django and DRF requests, and on None (id is generated only).
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if rid:
        return rid
    rid = uuid.uuid4().hex
    if request is not None:
        request.request_id = rid
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        },
    }


def build_success_envelope(data: Any, *, pagination: dict[str, int] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    return body


def _code_for(exc: Exception, http_status: int) -> str:
    for exc_class, code in _CODES:
        if isinstance(exc, exc_class):
            return code
    if isinstance(exc, APIException):
        return exc.default_code or "api_error"
    return "server_error" if http_status >= 500 else "error"


def _split_detail(data: Any) -> tuple[str, Any]:
    """
    DRF error payload -> (message, details).

    A "detail" key becomes the message and the remaining keys (if any) the
    details; field errors and other shapes are passed through as details.
    """
    if isinstance(data, dict) and "detail" in data:
        rest = {k: v for k, v in data.items() if k != "detail"}
        return str(data["detail"]), (rest or None)
    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    """
    DRF EXCEPTION_HANDLER: every error leaves as the failure envelope.
    """
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled API error", extra={"request_id": ensure_request_id(request)})
        body = build_error_envelope(request=request, code="server_error", message="Unexpected server error.")
        return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    code = _code_for(exc, response.status_code)
    message, details = _split_detail(response.data)

    if response.status_code >= 500:
        logger.warning("API error %s: %s", code, message)

    return Response(
        build_error_envelope(request=request, code=code, message=message, details=details),
        status=response.status_code,
        headers=response.headers,
    )
