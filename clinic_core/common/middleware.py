# backend/clinic_core/common/middleware.py
from __future__ import annotations

from django.utils.deprecation import MiddlewareMixin

from clinic_core.common.api.exceptions import ensure_request_id
from clinic_core.common.logging import request_id_var


class RequestIdMiddleware(MiddlewareMixin):
    """
    Assigns request.request_id as early as possible so log lines and the
    error envelope share one id. Honors an inbound X-Request-ID header.
    """

    HEADER = "X-Request-ID"

    def process_request(self, request):
        inbound = (request.headers.get(self.HEADER) or "").strip()
        if inbound and len(inbound) <= 64:
            request.request_id = inbound
        rid = ensure_request_id(request)
        request._request_id_token = request_id_var.set(rid)
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response[self.HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            request_id_var.reset(token)
        return response
