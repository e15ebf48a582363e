import logging

import pytest
from django.http import HttpResponse
from django.test import RequestFactory
from rest_framework.exceptions import NotFound, ValidationError

from clinic_core.common.api.exceptions import api_exception_handler, build_error_envelope
from clinic_core.common.logging import RequestIdFilter, request_id_var
from clinic_core.common.middleware import RequestIdMiddleware


def _record():
    return logging.LogRecord("clinic_core", logging.INFO, __file__, 1, "msg", None, None)


def test_request_id_middleware_honors_inbound_header():
    req = RequestFactory().get("/api/v1/audit/logs/", HTTP_X_REQUEST_ID="abc-123")
    seen = {}

    def view(r):
        seen["rid"] = request_id_var.get()
        return HttpResponse()

    resp = RequestIdMiddleware(view)(req)

    assert seen["rid"] == "abc-123"
    assert resp["X-Request-ID"] == "abc-123"
    assert request_id_var.get() is None


def test_request_id_middleware_generates_id_for_oversized_header():
    req = RequestFactory().get("/", HTTP_X_REQUEST_ID="x" * 100)

    resp = RequestIdMiddleware(lambda r: HttpResponse())(req)

    assert resp["X-Request-ID"] == req.request_id
    assert len(req.request_id) == 32


def test_log_filter_attaches_current_request_id():
    token = request_id_var.set("rid-1")
    try:
        rec = _record()
        assert RequestIdFilter().filter(rec) is True
        assert rec.request_id == "rid-1"
    finally:
        request_id_var.reset(token)

    rec = _record()
    RequestIdFilter().filter(rec)
    assert rec.request_id == "-"


def test_build_error_envelope_reuses_request_id():
    req = RequestFactory().get("/")
    req.request_id = "rid-9"

    body = build_error_envelope(request=req, code="not_found", message="Nope.")

    assert body == {
        "success": False,
        "error": {"code": "not_found", "message": "Nope.", "details": None, "request_id": "rid-9"},
    }


def test_validation_errors_keep_field_details():
    resp = api_exception_handler(ValidationError({"days": ["Too small."]}), {"request": None})

    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"
    assert resp.data["error"]["message"] == "Request failed."
    assert resp.data["error"]["details"] == {"days": ["Too small."]}


def test_detail_only_errors_become_message():
    resp = api_exception_handler(NotFound("Missing."), {"request": None})

    assert resp.status_code == 404
    assert resp.data["error"]["code"] == "not_found"
    assert resp.data["error"]["message"] == "Missing."
    assert resp.data["error"]["details"] is None


def test_unhandled_errors_become_500():
    resp = api_exception_handler(RuntimeError("boom"), {"request": None})

    assert resp.status_code == 500
    assert resp.data["success"] is False
    assert resp.data["error"]["code"] == "server_error"
    assert resp.data["error"]["request_id"]


@pytest.mark.django_db
def test_api_error_carries_request_id_header_value(api_client):
    r = api_client.get("/api/v1/audit/logs/", {"limit": "x", "ip_address": "bad"}, HTTP_X_REQUEST_ID="req-42")

    assert r.status_code == 400
    assert r.data["error"]["request_id"] == "req-42"
    assert r["X-Request-ID"] == "req-42"
