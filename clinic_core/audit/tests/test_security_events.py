from datetime import timedelta

import pytest

from clinic_core.audit.constants import SecurityEventType, Severity
from clinic_core.audit.security import detect_security_events, targeted_account
from clinic_core.audit.store import InMemoryEventStore
from clinic_core.conftest import T0

NOW = T0 + timedelta(hours=1)


def _failures(record, n, *, ip="10.0.0.5", start=0, username="alice"):
    return [
        record(
            start + i * 60,
            actor=None,
            resource=None,
            action="LOGIN_FAILED",
            resource_type="Authentication",
            ip=ip,
            after_state={"username": username, "reason": "invalid_credentials"},
            description=f"Failed login attempt for {username}",
        )
        for i in range(n)
    ]


def test_medium_severity_below_high_threshold(record):
    store = InMemoryEventStore(_failures(record, 6))

    (event,) = detect_security_events(store, now=NOW, failure_threshold=5, high_threshold=10)

    assert event.type == SecurityEventType.MULTIPLE_FAILED_LOGINS
    assert event.severity == Severity.MEDIUM
    assert event.ip_address == "10.0.0.5"
    assert event.details.attempt_count == 6
    assert event.details.first_attempt == T0
    assert event.details.last_attempt == T0 + timedelta(minutes=5)
    assert event.details.targeted_accounts == ("alice",)
    assert event.timestamp == T0


def test_high_severity_at_high_threshold(record):
    store = InMemoryEventStore(_failures(record, 12))

    (event,) = detect_security_events(store, now=NOW, failure_threshold=5, high_threshold=10)

    assert event.severity == Severity.HIGH
    assert event.details.attempt_count == 12


def test_below_threshold_yields_nothing(record):
    store = InMemoryEventStore(_failures(record, 4))

    assert detect_security_events(store, now=NOW) == []


def test_events_outside_window_are_ignored(record):
    store = InMemoryEventStore(_failures(record, 6, start=-3 * 24 * 3600))

    assert detect_security_events(store, now=NOW, hours=24) == []


def test_events_without_ip_are_skipped(record):
    store = InMemoryEventStore(_failures(record, 3) + _failures(record, 5, ip=None))

    assert detect_security_events(store, now=NOW) == []


def test_successful_logins_do_not_count(record):
    ok = [record(i, action="LOGIN", resource_type="Authentication", ip="10.0.0.5") for i in range(10)]
    store = InMemoryEventStore(ok + _failures(record, 2))

    assert detect_security_events(store, now=NOW) == []


def test_sorted_high_first_then_by_attempts(record):
    events = (
        _failures(record, 6, ip="10.0.0.1")
        + _failures(record, 11, ip="10.0.0.2")
        + _failures(record, 8, ip="10.0.0.3")
    )
    store = InMemoryEventStore(events)

    out = detect_security_events(store, now=NOW)

    assert [(e.ip_address, e.severity) for e in out] == [
        ("10.0.0.2", Severity.HIGH),
        ("10.0.0.3", Severity.MEDIUM),
        ("10.0.0.1", Severity.MEDIUM),
    ]


def test_targeted_accounts_are_collected(record):
    events = _failures(record, 3, username="alice") + _failures(record, 3, start=1000, username="bob")
    store = InMemoryEventStore(events)

    (event,) = detect_security_events(store, now=NOW)

    assert event.details.targeted_accounts == ("alice", "bob")


def test_detection_is_deterministic(record):
    store = InMemoryEventStore(_failures(record, 7))

    assert detect_security_events(store, now=NOW) == detect_security_events(store, now=NOW)


def test_targeted_account_falls_back_to_description(record):
    e = record(0, action="LOGIN_FAILED", resource_type="Authentication", description="Failed login attempt for carol")

    assert targeted_account(e) == "carol"


def test_targeted_account_unknown(record):
    e = record(0, action="LOGIN_FAILED", resource_type="Authentication", description="Failed login attempt")

    assert targeted_account(e) is None


def test_invalid_window_rejected():
    with pytest.raises(ValueError):
        detect_security_events(InMemoryEventStore(), hours=0)
