from datetime import timedelta

import pytest

from clinic_core.audit.reports import (
    ANONYMOUS_ACTOR_KEY,
    build_activity_summary,
    build_dashboard,
    build_patient_access_reports,
)
from clinic_core.audit.store import DatabaseEventStore, InMemoryEventStore
from clinic_core.conftest import T0

pytestmark = pytest.mark.django_db

DAY = 24 * 3600
NOW = T0 + timedelta(days=10)


def test_two_actors_five_days_apart(record, patient, admin_user, doctor_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(5 * DAY, actor=doctor_user.pk, resource=str(patient.id), ip="10.0.0.2"),
        ]
    )

    (report,) = build_patient_access_reports(store, days=30, now=NOW)

    assert report.patient_id == str(patient.id)
    assert report.patient_name == "Test Patient"
    assert report.access_count == 2
    assert report.summary.unique_users == 2
    assert report.summary.unique_ips == 2
    assert report.summary.time_span.seconds == 5 * DAY
    assert report.first_accessed == T0
    assert report.last_accessed == T0 + timedelta(days=5)
    assert set(report.accessed_by) == {str(admin_user.pk), str(doctor_user.pk)}
    assert report.accessed_by[str(doctor_user.pk)].label == "Dora Doctor"
    assert report.accessed_by[str(doctor_user.pk)].role == "DOCTOR"


def test_calls_in_one_session_count_once(record, patient, admin_user):
    pid = str(patient.id)
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=pid, action="VIEW_LIST"),
            record(1, actor=admin_user.pk, resource=pid),
            record(2, actor=admin_user.pk, resource=pid),
            record(3, actor=admin_user.pk, resource=pid),
            record(2 * 3600, actor=admin_user.pk, resource=pid, action="UPDATE"),
        ]
    )

    (report,) = build_patient_access_reports(store, now=NOW)

    assert report.access_count == 2
    assert report.accessed_by[str(admin_user.pk)].access_count == 2
    assert report.summary.access_type_histogram == {"UPDATE": 1, "VIEW_DETAILED": 1, "VIEW_LIST": 1}


def test_history_access_counts_towards_patient(record, patient, patient_history, admin_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(3600, actor=admin_user.pk, resource=str(patient_history.id), resource_type="PatientHistory"),
        ]
    )

    (report,) = build_patient_access_reports(store, now=NOW)

    assert report.patient_id == str(patient.id)
    assert report.access_count == 2


def test_unresolved_resources_are_skipped(record, patient, admin_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(0, actor=admin_user.pk, resource="00000000-0000-0000-0000-000000000000"),
            record(0, actor=admin_user.pk, resource="not-a-uuid"),
            record(0, actor=admin_user.pk, resource=None, action="VIEW_LIST"),
        ]
    )

    reports = build_patient_access_reports(store, now=NOW)

    assert [r.patient_id for r in reports] == [str(patient.id)]


def test_events_outside_window_are_ignored(record, patient, admin_user):
    store = InMemoryEventStore([record(-40 * DAY, actor=admin_user.pk, resource=str(patient.id))])

    assert build_patient_access_reports(store, days=30, now=NOW) == []


def test_filter_by_patient(record, patient, other_patient, admin_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(0, actor=admin_user.pk, resource=str(other_patient.id)),
        ]
    )

    reports = build_patient_access_reports(store, patient_id=str(other_patient.id), now=NOW)

    assert [r.patient_id for r in reports] == [str(other_patient.id)]


def test_ordered_by_most_recent_access(record, patient, other_patient, admin_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(DAY, actor=admin_user.pk, resource=str(other_patient.id)),
        ]
    )

    reports = build_patient_access_reports(store, now=NOW)

    assert [r.patient_id for r in reports] == [str(other_patient.id), str(patient.id)]


def test_anonymous_sessions_are_kept_but_not_counted_as_users(record, patient, admin_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, resource=str(patient.id)),
            record(3600, actor=None, resource=str(patient.id)),
        ]
    )

    (report,) = build_patient_access_reports(store, now=NOW)

    assert report.access_count == 2
    assert report.summary.unique_users == 1
    assert report.accessed_by[ANONYMOUS_ACTOR_KEY].label == "Anonymous"


def test_accesses_included_on_request(record, patient, admin_user):
    store = InMemoryEventStore([record(0, actor=admin_user.pk, resource=str(patient.id))])

    (plain,) = build_patient_access_reports(store, now=NOW)
    (detailed,) = build_patient_access_reports(store, now=NOW, include_accesses=True)

    assert plain.accesses is None
    assert len(detailed.accesses) == 1


def test_accesses_are_coalesced_into_bursts(record, patient, other_patient, admin_user):
    store = InMemoryEventStore(
        [record(s, actor=admin_user.pk, resource=str(patient.id)) for s in (0, 2, 5, 40, 46)]
        + [record(3, actor=admin_user.pk, resource=str(other_patient.id))]
    )

    reports = build_patient_access_reports(store, now=NOW, include_accesses=True)
    (report,) = [r for r in reports if r.patient_id == str(patient.id)]

    assert report.access_count == 1
    assert [len(a.member_event_ids) for a in report.accesses] == [3, 2]
    assert {a.resource_id for a in report.accesses} == {str(patient.id)}


def test_burst_gap_is_configurable(record, patient, admin_user):
    store = InMemoryEventStore(
        [record(s, actor=admin_user.pk, resource=str(patient.id)) for s in (0, 2, 5, 40, 46)]
    )

    (report,) = build_patient_access_reports(store, now=NOW, include_accesses=True, burst_gap=60)

    assert len(report.accesses) == 1
    assert report.accesses[0].start == T0


def test_report_is_idempotent(record, patient, other_patient, admin_user, doctor_user):
    store = InMemoryEventStore(
        [
            record(i * 700, actor=(admin_user.pk if i % 2 else doctor_user.pk),
                   resource=str(patient.id if i % 3 else other_patient.id))
            for i in range(40)
        ]
    )

    assert build_patient_access_reports(store, now=NOW) == build_patient_access_reports(store, now=NOW)


def test_reads_from_database_store(make_event, patient, admin_user):
    make_event(actor=admin_user, resource_id=patient.id, at=T0)
    make_event(actor=admin_user, resource_id=patient.id, at=T0 + timedelta(seconds=10))
    make_event(actor=admin_user, resource_id=patient.id, at=T0 + timedelta(days=1))

    (report,) = build_patient_access_reports(DatabaseEventStore(), now=NOW)

    assert report.access_count == 2


def test_invalid_patient_id_rejected(record):
    with pytest.raises(ValueError):
        build_patient_access_reports(InMemoryEventStore(), patient_id="nope", now=NOW)


def test_activity_summary(record, admin_user, doctor_user):
    store = InMemoryEventStore(
        [
            record(0, actor=admin_user.pk, action="VIEW_LIST"),
            record(60, actor=admin_user.pk, action="VIEW_LIST"),
            record(120, actor=doctor_user.pk, action="UPDATE"),
            record(180, actor=None, action="LOGIN_FAILED", resource_type="Authentication"),
        ]
    )

    summary = build_activity_summary(store, days=7, now=T0 + timedelta(hours=1))

    assert summary.total_actions == 4
    assert summary.unique_users == 2
    assert [(a.action, a.count) for a in summary.top_actions] == [("VIEW_LIST", 2), ("LOGIN_FAILED", 1), ("UPDATE", 1)]
    assert len(summary.hourly_distribution) == 24
    assert sum(h.count for h in summary.hourly_distribution) == 4
    assert [(u.actor_id, u.action_count) for u in summary.user_activity] == [(admin_user.pk, 2), (doctor_user.pk, 1)]
    assert summary.user_activity[0].last_activity == T0 + timedelta(seconds=60)


def test_dashboard(record, patient, admin_user):
    failures = [
        record(i, actor=None, resource=None, action="LOGIN_FAILED", resource_type="Authentication", ip="10.0.0.9")
        for i in range(6)
    ]
    store = InMemoryEventStore(failures + [record(0, actor=admin_user.pk, resource=str(patient.id))])
    now = T0 + timedelta(hours=2)

    dash = build_dashboard(store, days=7, now=now)

    assert dash.total_audit_entries == 7
    assert dash.security.medium_severity_events == 1
    assert dash.security.high_severity_events == 0
    assert dash.patient_access.total_patients == 1
    assert dash.patient_access.total_accesses == 1
    assert dash.period.start == now - timedelta(days=7)
    assert dash.generated_at == now
