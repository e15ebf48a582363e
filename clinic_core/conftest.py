# backend/clinic_core/conftest.py
from datetime import datetime, timedelta, timezone as dt_timezone
import uuid

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from clinic_core.audit.models import AuditEvent
from clinic_core.audit.store import EventRecord
from clinic_core.patients.models import Patient, PatientHistory

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=dt_timezone.utc)


def _user_with_role(username: str, role: str | None, **extra):
    User = get_user_model()
    user = User.objects.create_user(username=username, password="testpass", is_active=True, **extra)
    if role:
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)
    return user


@pytest.fixture
def admin_user(db):
    return _user_with_role("admin", "ADMIN", first_name="Ada", last_name="Admin")


@pytest.fixture
def compliance_user(db):
    return _user_with_role("compliance", "COMPLIANCE", first_name="Carl", last_name="Compliance")


@pytest.fixture
def doctor_user(db):
    return _user_with_role("doctor", "DOCTOR", first_name="Dora", last_name="Doctor")


@pytest.fixture
def api_client(admin_user):
    c = APIClient()
    c.force_authenticate(user=admin_user)
    return c


@pytest.fixture
def client_for():
    def _make(user):
        c = APIClient()
        c.force_authenticate(user=user)
        return c

    return _make


@pytest.fixture
def patient(db):
    return Patient.objects.create(full_name="Test Patient", mrn="MRN-TEST-001")


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(full_name="Other Patient", mrn="MRN-TEST-002")


@pytest.fixture
def patient_history(patient):
    return PatientHistory.objects.create(patient=patient, condition="Hypertension")


@pytest.fixture
def make_event(db):
    """
    Insert an AuditEvent directly (bypassing the best-effort writer) so tests
    control timestamps.
    """
    def _make(*, action="VIEW_DETAILED", resource_type="Patient", resource_id=None, actor=None,
              at=None, source_ip="10.0.0.1", user_agent="pytest", description="", after_state=None):
        return AuditEvent.objects.create(
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            source_ip=source_ip,
            user_agent=user_agent,
            description=description,
            after_state=after_state,
            occurred_at=at or T0,
        )

    return _make


@pytest.fixture
def record():
    """
    Build an in-memory EventRecord at T0 + ``seconds``.
    """
    def _make(seconds: float, *, actor="U1", resource="P123", action="VIEW_DETAILED",
              resource_type="Patient", ip="10.0.0.1", eid=None, **extra):
        return EventRecord(
            id=eid or str(uuid.uuid4()),
            actor_id=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource,
            timestamp=T0 + timedelta(seconds=seconds),
            source_ip=ip,
            **extra,
        )

    return _make
