import pytest

from clinic_core.audit.gdpr import (
    GdprAction,
    audit_actions_by_resource,
    classify,
    data_type_for,
    personal_data_resource_types,
)
from clinic_core.audit.resources import ResourceRegistry


@pytest.mark.parametrize(
    "action,expected",
    [
        ("VIEW_LIST", GdprAction.DATA_ACCESS),
        ("VIEW_DETAILED", GdprAction.DATA_ACCESS),
        ("CREATE", GdprAction.DATA_MODIFICATION),
        ("UPDATE", GdprAction.DATA_MODIFICATION),
        ("DELETE", GdprAction.DATA_DELETION),
        ("EXPORT", GdprAction.DATA_EXPORT),
    ],
)
def test_patient_actions(action, expected):
    c = classify("Patient", action)

    assert c.action == expected
    assert c.data_type == "patient_personal_data"
    assert c.legal_basis.startswith("Legitimate interest")


def test_history_uses_medical_data_type():
    assert classify("PatientHistory", "VIEW_DETAILED").data_type == "medical_history_data"


def test_successful_login_is_data_access():
    c = classify("Authentication", "LOGIN")

    assert c.action == GdprAction.DATA_ACCESS
    assert c.data_type == "authentication_data"
    assert c.legal_basis.startswith("Contract")


@pytest.mark.parametrize("action", ["LOGIN_FAILED", "LOGOUT", "TOKEN_REFRESH"])
def test_other_authentication_actions_are_not_processing(action):
    assert classify("Authentication", action) is None


def test_non_personal_resource():
    assert classify("Invoice", "VIEW_LIST") is None


def test_registry_data_type_wins():
    reg = ResourceRegistry()
    reg.register("Patient", data_type="special_category_data")
    reg.register("LabResult", data_type="lab_data")

    assert data_type_for("Patient", registry=reg) == "special_category_data"
    assert "LabResult" in personal_data_resource_types(registry=reg)
    assert classify("LabResult", "EXPORT", registry=reg).action == GdprAction.DATA_EXPORT


def test_actions_by_resource_for_one_gdpr_action():
    pairs = audit_actions_by_resource(GdprAction.DATA_ACCESS)

    assert pairs["Patient"] == ("VIEW_DETAILED", "VIEW_LIST")
    assert pairs["Authentication"] == ("LOGIN",)


def test_actions_by_resource_skips_empty():
    pairs = audit_actions_by_resource(GdprAction.CONSENT_GIVEN)

    assert pairs == {}
