# backend/clinic_core/audit/gdpr.py
"""
GDPR processing view over the audit trail.

Nothing is stored separately: each audit event on a personal-data resource
is classified into a GDPR processing action with its data category, purpose
and legal basis when it is read.
"""
from __future__ import annotations

from dataclasses import dataclass

from django.db import models

from clinic_core.audit.constants import AUTH_RESOURCE_TYPE
from clinic_core.audit.resources import ResourceRegistry, registry as default_registry


class GdprAction(models.TextChoices):
    DATA_ACCESS = "DATA_ACCESS", "Data Access"
    DATA_EXPORT = "DATA_EXPORT", "Data Export"
    DATA_MODIFICATION = "DATA_MODIFICATION", "Data Modification"
    DATA_DELETION = "DATA_DELETION", "Data Deletion"
    CONSENT_GIVEN = "CONSENT_GIVEN", "Consent Given"
    CONSENT_WITHDRAWN = "CONSENT_WITHDRAWN", "Consent Withdrawn"
    PROCESSING_RESTRICTED = "PROCESSING_RESTRICTED", "Processing Restricted"


# audit action -> GDPR processing action
_ACTION_MAP = {
    "VIEW_LIST": GdprAction.DATA_ACCESS,
    "VIEW_DETAILED": GdprAction.DATA_ACCESS,
    "CREATE": GdprAction.DATA_MODIFICATION,
    "UPDATE": GdprAction.DATA_MODIFICATION,
    "DELETE": GdprAction.DATA_DELETION,
    "EXPORT": GdprAction.DATA_EXPORT,
}

# Authentication only processes data on a successful sign-in.
_AUTH_ACTION_MAP = {
    "LOGIN": GdprAction.DATA_ACCESS,
}

_FALLBACK_DATA_TYPES = {
    "Patient": "patient_personal_data",
    "PatientHistory": "medical_history_data",
    "Appointment": "appointment_data",
    AUTH_RESOURCE_TYPE: "authentication_data",
}

HEALTHCARE_BASIS = "Legitimate interest - Healthcare service provision"
EMPLOYMENT_BASIS = "Contract - Employment relationship"


@dataclass(frozen=True)
class GdprClassification:
    action: str
    data_type: str
    purpose: str
    legal_basis: str


def data_type_for(resource_type: str, *, registry: ResourceRegistry | None = None) -> str | None:
    reg = default_registry if registry is None else registry
    entry = reg.get(resource_type)
    if entry is not None and entry.data_type:
        return entry.data_type
    return _FALLBACK_DATA_TYPES.get(resource_type)


def personal_data_resource_types(*, registry: ResourceRegistry | None = None) -> tuple[str, ...]:
    reg = default_registry if registry is None else registry
    types = set(_FALLBACK_DATA_TYPES)
    types.update(r.value for r in reg.labels() if r.data_type)
    return tuple(sorted(types))


def classify(resource_type: str, action: str, *, registry: ResourceRegistry | None = None) -> GdprClassification | None:
    """
    GDPR classification of one audit event, or None when the event does not
    process personal data.
    """
    data_type = data_type_for(resource_type, registry=registry)
    if data_type is None:
        return None

    if resource_type == AUTH_RESOURCE_TYPE:
        gdpr_action = _AUTH_ACTION_MAP.get(action)
        if gdpr_action is None:
            return None
        return GdprClassification(
            action=gdpr_action.value,
            data_type=data_type,
            purpose="User authentication for system access",
            legal_basis=EMPLOYMENT_BASIS,
        )

    gdpr_action = _ACTION_MAP.get(action)
    if gdpr_action is None:
        return None
    return GdprClassification(
        action=gdpr_action.value,
        data_type=data_type,
        purpose=f"Staff member accessed {resource_type} for clinic operations",
        legal_basis=HEALTHCARE_BASIS,
    )


def audit_actions_by_resource(
    gdpr_action: str | None = None,
    *,
    registry: ResourceRegistry | None = None,
) -> dict[str, tuple[str, ...]]:
    """
    resource type -> audit actions on it that classify as ``gdpr_action``
    (every classified action when None). Resource types with no matching
    action are left out.
    """
    out: dict[str, tuple[str, ...]] = {}
    for resource_type in personal_data_resource_types(registry=registry):
        mapping = _AUTH_ACTION_MAP if resource_type == AUTH_RESOURCE_TYPE else _ACTION_MAP
        actions = tuple(sorted(a for a, g in mapping.items() if gdpr_action is None or g == gdpr_action))
        if actions:
            out[resource_type] = actions
    return out
