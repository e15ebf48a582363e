# backend/clinic_core/patients/selectors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from clinic_core.patients.models import Patient, PatientHistory


@dataclass(frozen=True)
class PatientRef:
    patient_id: str
    name: str


def _canonical(value: str) -> str | None:
    try:
        return str(UUID(str(value)))
    except (TypeError, ValueError):
        return None


def _valid_uuids(values: Iterable[str]) -> set[UUID]:
    return {UUID(c) for c in (_canonical(v) for v in values) if c}


def resolve_patient_refs(resource_ids: Iterable[str]) -> dict[str, PatientRef]:
    """
    Map audit resource ids to the patient they belong to.

    A resource id is either a Patient id or a PatientHistory id (which
    resolves to its patient). Ids that match neither are absent from the
    result.
    """
    wanted = {str(r) for r in resource_ids if r}
    ids = _valid_uuids(wanted)
    if not ids:
        return {}

    resolved: dict[str, PatientRef] = {}

    for pid, name in Patient.objects.filter(id__in=ids).values_list("id", "full_name"):
        resolved[str(pid)] = PatientRef(patient_id=str(pid), name=name)

    remaining = {i for i in ids if str(i) not in resolved}
    if remaining:
        rows = PatientHistory.objects.filter(id__in=remaining).values_list(
            "id", "patient_id", "patient__full_name"
        )
        for hid, pid, name in rows:
            resolved[str(hid)] = PatientRef(patient_id=str(pid), name=name)

    # Keyed by the caller's spelling of each id
    out: dict[str, PatientRef] = {}
    for raw in wanted:
        canonical = _canonical(raw)
        if canonical in resolved:
            out[raw] = resolved[canonical]
    return out
