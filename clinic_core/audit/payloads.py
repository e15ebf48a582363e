# backend/clinic_core/audit/payloads.py
"""
Typed views over the before/after state stored with an audit event.

State is stored as JSON. Readers parse it through ``parse_state`` which picks
a payload class by the event's resource type; unknown resource types (or
shapes that do not fit) fall back to ``OpaqueState`` so new producers never
break existing reports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Union

from django.core.serializers.json import DjangoJSONEncoder

from clinic_core.audit.constants import AUTH_RESOURCE_TYPE, REDACTED, SENSITIVE_KEYS

_encoder = DjangoJSONEncoder()


def is_sensitive_key(key: Any) -> bool:
    return isinstance(key, str) and key.lower() in SENSITIVE_KEYS


def redact(value: Any) -> Any:
    """
    Replace the value of every sensitive key with "[REDACTED]", recursively
    through dicts, lists and sets. Returns a new structure; the input is
    untouched.
    """
    if isinstance(value, Mapping):
        return {k: (REDACTED if is_sensitive_key(k) else redact(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return [redact(v) for v in sorted(value, key=str)]
    return value


def _encodable(value: Any) -> Any:
    """
    JSON-safe copy of ``value``. Sets become sorted lists, non-string keys
    become strings, and leaves DjangoJSONEncoder cannot encode fall back to
    their str().
    """
    if isinstance(value, Mapping):
        return {(k if isinstance(k, str) else str(k)): _encodable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encodable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return [_encodable(v) for v in sorted(value, key=str)]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    try:
        return _encoder.default(value)
    except TypeError:
        return str(value)


@dataclass(frozen=True)
class PatientState:
    kind: ClassVar[str] = "patient"

    patient_id: str | None = None
    full_name: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "PatientState":
        pid = data.get("patient_id", data.get("patientId", data.get("id")))
        name = data.get("full_name", data.get("fullName"))
        if name is None and (data.get("first_name") or data.get("last_name")):
            name = " ".join(p for p in (data.get("first_name"), data.get("last_name")) if p)
        return cls(
            patient_id=str(pid) if pid is not None else None,
            full_name=str(name) if name is not None else None,
            fields=dict(data),
        )

    def to_json(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class AuthenticationState:
    kind: ClassVar[str] = "authentication"

    identity: str | None = None
    reason: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "AuthenticationState":
        identity = data.get("username") or data.get("email") or data.get("identity")
        return cls(
            identity=str(identity) if identity else None,
            reason=data.get("reason"),
            fields=dict(data),
        )

    def to_json(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class OpaqueState:
    kind: ClassVar[str] = "opaque"

    data: Any = None

    def to_json(self) -> Any:
        return self.data


StatePayload = Union[PatientState, AuthenticationState, OpaqueState]

_PARSERS = {
    "Patient": PatientState,
    "PatientHistory": PatientState,
    AUTH_RESOURCE_TYPE: AuthenticationState,
}


def parse_state(resource_type: str, data: Any) -> StatePayload | None:
    if data is None:
        return None
    parser = _PARSERS.get(resource_type)
    if parser is None or not isinstance(data, Mapping):
        return OpaqueState(data=data)
    return parser.from_json(data)


def prepare_state(data: Any) -> Any:
    """
    Normalize a state value for storage: payload objects are unwrapped,
    sensitive keys are redacted and the result is made JSON-encodable.
    """
    if data is None:
        return None
    if isinstance(data, (PatientState, AuthenticationState, OpaqueState)):
        data = data.to_json()
    return _encodable(redact(data))
