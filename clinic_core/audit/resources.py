# backend/clinic_core/audit/resources.py
from __future__ import annotations

from dataclasses import dataclass

from clinic_core.audit.conf import audit_settings


@dataclass(frozen=True)
class ResourceLabel:
    value: str
    label: str
    data_type: str | None = None


class ResourceRegistry:
    """
    Allow-list of resource types that may appear as audit facets.

    Apps that own a resource register it from AppConfig.ready(); after
    start-up the registry is only read.
    """

    def __init__(self) -> None:
        self._labels: dict[str, ResourceLabel] = {}

    def register(self, value: str, *, label: str | None = None, data_type: str | None = None) -> ResourceLabel:
        if not value:
            raise ValueError("Resource type must be a non-empty string.")
        entry = ResourceLabel(value=value, label=label or value, data_type=data_type)
        self._labels[value] = entry
        return entry

    def get(self, value: str) -> ResourceLabel | None:
        return self._labels.get(value)

    def __contains__(self, value: object) -> bool:
        return value in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def labels(self) -> list[ResourceLabel]:
        return sorted(self._labels.values(), key=lambda r: r.value)


registry = ResourceRegistry()


def register_resource(value: str, *, label: str | None = None, data_type: str | None = None) -> ResourceLabel:
    return registry.register(value, label=label, data_type=data_type)


def match_route(path: str) -> tuple[str, str] | None:
    """
    (prefix, resource type) of the patient-data route serving ``path``,
    longest prefix first.
    """
    routes = audit_settings().patient_data_routes
    hits = [p for p in routes if path.startswith(p)]
    if not hits:
        return None
    prefix = max(hits, key=len)
    return prefix, routes[prefix]
