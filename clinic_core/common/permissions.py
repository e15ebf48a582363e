# backend/clinic_core/common/permissions.py
from __future__ import annotations

from rest_framework.permissions import SAFE_METHODS, BasePermission

# Django auth Group names
ROLE_ADMIN = "ADMIN"
ROLE_COMPLIANCE = "COMPLIANCE"
ROLE_DOCTOR = "DOCTOR"
ROLE_NURSE = "NURSE"
ROLE_RECEPTION = "RECEPTION"
ROLE_READONLY = "READONLY"

# Most privileged first
ALL_ROLES = (ROLE_ADMIN, ROLE_COMPLIANCE, ROLE_DOCTOR, ROLE_NURSE, ROLE_RECEPTION, ROLE_READONLY)


def _user_roles(user) -> set[str]:
    """
    Role names held by ``user``: its Django group names (or a ``role``
    attribute on custom user models). Superusers are ADMIN; authenticated
    users without any group are READONLY; anonymous users hold none.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()
    if getattr(user, "is_superuser", False):
        return {ROLE_ADMIN}

    roles = set(user.groups.values_list("name", flat=True)) if hasattr(user, "groups") else set()
    extra = getattr(user, "role", None)
    if extra:
        roles.add(str(extra))
    return roles or {ROLE_READONLY}


def pick_role(roles) -> str:
    """
    Single display role for reports and facets: the most privileged one held.
    """
    for role in ALL_ROLES:
        if role in roles:
            return role
    return sorted(roles)[0] if roles else ROLE_READONLY


def primary_role(user) -> str:
    return pick_role(_user_roles(user))


class BaseRolePermission(BasePermission):
    """
    Per-action role check for ViewSets.

    Subclasses map each view action to the roles allowed to run it. ADMIN
    passes every check; actions missing from the map are denied.
    """
    message = "You do not have permission to perform this action."

    allowed_roles_per_action: dict[str, set[str]] = {}

    def has_permission(self, request, view) -> bool:
        roles = _user_roles(request.user)
        if not roles:
            return False
        if ROLE_ADMIN in roles:
            return True

        action = getattr(view, "action", None) or ("list" if request.method in SAFE_METHODS else None)
        allowed = self.allowed_roles_per_action.get(action)
        return bool(allowed and roles & allowed)


class AuditLogPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": {ROLE_ADMIN},
        "mine": set(ALL_ROLES),
        "filter_options": {ROLE_ADMIN},
    }


class GdprLogPermission(BaseRolePermission):
    allowed_roles_per_action = {
        "list": {ROLE_ADMIN, ROLE_COMPLIANCE},
        "filter_options": {ROLE_ADMIN},
    }


class AuditReportPermission(BaseRolePermission):
    # Security and activity reports stay with admins.
    allowed_roles_per_action = {
        "patient_access": {ROLE_ADMIN, ROLE_COMPLIANCE},
        "security_events": {ROLE_ADMIN},
        "activity_summary": {ROLE_ADMIN},
        "dashboard": {ROLE_ADMIN},
    }
