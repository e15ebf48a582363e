# backend/clinic_core/audit/signals/auth.py
from __future__ import annotations

from django.contrib.auth.signals import user_logged_in, user_logged_out, user_login_failed
from django.dispatch import receiver

from clinic_core.audit.constants import AUTH_RESOURCE_TYPE
from clinic_core.audit.models import AuditAction
from clinic_core.audit.services import AuditService, client_ip


def _user_agent(request) -> str:
    if request is None:
        return ""
    return (getattr(request, "META", {}) or {}).get("HTTP_USER_AGENT", "")


@receiver(user_logged_in, dispatch_uid="audit.user_logged_in")
def audit_user_logged_in(sender, request, user, **kwargs):
    AuditService.record(
        actor_id=user.pk,
        action=AuditAction.LOGIN,
        resource_type=AUTH_RESOURCE_TYPE,
        resource_id=user.pk,
        after_state={"username": user.get_username()},
        description=f"User logged in: {user.get_username()}",
        source_ip=client_ip(request) if request is not None else None,
        user_agent=_user_agent(request),
    )


@receiver(user_logged_out, dispatch_uid="audit.user_logged_out")
def audit_user_logged_out(sender, request, user, **kwargs):
    # Django sends user=None when the session had no authenticated user
    if user is None:
        return
    AuditService.record(
        actor_id=user.pk,
        action=AuditAction.LOGOUT,
        resource_type=AUTH_RESOURCE_TYPE,
        resource_id=user.pk,
        description=f"User logged out: {user.get_username()}",
        source_ip=client_ip(request) if request is not None else None,
        user_agent=_user_agent(request),
    )


@receiver(user_login_failed, dispatch_uid="audit.user_login_failed")
def audit_user_login_failed(sender, credentials, request=None, **kwargs):
    # credentials are already scrubbed by Django; only the identity is kept
    identity = credentials.get("username") or credentials.get("email") or ""
    AuditService.record(
        actor_id=None,
        action=AuditAction.LOGIN_FAILED,
        resource_type=AUTH_RESOURCE_TYPE,
        after_state={"username": identity, "reason": "invalid_credentials"},
        description=f"Failed login attempt for {identity}" if identity else "Failed login attempt",
        source_ip=client_ip(request) if request is not None else None,
        user_agent=_user_agent(request),
    )
