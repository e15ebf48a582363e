import pytest
from django.contrib.auth.models import Group
from django.core.management import call_command

from clinic_core.common.permissions import ALL_ROLES, primary_role


@pytest.mark.django_db
def test_ensure_roles_is_idempotent():
    call_command("ensure_roles")
    call_command("ensure_roles")

    assert set(Group.objects.values_list("name", flat=True)) == set(ALL_ROLES)


@pytest.mark.django_db
def test_primary_role_picks_most_privileged(doctor_user, compliance_user):
    compliance_user.groups.add(Group.objects.get(name="DOCTOR"))

    assert primary_role(doctor_user) == "DOCTOR"
    assert primary_role(compliance_user) == "COMPLIANCE"
