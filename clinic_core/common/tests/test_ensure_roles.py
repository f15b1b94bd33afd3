from io import StringIO

import pytest
from django.contrib.auth.models import Group
from django.core.management import call_command

from clinic_core.common.permissions import ALL_ROLES

pytestmark = pytest.mark.django_db


def test_ensure_roles_is_idempotent():
    first, second = StringIO(), StringIO()
    call_command("ensure_roles", stdout=first)
    call_command("ensure_roles", stdout=second)

    assert set(Group.objects.values_list("name", flat=True)) == set(ALL_ROLES)
    assert f"{len(ALL_ROLES)} role group(s) created." in first.getvalue()
    assert "0 role group(s) created." in second.getvalue()


def test_ensure_roles_lists_capabilities():
    out = StringIO()
    call_command("ensure_roles", "--verbose-capabilities", stdout=out)
    assert "+ PHARMACIST: " in out.getvalue()
    assert "pharmacy.dispense" in out.getvalue()
