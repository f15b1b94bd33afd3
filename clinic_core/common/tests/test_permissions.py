import pytest
from django.contrib.auth import get_user_model

from clinic_core.common.permissions import (
    BILLING_MANAGE,
    INVENTORY_DELETE,
    PATIENTS_VIEW,
    PHARMACY_DISPENSE,
    VISITS_COMPLETE,
    VISITS_EDIT,
    user_has_capability,
)

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize(
    "role,capability,expected",
    [
        ("PHARMACIST", PHARMACY_DISPENSE, True),
        ("DOCTOR", PHARMACY_DISPENSE, True),
        ("NURSE", PHARMACY_DISPENSE, False),
        ("RECEPTION", PHARMACY_DISPENSE, False),
        ("ACCOUNTANT", BILLING_MANAGE, True),
        ("ACCOUNTANT", VISITS_COMPLETE, True),
        ("NURSE", BILLING_MANAGE, False),
        ("LAB", VISITS_EDIT, True),
        ("PHARMACIST", INVENTORY_DELETE, False),
        ("ADMIN", INVENTORY_DELETE, True),
        ("ADMIN", "audit.view", True),
    ],
)
def test_role_capability_matrix(make_user, role, capability, expected):
    assert user_has_capability(make_user(role), capability) is expected


def test_group_names_are_case_insensitive(make_user):
    assert user_has_capability(make_user("pharmacist"), PHARMACY_DISPENSE) is True


def test_user_without_groups_is_read_only(make_user):
    u = make_user()
    assert user_has_capability(u, PATIENTS_VIEW) is True
    assert user_has_capability(u, VISITS_EDIT) is False


def test_superuser_has_every_capability(db):
    su = get_user_model().objects.create_superuser(username="root", password="x", email="root@example.com")
    assert user_has_capability(su, PHARMACY_DISPENSE) is True
    assert user_has_capability(su, BILLING_MANAGE) is True


def test_anonymous_has_nothing():
    from django.contrib.auth.models import AnonymousUser

    assert user_has_capability(AnonymousUser(), PATIENTS_VIEW) is False
    assert user_has_capability(None, PATIENTS_VIEW) is False
