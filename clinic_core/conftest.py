# clinic_core/conftest.py
import uuid
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from clinic_core.common.idempotency import clear_memory_store
from clinic_core.patients.models import Patient


@pytest.fixture(autouse=True)
def _reset_idempotency_store():
    clear_memory_store()
    yield
    clear_memory_store()


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def facility_id():
    return uuid.uuid4()


@pytest.fixture
def make_user(db):
    """
    make_user("PHARMACIST") -> user in that role group.
    """
    User = get_user_model()
    counter = {"n": 0}

    def _make(*roles, username=None):
        counter["n"] += 1
        u = User.objects.create_user(
            username=username or f"user{counter['n']}",
            password="testpass",
            first_name="Test",
            last_name=f"User{counter['n']}",
            is_active=True,
        )
        for role in roles:
            group, _ = Group.objects.get_or_create(name=role)
            u.groups.add(group)
        return u

    return _make


@pytest.fixture
def user(make_user):
    return make_user("ADMIN", username="testuser")


@pytest.fixture
def api_client(user):
    c = APIClient()
    c.force_authenticate(user=user)
    return c


@pytest.fixture
def client_for(make_user):
    """
    client_for("NURSE") -> APIClient authenticated as a fresh NURSE user.
    """
    def _client(*roles):
        c = APIClient()
        c.force_authenticate(user=make_user(*roles))
        return c

    return _client


@pytest.fixture
def patient(db, tenant_id, facility_id):
    return Patient.objects.create(
        tenant_id=tenant_id,
        facility_id=facility_id,
        full_name="Test Patient",
        mrn="MRN-TEST-001",
        history=["[2023-01-10] Dx: Influenza."],
    )


@pytest.fixture
def item(db, tenant_id, facility_id, user):
    from clinic_core.inventory.services import InventoryService

    return InventoryService.create_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=user.id,
        name="Amoxicillin 500mg",
        stock=5,
        min_stock_level=2,
        unit="caps",
        price=Decimal("100.00"),
    )


@pytest.fixture
def visit(db, tenant_id, facility_id, patient, user):
    from clinic_core.visits.services import VisitService

    return VisitService.create_visit(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor_user_id=user.id,
        patient_id=patient.id,
        consultation_fee=Decimal("500.00"),
    )
