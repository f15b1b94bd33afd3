import uuid

import pytest
from django.test import RequestFactory

from clinic_core.common.idempotency import run_once
from clinic_core.common.models import IdempotencyRecord
from clinic_core.common.scope import Scope

pytestmark = pytest.mark.django_db


@pytest.fixture
def scope():
    return Scope(tenant_id=uuid.uuid4(), facility_id=uuid.uuid4())


def _request(user, key=None):
    extra = {"HTTP_IDEMPOTENCY_KEY": key} if key else {}
    req = RequestFactory().post("/api/v1/pharmacy/abc/dispense/", **extra)
    req.user = user
    return req


@pytest.mark.parametrize("durable", [False, True])
def test_same_key_runs_once(settings, user, scope, durable):
    settings.COMMON_IDEMPOTENCY_USE_DB = durable
    runs = []

    def produce():
        runs.append(1)
        return {"n": len(runs)}

    first = run_once(_request(user, "k-1"), scope, produce)
    second = run_once(_request(user, "k-1"), scope, produce)

    assert first == second == {"n": 1}
    assert len(runs) == 1
    assert IdempotencyRecord.objects.count() == (1 if durable else 0)


def test_without_key_always_runs(user, scope):
    runs = []
    for _ in range(2):
        run_once(_request(user), scope, lambda: runs.append(1) or {})
    assert len(runs) == 2
