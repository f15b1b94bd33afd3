import uuid

import pytest
from rest_framework.test import APIClient

from clinic_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_missing_scope_headers_return_400_envelope(api_client):
    r = api_client.get("/api/v1/patients/")
    assert r.status_code == 400, r.data

    err = r.data["error"]
    assert err["code"] == "validation_error"
    assert "request_id" in err
    assert "Missing scope headers" in (err["message"] + str(err["details"]))


def test_malformed_scope_headers_return_400(api_client):
    r = api_client.get("/api/v1/patients/", HTTP_X_TENANT_ID="nope", HTTP_X_FACILITY_ID="nope")
    assert r.status_code == 400
    assert "Invalid scope headers" in (r.data["error"]["message"] + str(r.data["error"]["details"]))


def test_unauthenticated_request_is_rejected(tenant_id, facility_id):
    r = APIClient().get("/api/v1/visits/", **scoped(tenant_id, facility_id))
    assert r.status_code == 401
    assert r.data["error"]["code"] == "not_authenticated"


def test_unknown_id_returns_404_envelope(api_client, tenant_id, facility_id):
    r = api_client.get(f"/api/v1/visits/{uuid.uuid4()}/", **scoped(tenant_id, facility_id))
    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"


def test_other_scope_cannot_see_records(api_client, patient, tenant_id, facility_id):
    r = api_client.get(f"/api/v1/patients/{patient.id}/", **scoped(uuid.uuid4(), facility_id))
    assert r.status_code == 404
