import pytest

from clinic_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_patient_create_and_retrieve(api_client, tenant_id, facility_id):
    create = api_client.post(
        "/api/v1/patients/",
        {"full_name": "Pat One", "mrn": "MRN-001", "phone": "9999999999", "allergies": ["Penicillin"]},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert create.status_code == 201, create.data
    pid = create.data["id"]
    assert create.data["history"] == []
    assert create.data["last_visit"] is None

    r = api_client.get(f"/api/v1/patients/{pid}/", **scoped(tenant_id, facility_id))
    assert r.status_code == 200, r.data
    assert r.data["mrn"] == "MRN-001"
    assert r.data["allergies"] == ["Penicillin"]


def test_patient_list_search(api_client, tenant_id, facility_id):
    for name, mrn in [("Alice Moraa", "A-1"), ("Brian Otieno", "B-1")]:
        api_client.post(
            "/api/v1/patients/",
            {"full_name": name, "mrn": mrn},
            format="json",
            **scoped(tenant_id, facility_id),
        )

    r = api_client.get("/api/v1/patients/", {"q": "moraa"}, **scoped(tenant_id, facility_id))
    assert r.status_code == 200
    assert [p["full_name"] for p in r.data["results"]] == ["Alice Moraa"]


def test_patient_patch_ignores_history(api_client, tenant_id, facility_id, patient):
    r = api_client.patch(
        f"/api/v1/patients/{patient.id}/",
        {"phone": "0700000000", "history": ["forged"]},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert r.status_code == 200, r.data
    assert r.data["phone"] == "0700000000"

    patient.refresh_from_db()
    assert patient.history == ["[2023-01-10] Dx: Influenza."]


def test_patient_duplicate_mrn_returns_400(api_client, tenant_id, facility_id, patient):
    r = api_client.post(
        "/api/v1/patients/",
        {"full_name": "Someone Else", "mrn": patient.mrn},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert "MRN" in (r.data["error"]["message"] + str(r.data["error"]["details"]))


def test_lab_role_cannot_create_patients(client_for, tenant_id, facility_id):
    r = client_for("LAB").post(
        "/api/v1/patients/",
        {"full_name": "X", "mrn": "X-1"},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert r.status_code == 403


def test_patient_list_rejects_unknown_gender(api_client, tenant_id, facility_id):
    r = api_client.get("/api/v1/patients/", {"gender": "Z"}, **scoped(tenant_id, facility_id))
    assert r.status_code == 400
    assert "gender" in r.data["error"]["details"]
