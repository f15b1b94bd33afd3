import pytest

from clinic_core.billing.services import BillingService
from clinic_core.tests.helpers import advance, scoped
from clinic_core.visits.constants import VisitStage as S
from clinic_core.visits.services import VisitService

pytestmark = pytest.mark.django_db


@pytest.fixture
def ready_visit(visit, item, user):
    VisitService.add_prescription_line(
        tenant_id=visit.tenant_id,
        facility_id=visit.facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        inventory_item_id=item.id,
        quantity=2,
    )
    advance(visit, S.VITALS, S.CONSULTATION, S.BILLING)
    kwargs = dict(tenant_id=visit.tenant_id, facility_id=visit.facility_id, visit_id=visit.id, actor_user_id=user.id)
    BillingService.record_payment(**kwargs)
    return VisitService.advance_after_payment(**kwargs)


def test_pending_list_then_dispense(client_for, ready_visit, tenant_id, facility_id):
    pharmacist = client_for("PHARMACIST")
    h = scoped(tenant_id, facility_id)

    pending = pharmacist.get("/api/v1/pharmacy/", **h)
    assert pending.status_code == 200
    assert [v["id"] for v in pending.data] == [str(ready_visit.id)]

    r = pharmacist.post(f"/api/v1/pharmacy/{ready_visit.id}/dispense/", **h)
    assert r.status_code == 200, r.data
    assert r.data["visit"]["stage"] == S.CLEARANCE
    assert r.data["partial"] is False
    assert r.data["adjustments"][0]["new_stock"] == 3
    assert r.data["messages"][-1] == {"message": "Medications dispensed. Sent to Clearance.", "severity": "success"}

    assert pharmacist.get("/api/v1/pharmacy/", **h).data == []
    history = pharmacist.get("/api/v1/pharmacy/history/", **h)
    assert history.data["count"] == 1


def test_dispense_replays_with_idempotency_key(client_for, ready_visit, tenant_id, facility_id):
    pharmacist = client_for("PHARMACIST")
    h = {**scoped(tenant_id, facility_id), "HTTP_IDEMPOTENCY_KEY": "dispense-1"}
    url = f"/api/v1/pharmacy/{ready_visit.id}/dispense/"

    first = pharmacist.post(url, **h)
    second = pharmacist.post(url, **h)

    assert first.status_code == second.status_code == 200
    assert second.data["adjustments"] == first.data["adjustments"]

    # without the key the second attempt is a conflict
    third = pharmacist.post(url, **scoped(tenant_id, facility_id))
    assert third.status_code == 409
    assert third.data["error"]["code"] == "invalid_transition"


def test_nurse_gets_authorization_envelope(client_for, ready_visit, tenant_id, facility_id):
    nurse = client_for("NURSE")

    r = nurse.post(f"/api/v1/pharmacy/{ready_visit.id}/dispense/", **scoped(tenant_id, facility_id))

    assert r.status_code == 403
    assert r.data["error"]["code"] == "authorization_denied"
    assert r.data["error"]["message"] == "You are not allowed to dispense medications."


def test_nurse_cannot_view_pharmacy_queue(client_for, tenant_id, facility_id):
    assert client_for("NURSE").get("/api/v1/pharmacy/", **scoped(tenant_id, facility_id)).status_code == 403


def test_unpaid_dispense_returns_denial_toast(client_for, visit, item, user, tenant_id, facility_id):
    VisitService.add_prescription_line(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        inventory_item_id=item.id,
        quantity=2,
    )
    advance(visit, S.VITALS, S.CONSULTATION, S.BILLING, S.PHARMACY)

    r = client_for("PHARMACIST").post(f"/api/v1/pharmacy/{visit.id}/dispense/", **scoped(tenant_id, facility_id))

    assert r.status_code == 403
    err = r.data["error"]
    assert err["code"] == "authorization_denied"
    assert err["message"] == "Payment is pending. Collect payment before dispensing."
    assert err["details"]["messages"] == [
        {"message": "Payment is pending. Collect payment before dispensing.", "severity": "error"}
    ]
