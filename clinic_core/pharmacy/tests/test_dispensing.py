from decimal import Decimal

import pytest

from clinic_core.billing.services import BillingService
from clinic_core.common.events import VISIT_DISPENSED, subscribe, unsubscribe
from clinic_core.common.exceptions import AuthorizationDenied, InvalidTransition
from clinic_core.common.notifications import collect_toasts
from clinic_core.inventory.models import InventoryAction, InventoryLog
from clinic_core.inventory.services import InventoryLedger, InventoryService
from clinic_core.pharmacy.services import DISPENSE_CLAIM_KEY, DispensingService
from clinic_core.tests.helpers import advance
from clinic_core.visits.constants import VisitPriority, VisitStage as S
from clinic_core.visits.models import Visit
from clinic_core.visits.services import VisitService

pytestmark = pytest.mark.django_db


@pytest.fixture
def pharmacist(make_user):
    return make_user("PHARMACIST")


@pytest.fixture
def prescribed_visit(visit, item, user):
    """Visit with 2 x Amoxicillin prescribed, walked up to Billing."""
    VisitService.add_prescription_line(
        tenant_id=visit.tenant_id,
        facility_id=visit.facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        inventory_item_id=item.id,
        quantity=2,
        dosage="1x2 for 5 days",
    )
    return advance(visit, S.VITALS, S.CONSULTATION, S.BILLING)


@pytest.fixture
def ready_visit(prescribed_visit, user):
    """Paid and waiting at the pharmacy counter."""
    kwargs = dict(
        tenant_id=prescribed_visit.tenant_id,
        facility_id=prescribed_visit.facility_id,
        visit_id=prescribed_visit.id,
        actor_user_id=user.id,
    )
    BillingService.record_payment(**kwargs)
    return VisitService.advance_after_payment(**kwargs)


def _dispense(visit, who):
    return DispensingService.dispense(
        tenant_id=visit.tenant_id,
        facility_id=visit.facility_id,
        visit_id=visit.id,
        user=who,
    )


def _dispensed_logs(item):
    return list(InventoryLog.objects.filter(item_id=item.id, action=InventoryAction.DISPENSED))


def test_dispense_deducts_stock_and_clears_visit(ready_visit, item, pharmacist):
    assert ready_visit.stage == S.PHARMACY

    result = _dispense(ready_visit, pharmacist)

    item.refresh_from_db()
    assert item.stock == 3

    logs = _dispensed_logs(item)
    assert len(logs) == 1
    assert logs[0].quantity_change == -2
    assert logs[0].notes == f"Dispensed to Test Patient (Visit {ready_visit.id})"
    assert logs[0].user == "Test User2"

    visit = result.visit
    assert visit.stage == S.CLEARANCE
    assert visit.medications_dispensed is True
    assert visit.total_bill == Decimal("700.00")
    assert result.partial is False
    assert result.toasts[-1].message == "Medications dispensed. Sent to Clearance."


def test_dispense_clamps_at_zero_and_still_advances(ready_visit, item, pharmacist, tenant_id, facility_id, user):
    InventoryService.update_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=user.id,
        item_id=item.id,
        data={"stock": 1},
    )

    result = _dispense(ready_visit, pharmacist)

    item.refresh_from_db()
    assert item.stock == 0
    assert [log.quantity_change for log in _dispensed_logs(item)] == [-1]
    assert result.visit.stage == S.CLEARANCE
    assert result.visit.total_bill == Decimal("700.00")


def test_unpaid_visit_is_refused_without_side_effects(prescribed_visit, item, pharmacist):
    visit = advance(prescribed_visit, S.PHARMACY)

    with collect_toasts() as toasts, pytest.raises(AuthorizationDenied):
        _dispense(visit, pharmacist)

    item.refresh_from_db()
    visit.refresh_from_db()
    assert item.stock == 5
    assert _dispensed_logs(item) == []
    assert visit.stage == S.PHARMACY
    assert visit.medications_dispensed is False
    assert toasts[-1].severity == "error"
    assert "Payment is pending" in toasts[-1].message


def test_user_without_dispense_capability_is_refused(ready_visit, item, make_user):
    nurse = make_user("NURSE")

    with pytest.raises(AuthorizationDenied):
        _dispense(ready_visit, nurse)

    item.refresh_from_db()
    assert item.stock == 5


def test_missing_catalogue_item_is_reported_as_failed_line(ready_visit, item, pharmacist, tenant_id, facility_id):
    InventoryService.delete_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=None,
        item_id=item.id,
    )

    result = _dispense(ready_visit, pharmacist)

    assert result.partial is True
    assert [f.inventory_item_id for f in result.failed_lines] == [item.id]
    assert result.adjustments == []
    assert result.visit.stage == S.CLEARANCE
    assert any(t.severity == "error" for t in result.toasts)


def test_dispense_outside_pharmacy_stage(prescribed_visit, pharmacist, user):
    BillingService.record_payment(
        tenant_id=prescribed_visit.tenant_id,
        facility_id=prescribed_visit.facility_id,
        visit_id=prescribed_visit.id,
        actor_user_id=user.id,
    )

    with pytest.raises(InvalidTransition):
        _dispense(prescribed_visit, pharmacist)


def test_second_dispense_is_rejected(ready_visit, item, pharmacist):
    _dispense(ready_visit, pharmacist)

    with pytest.raises(InvalidTransition):
        _dispense(ready_visit, pharmacist)

    item.refresh_from_db()
    assert item.stock == 3
    assert len(_dispensed_logs(item)) == 1


def test_dispense_publishes_event(ready_visit, item, pharmacist):
    seen = []
    handler = subscribe(VISIT_DISPENSED, seen.append)
    try:
        _dispense(ready_visit, pharmacist)
    finally:
        unsubscribe(VISIT_DISPENSED, handler)

    assert len(seen) == 1
    assert seen[0]["visit_id"] == str(ready_visit.id)
    assert seen[0]["item_ids"] == [str(item.id)]
    assert seen[0]["failed"] == 0


def _paid_and_at_pharmacy(visit, user):
    kwargs = dict(tenant_id=visit.tenant_id, facility_id=visit.facility_id, visit_id=visit.id, actor_user_id=user.id)
    BillingService.record_payment(**kwargs)
    return VisitService.advance_after_payment(**kwargs)


def _hook_first_adjustment(monkeypatch, side_effect):
    """Run `side_effect()` once, just before the first ledger deduction."""
    original = InventoryLedger.adjust_stock
    calls = []

    def _adjust(**kwargs):
        if not calls:
            calls.append(kwargs["item_id"])
            side_effect()
        return original(**kwargs)

    monkeypatch.setattr(InventoryLedger, "adjust_stock", staticmethod(_adjust))
    return calls


def test_mixed_prescription_deducts_good_lines_and_reports_bad_ones(
    prescribed_visit, item, pharmacist, user, tenant_id, facility_id
):
    gauze = InventoryService.create_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=user.id,
        name="Gauze roll",
        stock=10,
        price=Decimal("20.00"),
    )
    VisitService.add_prescription_line(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=prescribed_visit.id,
        actor_user_id=user.id,
        inventory_item_id=gauze.id,
        quantity=1,
    )
    visit = _paid_and_at_pharmacy(prescribed_visit, user)
    InventoryService.delete_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=user.id,
        item_id=gauze.id,
    )

    result = _dispense(visit, pharmacist)

    item.refresh_from_db()
    assert item.stock == 3
    assert [log.quantity_change for log in _dispensed_logs(item)] == [-2]
    assert [a.item_id for a in result.adjustments] == [item.id]

    assert result.partial is True
    assert [(f.inventory_item_id, f.name) for f in result.failed_lines] == [(gauze.id, "Gauze roll")]
    assert not InventoryLog.objects.filter(item_id=gauze.id, action=InventoryAction.DISPENSED).exists()

    assert result.visit.stage == S.CLEARANCE
    assert result.visit.medications_dispensed is True


def test_overlapping_dispense_is_refused_and_stock_deducted_once(ready_visit, item, pharmacist, monkeypatch):
    overlapping = {}

    def _second_counter():
        try:
            _dispense(ready_visit, pharmacist)
        except InvalidTransition as exc:
            overlapping["error"] = exc

    _hook_first_adjustment(monkeypatch, _second_counter)

    result = _dispense(ready_visit, pharmacist)

    assert isinstance(overlapping.get("error"), InvalidTransition)
    assert result.visit.stage == S.CLEARANCE

    item.refresh_from_db()
    assert item.stock == 3
    assert len(_dispensed_logs(item)) == 1


def test_visit_edit_during_dispense_still_reaches_clearance(ready_visit, item, pharmacist, user, monkeypatch):
    def _triage_bump():
        VisitService.update_details(
            tenant_id=ready_visit.tenant_id,
            facility_id=ready_visit.facility_id,
            visit_id=ready_visit.id,
            actor_user_id=user.id,
            priority=VisitPriority.URGENT,
        )

    _hook_first_adjustment(monkeypatch, _triage_bump)

    result = _dispense(ready_visit, pharmacist)

    visit = Visit.objects.get(pk=ready_visit.pk)
    assert visit.stage == S.CLEARANCE
    assert visit.medications_dispensed is True
    assert visit.priority == VisitPriority.URGENT
    assert result.visit.stage == S.CLEARANCE

    item.refresh_from_db()
    assert item.stock == 3
    assert len(_dispensed_logs(item)) == 1


def test_claimed_visit_cannot_be_dispensed_again(ready_visit, item, pharmacist):
    Visit.objects.filter(pk=ready_visit.pk).update(metadata={DISPENSE_CLAIM_KEY: "2026-01-01T09:00:00+00:00"})

    with pytest.raises(InvalidTransition):
        _dispense(ready_visit, pharmacist)

    item.refresh_from_db()
    assert item.stock == 5
