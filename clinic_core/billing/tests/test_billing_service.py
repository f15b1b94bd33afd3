from decimal import Decimal

import pytest

from clinic_core.audit.models import AuditEvent
from clinic_core.billing.services import BillingService
from clinic_core.common.exceptions import InvalidTransition
from clinic_core.visits.constants import PaymentStatus
from clinic_core.visits.services import VisitService

pytestmark = pytest.mark.django_db


def test_recalculate_without_changes_does_not_write(visit, tenant_id, facility_id):
    before = visit.version

    again = BillingService.recalculate(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit.id)

    assert again.total_bill == Decimal("500.00")
    assert again.version == before


def test_completed_lab_result_is_added_to_bill(visit, tenant_id, facility_id, user):
    order = VisitService.add_lab_order(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        test_name="Malaria RDT",
        price=Decimal("300.00"),
    )
    visit.refresh_from_db()
    assert visit.total_bill == Decimal("500.00")

    VisitService.record_lab_result(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        lab_order_id=order.id,
        actor_user_id=user.id,
        result="Negative",
    )
    visit.refresh_from_db()
    assert visit.total_bill == Decimal("800.00")


def test_prescription_changes_move_the_bill(visit, item, tenant_id, facility_id, user):
    line = VisitService.add_prescription_line(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        inventory_item_id=item.id,
        quantity=3,
        dosage="1x3",
    )
    visit.refresh_from_db()
    assert line.name == "Amoxicillin 500mg"
    assert line.price == Decimal("100.00")
    assert visit.total_bill == Decimal("800.00")

    VisitService.remove_prescription_line(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        line_id=line.id,
        actor_user_id=user.id,
    )
    visit.refresh_from_db()
    assert visit.total_bill == Decimal("500.00")


def test_record_payment_marks_paid(visit, tenant_id, facility_id, user):
    paid = BillingService.record_payment(
        tenant_id=tenant_id,
        facility_id=facility_id,
        visit_id=visit.id,
        actor_user_id=user.id,
        reference="RCPT-1",
        method="cash",
    )

    assert paid.payment_status == PaymentStatus.PAID
    assert paid.metadata["payment_ref"] == "RCPT-1"
    assert "paid_at" in paid.metadata
    assert AuditEvent.objects.filter(entity_id=visit.id, event_code="visit.payment_recorded").count() == 1


def test_double_payment_is_rejected(visit, tenant_id, facility_id, user):
    kwargs = dict(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit.id, actor_user_id=user.id)
    BillingService.record_payment(**kwargs)

    with pytest.raises(InvalidTransition):
        BillingService.record_payment(**kwargs)
