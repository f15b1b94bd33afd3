# clinic_core/billing/services.py
from __future__ import annotations

import logging
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from clinic_core.audit.services import AuditService
from clinic_core.billing.aggregator import breakdown_for_visit
from clinic_core.common.concurrency import save_versioned
from clinic_core.common.exceptions import InvalidTransition, StaleVersion
from clinic_core.common.notifications import show_toast
from clinic_core.visits.constants import PaymentStatus
from clinic_core.visits.models import Visit

logger = logging.getLogger(__name__)


class BillingService:
    @staticmethod
    def recalculate_visit(visit: Visit) -> Visit:
        """
        Recompute `total_bill` from the visit's current contents.
        Writes only when the figure moved, so repeated calls are no-ops.
        """
        total = breakdown_for_visit(visit).total
        if visit.total_bill != total:
            visit.total_bill = total
            save_versioned(visit, fields=["total_bill"])
        return visit

    @staticmethod
    @transaction.atomic
    def recalculate(*, tenant_id: UUID, facility_id: UUID, visit_id: UUID) -> Visit:
        visit = Visit.objects.get(id=visit_id, tenant_id=tenant_id, facility_id=facility_id)
        return BillingService.recalculate_visit(visit)

    @staticmethod
    @transaction.atomic
    def record_payment(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        reference: str = "",
        method: str = "",
        expected_version: int | None = None,
    ) -> Visit:
        """
        Cashier workflow: settle the current bill and mark the visit Paid.
        Stage changes are left to the caller.
        """
        visit = Visit.objects.get(id=visit_id, tenant_id=tenant_id, facility_id=facility_id)
        if expected_version is not None and visit.version != expected_version:
            raise StaleVersion()
        if visit.is_completed:
            raise InvalidTransition("Visit is completed and read-only.")
        if visit.is_paid:
            raise InvalidTransition("Payment already recorded for this visit.")

        visit.total_bill = breakdown_for_visit(visit).total
        visit.payment_status = PaymentStatus.PAID
        visit.metadata = {
            **(visit.metadata or {}),
            "payment_ref": reference or "",
            "payment_method": method or "",
            "paid_at": timezone.now().isoformat(),
        }
        save_versioned(visit, fields=["total_bill", "payment_status", "metadata"])

        AuditService.log(
            event_code="visit.payment_recorded",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"amount": str(visit.total_bill), "reference": reference or "", "method": method or ""},
        )
        logger.info("payment of %s recorded for visit %s", visit.total_bill, visit.id)
        show_toast(f"Payment of {visit.total_bill} received.", visit_id=str(visit.id))
        return visit
