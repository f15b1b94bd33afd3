# clinic_core/pharmacy/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from clinic_core.audit.services import AuditService
from clinic_core.billing.services import BillingService
from clinic_core.common.actors import actor_name, actor_user_id
from clinic_core.common.concurrency import save_versioned
from clinic_core.common.events import VISIT_DISPENSED, publish
from clinic_core.common.exceptions import AuthorizationDenied, InvalidTransition, StaleVersion, StorageError
from clinic_core.common.notifications import SEVERITY_ERROR, Toast, show_toast
from clinic_core.common.permissions import PHARMACY_DISPENSE, user_has_capability
from clinic_core.inventory.models import InventoryItem
from clinic_core.inventory.services import AdjustmentKind, InventoryLedger, StockAdjustment
from clinic_core.visits.constants import VisitStage
from clinic_core.visits.models import Visit
from clinic_core.visits.services import VisitService

logger = logging.getLogger(__name__)

DISPENSE_CLAIM_KEY = "dispense_started_at"


@dataclass
class FailedLine:
    line_id: UUID
    inventory_item_id: UUID
    name: str
    quantity: int
    error: str


@dataclass
class DispenseResult:
    visit: Visit
    adjustments: list[StockAdjustment] = field(default_factory=list)
    failed_lines: list[FailedLine] = field(default_factory=list)
    toasts: list[Toast] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_lines)


class DispensingService:
    """
    Pharmacy fulfilment of a visit's prescription.

    Gate first (dispense capability and a paid bill); nothing is touched when it
    fails. Then one ledger deduction per line, best effort: a line that cannot
    be deducted is logged and reported, the others still go through. Finally
    the visit is marked dispensed, moved to Clearance and re-billed.
    """

    @staticmethod
    def _deny(message: str, visit: Visit) -> AuthorizationDenied:
        show_toast(message, SEVERITY_ERROR, visit_id=str(visit.id))
        return AuthorizationDenied(message)

    @staticmethod
    def dispense(*, tenant_id: UUID, facility_id: UUID, visit_id: UUID, user) -> DispenseResult:
        visit = Visit.objects.get(id=visit_id, tenant_id=tenant_id, facility_id=facility_id)

        if not user_has_capability(user, PHARMACY_DISPENSE):
            raise DispensingService._deny("You are not allowed to dispense medications.", visit)
        if not visit.is_paid:
            raise DispensingService._deny("Payment is pending. Collect payment before dispensing.", visit)

        if visit.stage != VisitStage.PHARMACY:
            raise InvalidTransition(f"Visit is at {visit.stage}, not Pharmacy.")
        if visit.medications_dispensed:
            raise InvalidTransition("Prescription has already been dispensed.")
        if DISPENSE_CLAIM_KEY in (visit.metadata or {}):
            raise InvalidTransition("Prescription is already being dispensed.")

        # exclusive claim: marker and version come from the same read
        visit.metadata = {**(visit.metadata or {}), DISPENSE_CLAIM_KEY: timezone.now().isoformat()}
        save_versioned(visit, fields=["metadata"])

        actor = actor_name(user)
        user_id = actor_user_id(user)
        result = DispenseResult(visit=visit)

        for line in visit.prescription_lines.order_by("position", "created_at"):
            try:
                adjustment = InventoryLedger.adjust_stock(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    item_id=line.inventory_item_id,
                    delta=-line.quantity,
                    reason=f"Dispensed to {visit.patient_name} (Visit {visit.id})",
                    actor=actor,
                    kind=AdjustmentKind.DISPENSE,
                    actor_user_id=user_id,
                )
            except (InventoryItem.DoesNotExist, StorageError, StaleVersion) as exc:
                logger.exception("dispense failed for line %s (%s) on visit %s", line.id, line.name, visit.id)
                result.failed_lines.append(
                    FailedLine(
                        line_id=line.id,
                        inventory_item_id=line.inventory_item_id,
                        name=line.name,
                        quantity=line.quantity,
                        error=str(getattr(exc, "detail", exc)),
                    )
                )
                result.toasts.append(
                    show_toast(f"Could not deduct stock for {line.name}.", SEVERITY_ERROR, visit_id=str(visit.id))
                )
                continue

            result.adjustments.append(adjustment)

        with transaction.atomic():
            # other writers may have bumped the version during the line loop
            visit = Visit.objects.select_for_update().get(pk=visit.pk)
            visit.medications_dispensed = True
            save_versioned(visit, fields=["medications_dispensed"])

            visit = VisitService.transition(
                tenant_id=tenant_id,
                facility_id=facility_id,
                visit_id=visit.id,
                to_stage=VisitStage.CLEARANCE,
                actor_user_id=user_id,
            )
            visit = BillingService.recalculate_visit(visit)

            AuditService.log(
                event_code="visit.dispensed",
                entity_type="Visit",
                entity_id=visit.id,
                tenant_id=tenant_id,
                facility_id=facility_id,
                actor_user_id=user_id,
                metadata={
                    "lines": [
                        {"item_id": str(a.item_id), "quantity_change": a.quantity_change, "log_id": str(a.log.id)}
                        for a in result.adjustments
                    ],
                    "failed_lines": [str(f.line_id) for f in result.failed_lines],
                },
            )
            publish(
                VISIT_DISPENSED,
                {
                    "tenant_id": str(tenant_id),
                    "facility_id": str(facility_id),
                    "visit_id": str(visit.id),
                    "item_ids": [str(a.item_id) for a in result.adjustments],
                    "failed": len(result.failed_lines),
                },
            )

        result.visit = visit
        logger.info(
            "visit %s dispensed: %s line(s) deducted, %s failed",
            visit.id,
            len(result.adjustments),
            len(result.failed_lines),
        )
        result.toasts.append(show_toast("Medications dispensed. Sent to Clearance.", visit_id=str(visit.id)))
        return result
