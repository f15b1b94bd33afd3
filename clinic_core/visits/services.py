# clinic_core/visits/services.py
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic_core.audit.services import AuditService
from clinic_core.billing.services import BillingService
from clinic_core.common.concurrency import save_versioned
from clinic_core.common.events import VISIT_COMPLETED, publish
from clinic_core.common.exceptions import InvalidTransition, StaleVersion
from clinic_core.common.notifications import show_toast
from clinic_core.inventory.models import InventoryItem
from clinic_core.patients.models import Patient
from clinic_core.patients.services import PatientService
from clinic_core.visits import workflow
from clinic_core.visits.constants import LabOrderStatus, VisitPriority, VisitStage
from clinic_core.visits.models import LabOrder, PrescriptionLine, QueueCounter, Visit

logger = logging.getLogger(__name__)

VITALS_FIELDS = ("bp", "temp", "weight", "height", "heart_rate", "resp_rate", "spo2")


def _get_visit(*, tenant_id: UUID, facility_id: UUID, visit_id: UUID, expected_version: int | None = None) -> Visit:
    visit = Visit.objects.select_related("patient").get(
        id=visit_id,
        tenant_id=tenant_id,
        facility_id=facility_id,
    )
    if expected_version is not None and visit.version != expected_version:
        raise StaleVersion()
    return visit


def _get_open_visit(**kwargs) -> Visit:
    visit = _get_visit(**kwargs)
    if visit.is_completed:
        raise InvalidTransition("Visit is completed and read-only.")
    return visit


class VisitService:
    """
    Write side of visits. Every stage change goes through `transition`.
    """

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    @staticmethod
    def _next_queue_number(*, tenant_id: UUID, facility_id: UUID) -> int:
        key = {"tenant_id": tenant_id, "facility_id": facility_id, "day": timezone.localdate()}
        try:
            with transaction.atomic():
                QueueCounter.objects.get_or_create(**key)
        except IntegrityError:
            # first check-in of the day raced another session; its row is there now
            logger.debug("queue counter for %s already created", key["day"])

        counter = QueueCounter.objects.select_for_update().get(**key)
        QueueCounter.objects.filter(pk=counter.pk).update(last_number=F("last_number") + 1)
        counter.refresh_from_db(fields=["last_number"])
        return counter.last_number

    @staticmethod
    @transaction.atomic
    def create_visit(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        patient_id: UUID,
        priority: str = VisitPriority.NORMAL,
        insurance: dict | None = None,
        skip_vitals: bool = False,
        consultation_fee: Decimal | None = None,
        chief_complaint: str = "",
    ) -> Visit:
        try:
            patient = Patient.objects.get(id=patient_id, tenant_id=tenant_id, facility_id=facility_id)
        except Patient.DoesNotExist:
            raise ValueError("Patient not found in this tenant/facility.")

        if consultation_fee is None:
            consultation_fee = settings.CLINIC_DEFAULT_CONSULTATION_FEE
        consultation_fee = Decimal(str(consultation_fee)).quantize(Decimal("0.01"))
        if consultation_fee < 0:
            raise ValueError("Consultation fee must be >= 0.")

        now = timezone.now()
        stage = workflow.initial_stage(skip_vitals=skip_vitals)

        queue_number = VisitService._next_queue_number(tenant_id=tenant_id, facility_id=facility_id)
        try:
            with transaction.atomic():
                visit = Visit.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    patient=patient,
                    patient_name=patient.full_name,
                    stage=stage,
                    stage_start_time=now,
                    start_time=now,
                    queue_number=queue_number,
                    priority=priority or VisitPriority.NORMAL,
                    insurance=dict(insurance or {}),
                    chief_complaint=chief_complaint or "",
                    consultation_fee=consultation_fee,
                    total_bill=consultation_fee,
                )
        except IntegrityError:
            active = Visit.objects.filter(
                tenant_id=tenant_id, facility_id=facility_id, patient=patient
            ).exclude(stage=VisitStage.COMPLETED)
            if not active.exists():
                raise
            raise ValueError("Patient already has an active visit.")

        AuditService.log(
            event_code="visit.created",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={
                "patient_id": str(patient.id),
                "stage": stage,
                "queue_number": visit.queue_number,
                "skip_vitals": bool(skip_vitals),
            },
        )
        logger.info("visit %s created for patient %s at %s (#%s)", visit.id, patient.id, stage, visit.queue_number)
        show_toast(f"{patient.full_name} checked in.", visit_id=str(visit.id))
        return visit

    # ------------------------------------------------------------------
    # Stage machine
    # ------------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def transition(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        to_stage: str,
        actor_user_id: int | None,
        expected_version: int | None = None,
    ) -> Visit:
        visit = _get_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            expected_version=expected_version,
        )
        from_stage = visit.stage

        workflow.check_transition(
            stage=from_stage,
            target=to_stage,
            medications_dispensed=visit.medications_dispensed,
            payment_status=visit.payment_status,
            has_lab_orders=visit.lab_orders.exists(),
            has_prescription=visit.prescription_lines.exists(),
        )

        now = timezone.now()
        visit.stage = to_stage
        visit.stage_start_time = now
        fields = ["stage", "stage_start_time"]

        if workflow.skips_pharmacy(from_stage, to_stage):
            # nothing to dispense
            visit.medications_dispensed = True
            fields.append("medications_dispensed")

        if to_stage == VisitStage.COMPLETED:
            visit.completed_at = now
            fields.append("completed_at")

        save_versioned(visit, fields=fields)

        AuditService.log(
            event_code="visit.stage_changed",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"from": from_stage, "to": to_stage},
        )
        logger.info("visit %s moved %s -> %s", visit.id, from_stage, to_stage)

        if to_stage == VisitStage.COMPLETED:
            VisitService._fold_into_history(visit=visit, actor_user_id=actor_user_id)

        return visit

    @staticmethod
    def _fold_into_history(*, visit: Visit, actor_user_id: int | None) -> None:
        summary = workflow.history_summary(
            start_time=visit.start_time,
            diagnosis=visit.diagnosis,
            doctor_notes=visit.doctor_notes,
        )
        PatientService.prepend_history(
            tenant_id=visit.tenant_id,
            facility_id=visit.facility_id,
            patient_id=visit.patient_id,
            summary=summary,
            visited_at=visit.completed_at,
        )
        AuditService.log(
            event_code="visit.completed",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=visit.tenant_id,
            facility_id=visit.facility_id,
            actor_user_id=actor_user_id,
            metadata={"patient_id": str(visit.patient_id), "summary": summary, "total_bill": str(visit.total_bill)},
        )
        publish(
            VISIT_COMPLETED,
            {
                "tenant_id": str(visit.tenant_id),
                "facility_id": str(visit.facility_id),
                "visit_id": str(visit.id),
                "patient_id": str(visit.patient_id),
            },
        )
        logger.info("visit %s completed; history updated for patient %s", visit.id, visit.patient_id)

    @staticmethod
    def complete(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        expected_version: int | None = None,
    ) -> Visit:
        visit = VisitService.transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            to_stage=VisitStage.COMPLETED,
            actor_user_id=actor_user_id,
            expected_version=expected_version,
        )
        show_toast("Visit finalized.", visit_id=str(visit.id))
        return visit

    @staticmethod
    def advance_after_payment(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
    ) -> Visit:
        """
        Cashier follow-up: out of Billing to Pharmacy, or straight to Clearance
        when there is nothing to dispense. Visits not in Billing are left as is.
        """
        visit = _get_visit(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit_id)
        if visit.stage != VisitStage.BILLING:
            return visit

        has_prescription = visit.prescription_lines.exists()
        target = VisitStage.PHARMACY if has_prescription else VisitStage.CLEARANCE
        visit = VisitService.transition(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            to_stage=target,
            actor_user_id=actor_user_id,
        )
        show_toast(
            "Payment successful. Sent to Pharmacy." if has_prescription else "Payment successful. Sent to Clearance.",
            visit_id=str(visit.id),
        )
        return visit

    # ------------------------------------------------------------------
    # Clinical fields
    # ------------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def update_details(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        priority: str | None = None,
        insurance: dict | None = None,
        expected_version: int | None = None,
    ) -> Visit:
        visit = _get_open_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            expected_version=expected_version,
        )
        fields = []
        if priority is not None:
            visit.priority = priority
            fields.append("priority")
        if insurance is not None:
            visit.insurance = dict(insurance)
            fields.append("insurance")
        if fields:
            save_versioned(visit, fields=fields)
        return visit

    @staticmethod
    @transaction.atomic
    def record_vitals(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        vitals: dict,
        expected_version: int | None = None,
    ) -> Visit:
        visit = _get_open_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            expected_version=expected_version,
        )
        merged = dict(visit.vitals or {})
        merged.update({k: v for k, v in (vitals or {}).items() if k in VITALS_FIELDS})
        visit.vitals = merged
        save_versioned(visit, fields=["vitals"])

        AuditService.log(
            event_code="visit.vitals_recorded",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"fields": sorted(k for k in (vitals or {}) if k in VITALS_FIELDS)},
        )
        return visit

    @staticmethod
    @transaction.atomic
    def record_consultation(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        data: dict,
        expected_version: int | None = None,
    ) -> Visit:
        visit = _get_open_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
            expected_version=expected_version,
        )
        allowed = ("chief_complaint", "diagnosis", "doctor_notes", "doctor_user_id", "doctor_name")
        updates = {k: v for k, v in (data or {}).items() if k in allowed}
        for k, v in updates.items():
            setattr(visit, k, v if k == "doctor_user_id" else (v or ""))
        if updates:
            save_versioned(visit, fields=list(updates))

        AuditService.log(
            event_code="visit.consultation_recorded",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates)},
        )
        return visit

    # ------------------------------------------------------------------
    # Lab orders
    # ------------------------------------------------------------------
    @staticmethod
    @transaction.atomic
    def add_lab_order(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        test_name: str,
        price: Decimal,
        test_id: str = "",
        notes: str = "",
    ) -> LabOrder:
        visit = _get_open_visit(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit_id)
        if visit.stage_rank > workflow.stage_rank(VisitStage.LAB):
            raise InvalidTransition("Lab orders can only be added before Billing.")

        order = LabOrder.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit=visit,
            test_id=test_id or "",
            test_name=test_name,
            price=price,
            notes=notes or "",
        )
        # pending orders are not billed yet; recompute anyway so the total never drifts
        BillingService.recalculate_visit(visit)

        AuditService.log(
            event_code="visit.lab_ordered",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"lab_order_id": str(order.id), "test_name": test_name},
        )
        return order

    @staticmethod
    @transaction.atomic
    def record_lab_result(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        lab_order_id: UUID,
        actor_user_id: int | None,
        result: str,
        flag: str = "",
        notes: str = "",
    ) -> LabOrder:
        visit = _get_open_visit(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit_id)
        order = LabOrder.objects.select_for_update().get(
            id=lab_order_id,
            visit=visit,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )

        order.result = result
        order.flag = flag or ""
        if notes:
            order.notes = notes
        if result and order.status != LabOrderStatus.COMPLETED:
            order.status = LabOrderStatus.COMPLETED
            order.completed_at = timezone.now()
        order.save(update_fields=["result", "flag", "notes", "status", "completed_at", "updated_at"])

        BillingService.recalculate_visit(visit)

        AuditService.log(
            event_code="visit.lab_resulted",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"lab_order_id": str(order.id), "flag": order.flag, "status": order.status},
        )
        return order

    @staticmethod
    @transaction.atomic
    def remove_lab_order(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        lab_order_id: UUID,
        actor_user_id: int | None,
    ) -> Visit:
        visit = _get_open_visit(tenant_id=tenant_id, facility_id=facility_id, visit_id=visit_id)
        order = LabOrder.objects.get(id=lab_order_id, visit=visit, tenant_id=tenant_id, facility_id=facility_id)
        if order.status != LabOrderStatus.PENDING:
            raise ValidationError({"lab_order": "Only pending lab orders can be removed."})

        order.delete()
        BillingService.recalculate_visit(visit)

        AuditService.log(
            event_code="visit.lab_order_removed",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"lab_order_id": str(lab_order_id)},
        )
        return visit

    # ------------------------------------------------------------------
    # Prescription
    # ------------------------------------------------------------------
    @staticmethod
    def _get_prescribable_visit(**kwargs) -> Visit:
        visit = _get_open_visit(**kwargs)
        if visit.medications_dispensed:
            raise InvalidTransition("Prescription has already been dispensed.")
        if visit.stage_rank > workflow.stage_rank(VisitStage.PHARMACY):
            raise InvalidTransition("Prescription can no longer be changed.")
        if visit.is_paid:
            raise InvalidTransition("Bill is already paid; prescription can no longer be changed.")
        return visit

    @staticmethod
    @transaction.atomic
    def add_prescription_line(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        actor_user_id: int | None,
        inventory_item_id: UUID,
        quantity: int,
        dosage: str = "",
        name: str | None = None,
        price: Decimal | None = None,
    ) -> PrescriptionLine:
        """
        Name and unit price default to the catalogue item's current values.
        """
        visit = VisitService._get_prescribable_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
        )
        if quantity <= 0:
            raise ValidationError({"quantity": "Quantity must be > 0."})

        try:
            item = InventoryItem.objects.get(id=inventory_item_id, tenant_id=tenant_id, facility_id=facility_id)
        except InventoryItem.DoesNotExist:
            raise ValidationError({"inventory_item_id": "Inventory item not found in this scope."})

        position = visit.prescription_lines.count()
        line = PrescriptionLine.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit=visit,
            inventory_item_id=item.id,
            name=name or item.name,
            dosage=dosage or "",
            quantity=quantity,
            price=item.price if price is None else price,
            position=position,
        )
        BillingService.recalculate_visit(visit)

        AuditService.log(
            event_code="visit.prescription_added",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"line_id": str(line.id), "inventory_item_id": str(item.id), "quantity": quantity},
        )
        return line

    @staticmethod
    @transaction.atomic
    def remove_prescription_line(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        visit_id: UUID,
        line_id: UUID,
        actor_user_id: int | None,
    ) -> Visit:
        visit = VisitService._get_prescribable_visit(
            tenant_id=tenant_id,
            facility_id=facility_id,
            visit_id=visit_id,
        )
        line = PrescriptionLine.objects.get(id=line_id, visit=visit, tenant_id=tenant_id, facility_id=facility_id)
        line.delete()
        BillingService.recalculate_visit(visit)

        AuditService.log(
            event_code="visit.prescription_removed",
            entity_type="Visit",
            entity_id=visit.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"line_id": str(line_id)},
        )
        return visit
