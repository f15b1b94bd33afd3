# clinic_core/visits/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone

from clinic_core.common.models import ScopedModel, VersionedModel
from clinic_core.patients.models import Patient
from clinic_core.visits.constants import (
    LabOrderStatus,
    LabResultFlag,
    PaymentStatus,
    STAGE_ORDER,
    VisitPriority,
    VisitStage,
)


class Visit(ScopedModel, VersionedModel):
    """
    One clinical encounter from check-in to completion.

    `stage` is owned by the workflow (clinic_core.visits.workflow) and only
    written by VisitService.transition. `total_bill` is derived by the billing
    aggregator; never assign it directly.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="visits")
    patient_name = models.CharField(max_length=255)

    stage = models.CharField(max_length=16, choices=VisitStage.choices, default=VisitStage.CHECK_IN, db_index=True)
    stage_start_time = models.DateTimeField(default=timezone.now)
    start_time = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    queue_number = models.PositiveIntegerField()
    priority = models.CharField(max_length=16, choices=VisitPriority.choices, default=VisitPriority.NORMAL)

    insurance = models.JSONField(default=dict, blank=True)  # {"provider", "member_number"}
    vitals = models.JSONField(default=dict, blank=True)

    chief_complaint = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    doctor_notes = models.TextField(blank=True)
    doctor_user_id = models.BigIntegerField(null=True, blank=True)
    doctor_name = models.CharField(max_length=255, blank=True)

    medications_dispensed = models.BooleanField(default=False)

    consultation_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_bill = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )

    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "visits_visit"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant_id", "facility_id", "patient"],
                condition=~Q(stage=VisitStage.COMPLETED),
                name="uq_visit_one_active_per_patient",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "stage"]),
            models.Index(fields=["tenant_id", "facility_id", "start_time"]),
        ]

    @property
    def stage_rank(self) -> int:
        return STAGE_ORDER.index(self.stage)

    @property
    def is_completed(self) -> bool:
        return self.stage == VisitStage.COMPLETED

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    def __str__(self) -> str:
        return f"#{self.queue_number} {self.patient_name} [{self.stage}]"


class LabOrder(ScopedModel):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name="lab_orders")

    test_id = models.CharField(max_length=64, blank=True)
    test_name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(max_length=16, choices=LabOrderStatus.choices, default=LabOrderStatus.PENDING)
    result = models.TextField(blank=True)
    flag = models.CharField(max_length=16, choices=LabResultFlag.choices, blank=True)
    notes = models.TextField(blank=True)

    ordered_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "visits_lab_order"
        ordering = ["ordered_at", "created_at"]


class PrescriptionLine(ScopedModel):
    """
    `inventory_item_id` is a plain UUID: a line outlives a deleted catalogue item
    (dispensing then reports that line as failed).
    """
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name="prescription_lines")

    inventory_item_id = models.UUIDField()
    name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=255, blank=True)  # e.g. "1x3 for 5 days"
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "visits_prescription_line"
        ordering = ["position", "created_at"]

    @property
    def line_total(self) -> Decimal:
        return (self.price or Decimal("0.00")) * self.quantity


class QueueCounter(models.Model):
    """
    Server-side queue sequence per tenant/facility/day.
    Incremented under a row lock (VisitService._next_queue_number).
    """
    tenant_id = models.UUIDField()
    facility_id = models.UUIDField()
    day = models.DateField()
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "visits_queue_counter"
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "facility_id", "day"], name="uq_queue_counter_scope_day"),
        ]
