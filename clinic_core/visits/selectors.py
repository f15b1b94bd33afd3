# clinic_core/visits/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Case, IntegerField, Prefetch, QuerySet, Value, When

from clinic_core.audit.selectors import entity_trail
from clinic_core.visits.constants import PRIORITY_RANK, VisitStage
from clinic_core.visits.models import LabOrder, PrescriptionLine, Visit


class VisitSelectors:
    """
    Read-only queries for visits.
    No .save(), no state mutation here.
    """

    @staticmethod
    def _base(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Visit]:
        return (
            Visit.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
            .select_related("patient")
            .prefetch_related(
                Prefetch("lab_orders", queryset=LabOrder.objects.order_by("ordered_at", "created_at")),
                Prefetch("prescription_lines", queryset=PrescriptionLine.objects.order_by("position", "created_at")),
            )
        )

    @staticmethod
    def get_visit(*, tenant_id: UUID, facility_id: UUID, visit_id: UUID) -> Visit:
        return VisitSelectors._base(tenant_id=tenant_id, facility_id=facility_id).get(id=visit_id)

    @staticmethod
    def list_visits(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        patient_id: UUID | None = None,
        stage: str | None = None,
        active: bool | None = None,
    ) -> QuerySet[Visit]:
        qs = VisitSelectors._base(tenant_id=tenant_id, facility_id=facility_id)

        if patient_id:
            qs = qs.filter(patient_id=patient_id)
        if stage:
            qs = qs.filter(stage=stage)
        if active is True:
            qs = qs.exclude(stage=VisitStage.COMPLETED)
        elif active is False:
            qs = qs.filter(stage=VisitStage.COMPLETED)

        return qs.order_by("-start_time")

    @staticmethod
    def queue_board(*, tenant_id: UUID, facility_id: UUID, stage: str | None = None) -> QuerySet[Visit]:
        """
        Active visits, Emergency before Urgent before Normal, then longest waiting first.
        """
        priority_rank = Case(
            *[When(priority=p, then=Value(rank)) for p, rank in PRIORITY_RANK.items()],
            default=Value(len(PRIORITY_RANK)),
            output_field=IntegerField(),
        )
        qs = VisitSelectors._base(tenant_id=tenant_id, facility_id=facility_id).exclude(stage=VisitStage.COMPLETED)
        if stage:
            qs = qs.filter(stage=stage)
        return qs.annotate(priority_rank=priority_rank).order_by("priority_rank", "stage_start_time")

    @staticmethod
    def timeline_items(*, tenant_id: UUID, facility_id: UUID, visit_id: UUID) -> list[dict]:
        events = entity_trail(tenant_id=tenant_id, facility_id=facility_id, entity_type="Visit", entity_id=visit_id)

        return [
            {
                "id": str(e.id),
                "code": e.event_code,
                "at": e.occurred_at,
                "actor_user_id": e.actor_user_id,
                "meta": e.metadata or {},
            }
            for e in events
        ]
