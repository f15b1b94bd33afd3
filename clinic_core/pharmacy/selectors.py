# clinic_core/pharmacy/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from clinic_core.visits.constants import VisitStage
from clinic_core.visits.models import Visit
from clinic_core.visits.selectors import VisitSelectors


def pending_dispense(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Visit]:
    """
    Visits waiting at the pharmacy counter, oldest arrival first.
    """
    return (
        VisitSelectors.list_visits(tenant_id=tenant_id, facility_id=facility_id, stage=VisitStage.PHARMACY)
        .filter(medications_dispensed=False)
        .order_by("stage_start_time")
    )


def dispensed_history(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Visit]:
    return (
        VisitSelectors.list_visits(tenant_id=tenant_id, facility_id=facility_id)
        .filter(
            stage__in=[VisitStage.CLEARANCE, VisitStage.COMPLETED],
            medications_dispensed=True,
            prescription_lines__isnull=False,
        )
        .distinct()
        .order_by("-updated_at")
    )
