# clinic_core/audit/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from clinic_core.audit.models import AuditEvent


def recent_events(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[AuditEvent]:
    return AuditEvent.objects.filter(tenant_id=tenant_id, facility_id=facility_id).order_by("-occurred_at", "-created_at")


def entity_trail(*, tenant_id: UUID, facility_id: UUID, entity_type: str, entity_id: UUID) -> QuerySet[AuditEvent]:
    """Oldest first."""
    return AuditEvent.objects.filter(
        tenant_id=tenant_id,
        facility_id=facility_id,
        entity_type=entity_type,
        entity_id=entity_id,
    ).order_by("occurred_at", "created_at")
