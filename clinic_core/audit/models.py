# clinic_core/audit/models.py
from django.db import models
from django.utils import timezone

from clinic_core.common.models import ScopedModel


class AuditEvent(ScopedModel):
    """
    One line of an entity's audit trail (a visit timeline is the trail of one
    Visit). Rows are written once and never edited.
    """
    event_code = models.CharField(max_length=64, db_index=True)  # "visit.stage_changed"
    entity_type = models.CharField(max_length=32)  # "Visit"
    entity_id = models.UUIDField()

    actor_user_id = models.BigIntegerField(null=True, blank=True)
    occurred_at = models.DateTimeField(default=timezone.now)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "audit_event"
        ordering = ["occurred_at", "created_at"]
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "entity_type", "entity_id"]),
            models.Index(fields=["tenant_id", "facility_id", "-occurred_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_code} {self.entity_type}:{self.entity_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit events are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit events are append-only.")
