# clinic_core/audit/filters.py
import django_filters

from clinic_core.audit.models import AuditEvent


class AuditEventFilter(django_filters.FilterSet):
    entity_type = django_filters.CharFilter()
    entity_id = django_filters.UUIDFilter()
    event_code = django_filters.CharFilter()
    event_prefix = django_filters.CharFilter(field_name="event_code", lookup_expr="startswith")
    actor = django_filters.NumberFilter(field_name="actor_user_id")
    since = django_filters.IsoDateTimeFilter(field_name="occurred_at", lookup_expr="gte")

    class Meta:
        model = AuditEvent
        fields = ["entity_type", "entity_id", "event_code"]
