# clinic_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import viewsets

from clinic_core.audit.api.serializers import AuditEventSerializer
from clinic_core.audit.filters import AuditEventFilter
from clinic_core.audit.models import AuditEvent
from clinic_core.audit.selectors import recent_events
from clinic_core.common.api.filters import apply_filters
from clinic_core.common.api.pagination import paginate
from clinic_core.common.permissions import AuditPermission
from clinic_core.common.scope import require_scope


class AuditEventViewSet(viewsets.ViewSet):
    """
    Audit trail across visits, newest first.
    Filters: entity_type, entity_id, event_code, event_prefix, actor, since.
    """
    permission_classes = [AuditPermission]
    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(tags=["Audit"], responses={200: AuditEventSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = apply_filters(
            AuditEventFilter,
            request,
            recent_events(tenant_id=scope.tenant_id, facility_id=scope.facility_id),
        )
        return paginate(request, qs, AuditEventSerializer)
