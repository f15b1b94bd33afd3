# clinic_core/pharmacy/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from clinic_core.common.api.pagination import paginate
from clinic_core.common.exceptions import AuthorizationDenied
from clinic_core.common.idempotency import run_once
from clinic_core.common.notifications import collect_toasts
from clinic_core.common.permissions import PharmacyPermission
from clinic_core.common.scope import require_scope
from clinic_core.pharmacy.api.serializers import DispenseResultSerializer
from clinic_core.pharmacy.selectors import dispensed_history, pending_dispense
from clinic_core.pharmacy.services import DispensingService
from clinic_core.visits.api.serializers import VisitSerializer
from clinic_core.visits.models import Visit
from clinic_core.visits.selectors import VisitSelectors


class PharmacyViewSet(viewsets.ViewSet):
    """
    Pharmacy counter: pending prescriptions, dispensing, dispensed history.
    """
    permission_classes = [PharmacyPermission]
    serializer_class = VisitSerializer
    queryset = Visit.objects.none()

    @extend_schema(tags=["Pharmacy"], responses={200: VisitSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = pending_dispense(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return Response(VisitSerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Pharmacy"], responses={200: VisitSerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="history")
    def history(self, request):
        scope = require_scope(request)
        qs = dispensed_history(tenant_id=scope.tenant_id, facility_id=scope.facility_id)
        return paginate(request, qs, VisitSerializer)

    @extend_schema(tags=["Pharmacy"], request=None, responses={200: DispenseResultSerializer})
    @action(detail=True, methods=["post"], url_path="dispense")
    def dispense(self, request, pk=None):
        scope = require_scope(request)

        def _dispense() -> dict:
            with collect_toasts() as toasts:
                try:
                    result = DispensingService.dispense(
                        tenant_id=scope.tenant_id,
                        facility_id=scope.facility_id,
                        visit_id=UUID(str(pk)),
                        user=request.user,
                    )
                except AuthorizationDenied as exc:
                    raise AuthorizationDenied(
                        {"detail": str(exc.detail), "messages": [t.as_dict() for t in toasts]}
                    ) from exc
            result.toasts = list(toasts)
            # re-read with lab orders / prescription prefetched
            result.visit = VisitSelectors.get_visit(
                tenant_id=scope.tenant_id,
                facility_id=scope.facility_id,
                visit_id=result.visit.id,
            )
            return DispenseResultSerializer(result).data

        return Response(run_once(request, scope, _dispense), status=status.HTTP_200_OK)
