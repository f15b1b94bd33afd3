# clinic_core/visits/api/views.py
from __future__ import annotations

from uuid import UUID

from django.db import transaction
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from clinic_core.billing.aggregator import breakdown_for_visit
from clinic_core.billing.services import BillingService
from clinic_core.common.actors import actor_name, actor_user_id
from clinic_core.common.api.pagination import paginate
from clinic_core.common.exceptions import AuthorizationDenied
from clinic_core.common.idempotency import run_once
from clinic_core.common.notifications import collect_toasts
from clinic_core.common.permissions import VisitPermission, user_has_capability
from clinic_core.common.scope import require_scope
from clinic_core.visits import workflow
from clinic_core.visits.api.serializers import (
    BillSerializer,
    ConsultationInputSerializer,
    LabOrderCreateSerializer,
    LabOrderSerializer,
    LabResultSerializer,
    PaymentInputSerializer,
    PrescriptionLineCreateSerializer,
    PrescriptionLineSerializer,
    QueueEntrySerializer,
    TransitionSerializer,
    VersionedInputSerializer,
    VisitCreateSerializer,
    VisitDetailsSerializer,
    VisitSerializer,
    VitalsInputSerializer,
)
from clinic_core.visits.constants import VisitStage
from clinic_core.visits.models import Visit
from clinic_core.visits.selectors import VisitSelectors
from clinic_core.visits.services import VisitService


def _parse_bool(raw: str | None) -> bool | None:
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


class VisitViewSet(viewsets.ViewSet):
    """
    Thin API layer over VisitService / VisitSelectors.

    Write endpoints answer with the fresh visit plus the toasts raised while
    handling the request:
        {"visit": {...}, "messages": [{"message", "severity"}]}
    """
    permission_classes = [VisitPermission]
    serializer_class = VisitSerializer
    queryset = Visit.objects.none()

    def _visit_payload(self, request, visit_id, toasts) -> dict:
        scope = require_scope(request)
        visit = VisitSelectors.get_visit(tenant_id=scope.tenant_id, facility_id=scope.facility_id, visit_id=visit_id)
        return {
            "visit": VisitSerializer(visit).data,
            "messages": [t.as_dict() for t in toasts],
        }

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    def list(self, request):
        scope = require_scope(request)

        patient_raw = request.query_params.get("patient") or request.query_params.get("patient_id")
        patient_id = UUID(str(patient_raw)) if patient_raw else None

        qs = VisitSelectors.list_visits(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            patient_id=patient_id,
            stage=request.query_params.get("stage") or None,
            active=_parse_bool(request.query_params.get("active")),
        )
        return paginate(request, qs, VisitSerializer)

    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        visit = VisitSelectors.get_visit(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
        )
        return Response(VisitSerializer(visit).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], responses={200: QueueEntrySerializer(many=True)})
    @action(detail=False, methods=["get"], url_path="queue")
    def queue(self, request):
        scope = require_scope(request)
        stage = request.query_params.get("stage") or None
        if stage and stage not in VisitStage.values:
            raise DRFValidationError({"stage": f"Unknown stage {stage!r}."})

        qs = VisitSelectors.queue_board(tenant_id=scope.tenant_id, facility_id=scope.facility_id, stage=stage)
        return Response(QueueEntrySerializer(qs, many=True).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["get"], url_path="timeline")
    def timeline(self, request, pk=None):
        scope = require_scope(request)
        visit_id = UUID(str(pk))

        if not Visit.objects.filter(id=visit_id, tenant_id=scope.tenant_id, facility_id=scope.facility_id).exists():
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)

        items = VisitSelectors.timeline_items(tenant_id=scope.tenant_id, facility_id=scope.facility_id, visit_id=visit_id)
        return Response({"visit_id": str(visit_id), "items": items}, status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], responses={200: BillSerializer})
    @action(detail=True, methods=["get"], url_path="bill")
    def bill(self, request, pk=None):
        scope = require_scope(request)
        visit = VisitSelectors.get_visit(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
        )
        breakdown = breakdown_for_visit(visit)
        data = {
            "consultation_fee": breakdown.consultation_fee,
            "lab_total": breakdown.lab_total,
            "pharmacy_total": breakdown.pharmacy_total,
            "total": breakdown.total,
            "payment_status": visit.payment_status,
        }
        return Response(BillSerializer(data).data, status=status.HTTP_200_OK)

    # ------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------
    @extend_schema(tags=["Visits"], request=VisitCreateSerializer, responses={201: VisitSerializer})
    def create(self, request):
        scope = require_scope(request)

        ser = VisitCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        with collect_toasts() as toasts:
            try:
                visit = VisitService.create_visit(
                    tenant_id=scope.tenant_id,
                    facility_id=scope.facility_id,
                    actor_user_id=actor_user_id(request.user),
                    patient_id=data["patient_id"],
                    priority=data["priority"],
                    insurance=data.get("insurance"),
                    skip_vitals=data["skip_vitals"],
                    consultation_fee=data.get("consultation_fee"),
                    chief_complaint=data.get("chief_complaint", ""),
                )
            except ValueError as e:
                raise DRFValidationError({"detail": str(e)})

        return Response(self._visit_payload(request, visit.id, toasts), status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------
    @extend_schema(tags=["Visits"], request=TransitionSerializer)
    @action(detail=True, methods=["post"], url_path="transition")
    def transition(self, request, pk=None):
        scope = require_scope(request)

        ser = TransitionSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        to_stage = ser.validated_data["to_stage"]

        if not user_has_capability(request.user, workflow.required_capability(to_stage)):
            raise AuthorizationDenied(f"You are not allowed to move visits to {VisitStage(to_stage).label}.")

        with collect_toasts() as toasts:
            if to_stage == VisitStage.COMPLETED:
                visit = VisitService.complete(
                    tenant_id=scope.tenant_id,
                    facility_id=scope.facility_id,
                    visit_id=UUID(str(pk)),
                    actor_user_id=actor_user_id(request.user),
                    expected_version=ser.validated_data.get("expected_version"),
                )
            else:
                visit = VisitService.transition(
                    tenant_id=scope.tenant_id,
                    facility_id=scope.facility_id,
                    visit_id=UUID(str(pk)),
                    to_stage=to_stage,
                    actor_user_id=actor_user_id(request.user),
                    expected_version=ser.validated_data.get("expected_version"),
                )

        return Response(self._visit_payload(request, visit.id, toasts), status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], request=VersionedInputSerializer)
    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):
        scope = require_scope(request)

        ser = VersionedInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        with collect_toasts() as toasts:
            visit = VisitService.complete(
                tenant_id=scope.tenant_id,
                facility_id=scope.facility_id,
                visit_id=UUID(str(pk)),
                actor_user_id=actor_user_id(request.user),
                expected_version=ser.validated_data.get("expected_version"),
            )

        return Response(self._visit_payload(request, visit.id, toasts), status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], request=PaymentInputSerializer)
    @action(detail=True, methods=["post"], url_path="payment")
    def payment(self, request, pk=None):
        scope = require_scope(request)
        visit_id = UUID(str(pk))

        ser = PaymentInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        def _pay() -> dict:
            with collect_toasts() as toasts, transaction.atomic():
                BillingService.record_payment(
                    tenant_id=scope.tenant_id,
                    facility_id=scope.facility_id,
                    visit_id=visit_id,
                    actor_user_id=actor_user_id(request.user),
                    reference=data.get("reference", ""),
                    method=data.get("method", ""),
                    expected_version=data.get("expected_version"),
                )
                VisitService.advance_after_payment(
                    tenant_id=scope.tenant_id,
                    facility_id=scope.facility_id,
                    visit_id=visit_id,
                    actor_user_id=actor_user_id(request.user),
                )
            return self._visit_payload(request, visit_id, toasts)

        return Response(run_once(request, scope, _pay), status=status.HTTP_200_OK)

    # ------------------------------------------------------------
    # Clinical fields
    # ------------------------------------------------------------
    @extend_schema(tags=["Visits"], request=VisitDetailsSerializer)
    @action(detail=True, methods=["post"], url_path="details")
    def details(self, request, pk=None):
        scope = require_scope(request)

        ser = VisitDetailsSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        visit = VisitService.update_details(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            actor_user_id=actor_user_id(request.user),
            priority=ser.validated_data.get("priority"),
            insurance=ser.validated_data.get("insurance"),
            expected_version=ser.validated_data.get("expected_version"),
        )
        return Response(self._visit_payload(request, visit.id, []), status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], request=VitalsInputSerializer)
    @action(detail=True, methods=["post"], url_path="vitals")
    def vitals(self, request, pk=None):
        scope = require_scope(request)

        ser = VitalsInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        expected_version = data.pop("expected_version", None)

        visit = VisitService.record_vitals(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            actor_user_id=actor_user_id(request.user),
            vitals=data,
            expected_version=expected_version,
        )
        return Response(self._visit_payload(request, visit.id, []), status=status.HTTP_200_OK)

    @extend_schema(tags=["Visits"], request=ConsultationInputSerializer)
    @action(detail=True, methods=["post"], url_path="consultation")
    def consultation(self, request, pk=None):
        scope = require_scope(request)

        ser = ConsultationInputSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        expected_version = data.pop("expected_version", None)

        data.setdefault("doctor_user_id", actor_user_id(request.user))
        if "doctor_name" not in data:
            data["doctor_name"] = actor_name(request.user)

        visit = VisitService.record_consultation(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            actor_user_id=actor_user_id(request.user),
            data=data,
            expected_version=expected_version,
        )
        return Response(self._visit_payload(request, visit.id, []), status=status.HTTP_200_OK)

    # ------------------------------------------------------------
    # Lab orders
    # ------------------------------------------------------------
    @extend_schema(tags=["Visits"], request=LabOrderCreateSerializer, responses={201: LabOrderSerializer})
    @action(detail=True, methods=["post"], url_path="lab-orders")
    def lab_orders(self, request, pk=None):
        scope = require_scope(request)

        ser = LabOrderCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        order = VisitService.add_lab_order(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            actor_user_id=actor_user_id(request.user),
            **ser.validated_data,
        )
        return Response(LabOrderSerializer(order).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Visits"], request=LabResultSerializer, responses={200: LabOrderSerializer})
    @action(detail=True, methods=["post"], url_path=r"lab-orders/(?P<order_id>[^/.]+)/result")
    def lab_order_result(self, request, pk=None, order_id=None):
        scope = require_scope(request)

        ser = LabResultSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        order = VisitService.record_lab_result(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            lab_order_id=UUID(str(order_id)),
            actor_user_id=actor_user_id(request.user),
            **ser.validated_data,
        )
        return Response(LabOrderSerializer(order).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["delete"], url_path=r"lab-orders/(?P<order_id>[^/.]+)")
    def lab_order_remove(self, request, pk=None, order_id=None):
        scope = require_scope(request)
        VisitService.remove_lab_order(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            lab_order_id=UUID(str(order_id)),
            actor_user_id=actor_user_id(request.user),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------
    # Prescription
    # ------------------------------------------------------------
    @extend_schema(tags=["Visits"], request=PrescriptionLineCreateSerializer, responses={201: PrescriptionLineSerializer})
    @action(detail=True, methods=["post"], url_path="prescription")
    def prescription(self, request, pk=None):
        scope = require_scope(request)

        ser = PrescriptionLineCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        line = VisitService.add_prescription_line(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            actor_user_id=actor_user_id(request.user),
            **ser.validated_data,
        )
        return Response(PrescriptionLineSerializer(line).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"prescription/(?P<line_id>[^/.]+)")
    def prescription_remove(self, request, pk=None, line_id=None):
        scope = require_scope(request)
        VisitService.remove_prescription_line(
            tenant_id=scope.tenant_id,
            facility_id=scope.facility_id,
            visit_id=UUID(str(pk)),
            line_id=UUID(str(line_id)),
            actor_user_id=actor_user_id(request.user),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
