# clinic_core/patients/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from clinic_core.common.actors import actor_user_id
from clinic_core.common.api.filters import apply_filters
from clinic_core.common.api.pagination import paginate
from clinic_core.common.permissions import PatientPermission
from clinic_core.common.scope import require_scope
from clinic_core.patients.api.serializers import PatientSerializer, PatientWriteSerializer
from clinic_core.patients.filters import PatientFilter
from clinic_core.patients.models import Patient
from clinic_core.patients.selectors import get_patient, patients_in_scope
from clinic_core.patients.services import PatientService


class PatientViewSet(viewsets.ViewSet):
    permission_classes = [PatientPermission]
    serializer_class = PatientSerializer
    queryset = Patient.objects.none()

    @extend_schema(tags=["Patients"], responses={200: PatientSerializer(many=True)})
    def list(self, request):
        scope = require_scope(request)
        qs = apply_filters(PatientFilter, request, patients_in_scope(tenant_id=scope.tenant_id, facility_id=scope.facility_id))
        return paginate(request, qs, PatientSerializer)

    @extend_schema(tags=["Patients"], responses={200: PatientSerializer})
    def retrieve(self, request, pk=None):
        scope = require_scope(request)
        patient = get_patient(tenant_id=scope.tenant_id, facility_id=scope.facility_id, patient_id=UUID(str(pk)))
        return Response(PatientSerializer(patient).data)

    @extend_schema(tags=["Patients"], request=PatientWriteSerializer, responses={201: PatientSerializer})
    def create(self, request):
        scope = require_scope(request)
        ser = PatientWriteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.create_patient(
                tenant_id=scope.tenant_id,
                facility_id=scope.facility_id,
                actor_user_id=actor_user_id(request.user),
                **ser.validated_data,
            )
        except ValueError as e:
            raise DRFValidationError({"mrn": [str(e)]})

        return Response(PatientSerializer(patient).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Patients"], request=PatientWriteSerializer, responses={200: PatientSerializer})
    def partial_update(self, request, pk=None):
        scope = require_scope(request)
        ser = PatientWriteSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.update_patient(
                tenant_id=scope.tenant_id,
                facility_id=scope.facility_id,
                actor_user_id=actor_user_id(request.user),
                patient_id=UUID(str(pk)),
                data=ser.validated_data,
            )
        except ValueError as e:
            raise DRFValidationError({"mrn": [str(e)]})

        return Response(PatientSerializer(patient).data)
