# clinic_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from clinic_core.patients.models import Patient


def patients_in_scope(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Patient]:
    return Patient.objects.filter(tenant_id=tenant_id, facility_id=facility_id)


def get_patient(*, tenant_id: UUID, facility_id: UUID, patient_id: UUID) -> Patient:
    return patients_in_scope(tenant_id=tenant_id, facility_id=facility_id).get(id=patient_id)
