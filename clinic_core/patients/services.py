# clinic_core/patients/services.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db import IntegrityError, transaction

from clinic_core.audit.services import AuditService
from clinic_core.patients.models import Patient

EDITABLE_FIELDS = {
    "full_name",
    "mrn",
    "phone",
    "email",
    "gender",
    "date_of_birth",
    "blood_group",
    "address",
    "allergies",
}


class PatientService:
    @staticmethod
    @transaction.atomic
    def create_patient(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        full_name: str,
        mrn: str,
        phone: str = "",
        email: str = "",
        gender: str = "",
        date_of_birth=None,
        blood_group: str = "",
        address: str = "",
        allergies: list[str] | None = None,
    ) -> Patient:
        try:
            with transaction.atomic():
                patient = Patient.objects.create(
                    tenant_id=tenant_id,
                    facility_id=facility_id,
                    full_name=full_name,
                    mrn=mrn,
                    phone=phone or "",
                    email=email or "",
                    gender=gender or "",
                    date_of_birth=date_of_birth,
                    blood_group=blood_group or "",
                    address=address or "",
                    allergies=list(allergies or []),
                )
        except IntegrityError:
            raise ValueError("MRN already exists for this tenant/facility.")

        AuditService.log(
            event_code="patient.created",
            entity_type="Patient",
            entity_id=patient.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"mrn": mrn},
        )
        return patient

    @staticmethod
    @transaction.atomic
    def update_patient(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor_user_id: int | None,
        patient_id: UUID,
        data: dict,
    ) -> Patient:
        """
        Demographic edits only. `history` and `last_visit` are ignored here.
        """
        patient = Patient.objects.get(
            id=patient_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )

        updates = {k: v for k, v in (data or {}).items() if k in EDITABLE_FIELDS}

        for k, v in updates.items():
            setattr(patient, k, v)

        try:
            with transaction.atomic():
                patient.save()
        except IntegrityError:
            raise ValueError("MRN already exists for this tenant/facility.")

        AuditService.log(
            event_code="patient.updated",
            entity_type="Patient",
            entity_id=patient.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor_user_id=actor_user_id,
            metadata={"updated_fields": sorted(updates.keys())},
        )
        return patient

    @staticmethod
    @transaction.atomic
    def prepend_history(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        patient_id: UUID,
        summary: str,
        visited_at: datetime,
    ) -> Patient:
        """
        Insert one summary at index 0 and stamp last_visit.
        Existing entries are carried over untouched.
        """
        patient = Patient.objects.select_for_update().get(
            id=patient_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )
        patient.history = [summary, *(patient.history or [])]
        patient.last_visit = visited_at
        patient.save(update_fields=["history", "last_visit", "updated_at"])
        return patient
