# clinic_core/patients/models.py
from django.db import models

from clinic_core.common.models import ScopedModel


class Gender(models.TextChoices):
    FEMALE = "F", "Female"
    MALE = "M", "Male"
    OTHER = "O", "Other"


class Patient(ScopedModel):
    """
    `history` holds plain-text visit summaries, newest first. Visit completion
    is its only writer (PatientService.prepend_history).
    """
    mrn = models.CharField(max_length=32)  # medical record number, unique per facility
    full_name = models.CharField(max_length=255)
    gender = models.CharField(max_length=1, choices=Gender.choices, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    address = models.CharField(max_length=255, blank=True)
    blood_group = models.CharField(max_length=4, blank=True)
    allergies = models.JSONField(default=list, blank=True)

    history = models.JSONField(default=list, blank=True)
    last_visit = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "patients_patient"
        ordering = ["full_name"]
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "facility_id", "mrn"], name="uq_patient_mrn"),
        ]

    def __str__(self) -> str:
        return f"{self.mrn} {self.full_name}"
