# clinic_core/patients/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from clinic_core.patients.models import Patient

WRITABLE = [
    "mrn",
    "full_name",
    "gender",
    "date_of_birth",
    "phone",
    "email",
    "address",
    "blood_group",
    "allergies",
]


class PatientWriteSerializer(serializers.ModelSerializer):
    """
    Registration (POST) and demographic edits (PATCH, partial=True).
    `history` and `last_visit` belong to visit completion and are not accepted.
    """
    allergies = serializers.ListField(child=serializers.CharField(max_length=128), required=False)

    class Meta:
        model = Patient
        fields = WRITABLE
        # MRN uniqueness is checked by PatientService inside the scope
        validators = []

    def validate(self, attrs):
        if self.partial and not attrs:
            raise serializers.ValidationError("At least one field is required.")
        return attrs


class PatientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = ["id", *WRITABLE, "history", "last_visit", "created_at", "updated_at"]
        read_only_fields = fields
