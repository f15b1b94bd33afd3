# clinic_core/visits/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from clinic_core.visits.constants import LabResultFlag, VisitPriority, VisitStage
from clinic_core.visits.models import LabOrder, PrescriptionLine, Visit


class LabOrderSerializer(serializers.ModelSerializer):
    class Meta:
        model = LabOrder
        fields = [
            "id",
            "test_id",
            "test_name",
            "price",
            "status",
            "result",
            "flag",
            "notes",
            "ordered_at",
            "completed_at",
        ]
        read_only_fields = fields


class PrescriptionLineSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PrescriptionLine
        fields = [
            "id",
            "inventory_item_id",
            "name",
            "dosage",
            "quantity",
            "price",
            "line_total",
        ]
        read_only_fields = fields


class VisitSerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)
    lab_orders = LabOrderSerializer(many=True, read_only=True)
    prescription = PrescriptionLineSerializer(source="prescription_lines", many=True, read_only=True)

    class Meta:
        model = Visit
        fields = [
            "id",
            "tenant_id",
            "facility_id",
            "patient_id",
            "patient_name",
            "stage",
            "stage_start_time",
            "start_time",
            "completed_at",
            "queue_number",
            "priority",
            "insurance",
            "vitals",
            "chief_complaint",
            "diagnosis",
            "doctor_notes",
            "doctor_user_id",
            "doctor_name",
            "lab_orders",
            "prescription",
            "medications_dispensed",
            "consultation_fee",
            "total_bill",
            "payment_status",
            "metadata",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class QueueEntrySerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)
    wait_seconds = serializers.SerializerMethodField()

    class Meta:
        model = Visit
        fields = [
            "id",
            "patient_id",
            "patient_name",
            "queue_number",
            "priority",
            "stage",
            "stage_start_time",
            "wait_seconds",
            "payment_status",
            "version",
        ]
        read_only_fields = fields

    def get_wait_seconds(self, obj) -> int:
        return max(0, int((timezone.now() - obj.stage_start_time).total_seconds()))


class InsuranceSerializer(serializers.Serializer):
    provider = serializers.CharField(max_length=255)
    member_number = serializers.CharField(max_length=64)


class VisitCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    priority = serializers.ChoiceField(choices=VisitPriority.choices, default=VisitPriority.NORMAL)
    insurance = InsuranceSerializer(required=False, allow_null=True, default=None)
    skip_vitals = serializers.BooleanField(default=False)
    consultation_fee = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.00"),
        required=False,
        allow_null=True,
        default=None,
    )
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default="")


class VersionedInputSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=1, required=False)


class VisitDetailsSerializer(VersionedInputSerializer):
    priority = serializers.ChoiceField(choices=VisitPriority.choices, required=False)
    insurance = InsuranceSerializer(required=False)


class TransitionSerializer(VersionedInputSerializer):
    to_stage = serializers.ChoiceField(choices=VisitStage.choices)


class VitalsInputSerializer(VersionedInputSerializer):
    bp = serializers.CharField(max_length=16, required=False, allow_blank=True)
    temp = serializers.CharField(max_length=16, required=False, allow_blank=True)
    weight = serializers.CharField(max_length=16, required=False, allow_blank=True)
    height = serializers.CharField(max_length=16, required=False, allow_blank=True)
    heart_rate = serializers.CharField(max_length=16, required=False, allow_blank=True)
    resp_rate = serializers.CharField(max_length=16, required=False, allow_blank=True)
    spo2 = serializers.CharField(max_length=16, required=False, allow_blank=True)

    def validate(self, attrs):
        if not {k for k in attrs if k != "expected_version"}:
            raise serializers.ValidationError("At least one vital sign is required.")
        return attrs


class ConsultationInputSerializer(VersionedInputSerializer):
    chief_complaint = serializers.CharField(required=False, allow_blank=True)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    doctor_notes = serializers.CharField(required=False, allow_blank=True)
    doctor_name = serializers.CharField(max_length=255, required=False, allow_blank=True)


class LabOrderCreateSerializer(serializers.Serializer):
    test_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    test_name = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.00"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class LabResultSerializer(serializers.Serializer):
    result = serializers.CharField()
    flag = serializers.ChoiceField(choices=LabResultFlag.choices, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PrescriptionLineCreateSerializer(serializers.Serializer):
    inventory_item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    dosage = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    name = serializers.CharField(max_length=255, required=False, allow_null=True, default=None)
    price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.00"),
        required=False,
        allow_null=True,
        default=None,
    )


class PaymentInputSerializer(VersionedInputSerializer):
    reference = serializers.CharField(max_length=128, required=False, allow_blank=True, default="")
    method = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class BillSerializer(serializers.Serializer):
    consultation_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    lab_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    pharmacy_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_status = serializers.CharField()
