# clinic_core/pharmacy/api/serializers.py
from rest_framework import serializers

from clinic_core.inventory.api.serializers import StockAdjustmentSerializer
from clinic_core.visits.api.serializers import VisitSerializer


class FailedLineSerializer(serializers.Serializer):
    line_id = serializers.UUIDField()
    inventory_item_id = serializers.UUIDField()
    name = serializers.CharField()
    quantity = serializers.IntegerField()
    error = serializers.CharField()


class ToastSerializer(serializers.Serializer):
    message = serializers.CharField()
    severity = serializers.CharField()


class DispenseResultSerializer(serializers.Serializer):
    visit = VisitSerializer()
    adjustments = StockAdjustmentSerializer(many=True)
    failed_lines = FailedLineSerializer(many=True)
    partial = serializers.BooleanField()
    messages = ToastSerializer(source="toasts", many=True)
