# clinic_core/inventory/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from clinic_core.inventory.models import InventoryItem, InventoryLog, ItemCategory, Supplier


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            "id",
            "name",
            "contact_person",
            "phone",
            "email",
            "address",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SupplierWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    contact_person = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)


class InventoryItemSerializer(serializers.ModelSerializer):
    supplier_id = serializers.UUIDField(read_only=True, allow_null=True)
    supplier_name = serializers.SerializerMethodField()
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = InventoryItem
        fields = [
            "id",
            "name",
            "category",
            "unit",
            "stock",
            "min_stock_level",
            "is_low_stock",
            "price",
            "batch_number",
            "expiry_date",
            "supplier_id",
            "supplier_name",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_supplier_name(self, obj) -> str | None:
        return obj.supplier.name if obj.supplier_id else None


class InventoryItemCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    category = serializers.ChoiceField(choices=ItemCategory.choices, default=ItemCategory.MEDICINE)
    unit = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    stock = serializers.IntegerField(min_value=0, default=0)
    min_stock_level = serializers.IntegerField(min_value=0, default=0)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.00"), default=Decimal("0.00"))
    batch_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    expiry_date = serializers.DateField(required=False, allow_null=True, default=None)
    supplier_id = serializers.UUIDField(required=False, allow_null=True, default=None)


class InventoryItemUpdateSerializer(serializers.Serializer):
    """
    PATCH contract. `stock` is an absolute figure; the ledger logs the difference.
    """
    name = serializers.CharField(max_length=255, required=False)
    category = serializers.ChoiceField(choices=ItemCategory.choices, required=False)
    unit = serializers.CharField(max_length=32, required=False, allow_blank=True)
    stock = serializers.IntegerField(min_value=0, required=False)
    min_stock_level = serializers.IntegerField(min_value=0, required=False)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.00"), required=False)
    batch_number = serializers.CharField(max_length=64, required=False, allow_blank=True)
    expiry_date = serializers.DateField(required=False, allow_null=True)
    supplier_id = serializers.UUIDField(required=False, allow_null=True)

    expected_version = serializers.IntegerField(min_value=1, required=False)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        editable = {k for k in attrs if k not in ("expected_version", "reason")}
        if not editable:
            raise serializers.ValidationError("At least one field is required.")
        return attrs


class RestockSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class StockAdjustSerializer(serializers.Serializer):
    delta = serializers.IntegerField()
    reason = serializers.CharField(max_length=255)
    expected_version = serializers.IntegerField(min_value=1, required=False)

    def validate_delta(self, value):
        if value == 0:
            raise serializers.ValidationError("Delta must be non-zero.")
        return value


class InventoryLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = InventoryLog
        fields = [
            "id",
            "item_id",
            "item_name",
            "action",
            "quantity_change",
            "notes",
            "user",
            "actor_user_id",
            "timestamp",
        ]
        read_only_fields = fields


class StockAdjustmentSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    previous_stock = serializers.IntegerField()
    new_stock = serializers.IntegerField()
    quantity_change = serializers.IntegerField()
    log = InventoryLogSerializer()
