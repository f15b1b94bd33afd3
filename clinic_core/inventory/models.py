# clinic_core/inventory/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone

from clinic_core.common.models import ScopedModel, VersionedModel


class ItemCategory(models.TextChoices):
    MEDICINE = "MEDICINE", "Medicine"
    SUPPLY = "SUPPLY", "Supply"
    LAB = "LAB", "Lab"
    EQUIPMENT = "EQUIPMENT", "Equipment"


class InventoryAction(models.TextChoices):
    CREATED = "CREATED", "Created"
    UPDATED = "UPDATED", "Updated"
    RESTOCKED = "RESTOCKED", "Restocked"
    DISPENSED = "DISPENSED", "Dispensed"
    DELETED = "DELETED", "Deleted"


class Supplier(ScopedModel):
    name = models.CharField(max_length=255)
    contact_person = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    address = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = "inventory_supplier"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "name"]),
        ]

    def __str__(self) -> str:
        return self.name


class InventoryItem(ScopedModel, VersionedModel):
    """
    A stocked medicine/supply/lab/equipment line.
    Stock only changes through InventoryLedger.adjust_stock.
    """
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=16, choices=ItemCategory.choices, default=ItemCategory.MEDICINE)
    unit = models.CharField(max_length=32, blank=True)

    stock = models.PositiveIntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    batch_number = models.CharField(max_length=64, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.SET_NULL,
        related_name="items",
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "inventory_item"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "name"]),
            models.Index(fields=["tenant_id", "facility_id", "category"]),
        ]

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock_level

    def __str__(self) -> str:
        return f"{self.name} ({self.stock} {self.unit})".strip()


class InventoryLog(ScopedModel):
    """
    Append-only stock audit record.

    `item_id` is a plain UUID so the trail outlives a deleted item.
    """
    item_id = models.UUIDField(db_index=True)
    item_name = models.CharField(max_length=255)

    action = models.CharField(max_length=16, choices=InventoryAction.choices, db_index=True)
    quantity_change = models.IntegerField(null=True, blank=True)
    notes = models.TextField(blank=True)

    user = models.CharField(max_length=255, blank=True)
    actor_user_id = models.BigIntegerField(null=True, blank=True)

    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "inventory_log"
        indexes = [
            models.Index(fields=["tenant_id", "facility_id", "timestamp"]),
            models.Index(fields=["tenant_id", "facility_id", "item_id"]),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Inventory logs are immutable.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Inventory logs are immutable.")
