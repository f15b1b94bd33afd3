# clinic_core/inventory/services/catalog.py
from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic_core.common.exceptions import StaleVersion
from clinic_core.common.notifications import SEVERITY_INFO, show_toast
from clinic_core.inventory.models import (
    InventoryAction,
    InventoryItem,
    InventoryLog,
    ItemCategory,
    Supplier,
)
from clinic_core.inventory.services.ledger import AdjustmentKind, InventoryLedger

logger = logging.getLogger(__name__)

ITEM_DETAIL_FIELDS = {
    "name",
    "category",
    "unit",
    "min_stock_level",
    "price",
    "batch_number",
    "expiry_date",
}

SUPPLIER_FIELDS = {"name", "contact_person", "phone", "email", "address"}


def _get_supplier(*, tenant_id: UUID, facility_id: UUID, supplier_id: UUID | None) -> Supplier | None:
    if supplier_id is None:
        return None
    try:
        return Supplier.objects.get(id=supplier_id, tenant_id=tenant_id, facility_id=facility_id)
    except Supplier.DoesNotExist:
        raise ValidationError({"supplier_id": "Supplier not found in this scope."})


class InventoryService:
    """
    Catalogue maintenance. Stock changes are delegated to InventoryLedger so
    every one of them leaves exactly one log entry.
    """

    @staticmethod
    @transaction.atomic
    def create_item(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: str,
        actor_user_id: int | None,
        name: str,
        stock: int = 0,
        min_stock_level: int = 0,
        unit: str = "",
        category: str = ItemCategory.MEDICINE,
        price: Decimal = Decimal("0.00"),
        batch_number: str = "",
        expiry_date=None,
        supplier_id: UUID | None = None,
    ) -> InventoryItem:
        if stock < 0:
            raise ValidationError({"stock": "Stock must be >= 0."})
        if price < 0:
            raise ValidationError({"price": "Price must be >= 0."})

        item = InventoryItem.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            name=name,
            stock=stock,
            min_stock_level=min_stock_level,
            unit=unit or "",
            category=category,
            price=price,
            batch_number=batch_number or "",
            expiry_date=expiry_date,
            supplier=_get_supplier(tenant_id=tenant_id, facility_id=facility_id, supplier_id=supplier_id),
        )

        InventoryLog.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item.id,
            item_name=item.name,
            action=InventoryAction.CREATED,
            quantity_change=item.stock,
            notes="Initial stock entry",
            user=actor or "System",
            actor_user_id=actor_user_id,
        )
        show_toast(f"{item.name} added to inventory.", item_id=str(item.id))
        return item

    @staticmethod
    @transaction.atomic
    def update_item(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: str,
        actor_user_id: int | None,
        item_id: UUID,
        data: dict,
        expected_version: int | None = None,
        reason: str = "Updated details",
    ) -> InventoryItem:
        """
        Edit catalogue details and, optionally, set an absolute stock figure.

        A stock edit goes through the ledger as a signed delta (its log is the
        only one written); a details-only edit writes one `Updated` entry.
        """
        item = InventoryItem.objects.get(id=item_id, tenant_id=tenant_id, facility_id=facility_id)
        if expected_version is not None and item.version != expected_version:
            raise StaleVersion()

        data = dict(data or {})
        updates = {k: v for k, v in data.items() if k in ITEM_DETAIL_FIELDS}
        if "supplier_id" in data:
            updates["supplier"] = _get_supplier(
                tenant_id=tenant_id,
                facility_id=facility_id,
                supplier_id=data["supplier_id"],
            )
        if "price" in updates and updates["price"] < 0:
            raise ValidationError({"price": "Price must be >= 0."})

        target_stock = data.get("stock")
        if target_stock is not None and target_stock < 0:
            raise ValidationError({"stock": "Stock must be >= 0."})

        if updates:
            changed = InventoryItem.objects.filter(
                id=item.id,
                tenant_id=tenant_id,
                facility_id=facility_id,
                version=item.version,
            ).update(**updates, version=F("version") + 1, updated_at=timezone.now())
            if not changed:
                raise StaleVersion()

        if target_stock is not None and target_stock != item.stock:
            InventoryLedger.adjust_stock(
                tenant_id=tenant_id,
                facility_id=facility_id,
                item_id=item.id,
                delta=target_stock - item.stock,
                reason=reason,
                actor=actor,
                kind=AdjustmentKind.MANUAL,
                actor_user_id=actor_user_id,
                expected_version=item.version + (1 if updates else 0),
            )
        else:
            InventoryLog.objects.create(
                tenant_id=tenant_id,
                facility_id=facility_id,
                item_id=item.id,
                item_name=updates.get("name", item.name),
                action=InventoryAction.UPDATED,
                quantity_change=0 if target_stock is not None else None,
                notes=reason or "",
                user=actor or "System",
                actor_user_id=actor_user_id,
            )

        item.refresh_from_db()
        show_toast(f"{item.name} updated.", item_id=str(item.id))
        return item

    @staticmethod
    def restock(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: str,
        actor_user_id: int | None,
        item_id: UUID,
        quantity: int,
        notes: str = "",
    ):
        if quantity <= 0:
            raise ValidationError({"quantity": "Quantity must be > 0."})

        return InventoryLedger.adjust_stock(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item_id,
            delta=quantity,
            reason=notes or "Restocked",
            actor=actor,
            kind=AdjustmentKind.RESTOCK,
            actor_user_id=actor_user_id,
        )

    @staticmethod
    @transaction.atomic
    def delete_item(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        actor: str,
        actor_user_id: int | None,
        item_id: UUID,
    ) -> None:
        item = InventoryItem.objects.select_for_update().get(
            id=item_id,
            tenant_id=tenant_id,
            facility_id=facility_id,
        )

        InventoryLog.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item.id,
            item_name=item.name,
            action=InventoryAction.DELETED,
            quantity_change=None,
            notes="Item deleted from catalog",
            user=actor or "System",
            actor_user_id=actor_user_id,
        )
        item.delete()
        logger.info("inventory item %s (%s) deleted by %s", item_id, item.name, actor)
        show_toast("Item removed.", SEVERITY_INFO, item_id=str(item_id))


class SupplierService:
    @staticmethod
    @transaction.atomic
    def create_supplier(*, tenant_id: UUID, facility_id: UUID, name: str, **fields) -> Supplier:
        extra = {k: (v or "") for k, v in fields.items() if k in SUPPLIER_FIELDS}
        return Supplier.objects.create(tenant_id=tenant_id, facility_id=facility_id, name=name, **extra)

    @staticmethod
    @transaction.atomic
    def update_supplier(*, tenant_id: UUID, facility_id: UUID, supplier_id: UUID, data: dict) -> Supplier:
        supplier = Supplier.objects.get(id=supplier_id, tenant_id=tenant_id, facility_id=facility_id)
        for k, v in (data or {}).items():
            if k in SUPPLIER_FIELDS:
                setattr(supplier, k, v)
        supplier.save()
        return supplier

    @staticmethod
    @transaction.atomic
    def delete_supplier(*, tenant_id: UUID, facility_id: UUID, supplier_id: UUID) -> int:
        """
        Deletes the supplier; its items stay in the catalogue, detached.
        Returns the number of detached items.
        """
        supplier = Supplier.objects.get(id=supplier_id, tenant_id=tenant_id, facility_id=facility_id)
        detached = InventoryItem.objects.filter(
            tenant_id=tenant_id,
            facility_id=facility_id,
            supplier=supplier,
        ).update(supplier=None, version=F("version") + 1, updated_at=timezone.now())
        supplier.delete()
        return detached
