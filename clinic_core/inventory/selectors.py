# clinic_core/inventory/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import F, QuerySet

from clinic_core.inventory.models import InventoryItem, InventoryLog, Supplier


def get_item(*, tenant_id: UUID, facility_id: UUID, item_id: UUID) -> InventoryItem:
    return InventoryItem.objects.select_related("supplier").get(
        id=item_id,
        tenant_id=tenant_id,
        facility_id=facility_id,
    )


def list_items(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[InventoryItem]:
    return (
        InventoryItem.objects.filter(tenant_id=tenant_id, facility_id=facility_id)
        .select_related("supplier")
        .order_by("name")
    )


def list_low_stock_items(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[InventoryItem]:
    return list_items(tenant_id=tenant_id, facility_id=facility_id).filter(stock__lte=F("min_stock_level"))


def list_logs(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[InventoryLog]:
    return InventoryLog.objects.filter(tenant_id=tenant_id, facility_id=facility_id).order_by("-timestamp")


def list_suppliers(*, tenant_id: UUID, facility_id: UUID) -> QuerySet[Supplier]:
    return Supplier.objects.filter(tenant_id=tenant_id, facility_id=facility_id).order_by("name")
