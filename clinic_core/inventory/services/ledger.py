# clinic_core/inventory/services/ledger.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from uuid import UUID

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from clinic_core.common.exceptions import StaleVersion, StorageError
from clinic_core.inventory.models import InventoryAction, InventoryItem, InventoryLog

logger = logging.getLogger(__name__)


class AdjustmentKind(enum.Enum):
    MANUAL = "manual"
    RESTOCK = "restock"
    DISPENSE = "dispense"


@dataclass(frozen=True)
class StockAdjustment:
    item_id: UUID
    previous_stock: int
    new_stock: int
    quantity_change: int
    log: InventoryLog


def _action_for(kind: AdjustmentKind, effective_delta: int) -> str:
    if kind is AdjustmentKind.DISPENSE:
        return InventoryAction.DISPENSED
    if kind is AdjustmentKind.RESTOCK and effective_delta > 0:
        return InventoryAction.RESTOCKED
    return InventoryAction.UPDATED


class InventoryLedger:
    """
    Owner of InventoryItem.stock and its audit trail.

    Each call is a read / compare-and-swap on `version` / append-log unit of work:
    - new stock is max(0, current + delta), never rejected for underflow
    - the log records the effective delta (new - current), not the requested one
    - exactly one InventoryLog per successful call
    - a lost race re-reads and retries; a failed write leaves no log behind
    """

    @staticmethod
    def adjust_stock(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        delta: int,
        reason: str,
        actor: str,
        kind: AdjustmentKind = AdjustmentKind.MANUAL,
        actor_user_id: int | None = None,
        expected_version: int | None = None,
    ) -> StockAdjustment:
        max_retries = max(0, int(getattr(settings, "CLINIC_STOCK_ADJUST_MAX_RETRIES", 3)))
        delta = int(delta)

        for attempt in range(max_retries + 1):
            try:
                with transaction.atomic():
                    result = InventoryLedger._try_adjust(
                        tenant_id=tenant_id,
                        facility_id=facility_id,
                        item_id=item_id,
                        delta=delta,
                        reason=reason,
                        actor=actor,
                        kind=kind,
                        actor_user_id=actor_user_id,
                        expected_version=expected_version,
                    )
            except DatabaseError as exc:
                logger.error("stock write failed for item %s: %s", item_id, exc)
                raise StorageError() from exc

            if result is not None:
                return result

            if expected_version is not None:
                raise StaleVersion()

            logger.debug("stock version conflict on item %s (attempt %s)", item_id, attempt + 1)

        raise StaleVersion(f"Stock for item {item_id} kept changing; gave up after {max_retries + 1} attempts.")

    @staticmethod
    def _try_adjust(
        *,
        tenant_id: UUID,
        facility_id: UUID,
        item_id: UUID,
        delta: int,
        reason: str,
        actor: str,
        kind: AdjustmentKind,
        actor_user_id: int | None,
        expected_version: int | None,
    ) -> StockAdjustment | None:
        item = InventoryItem.objects.get(id=item_id, tenant_id=tenant_id, facility_id=facility_id)

        if expected_version is not None and item.version != expected_version:
            return None

        previous = item.stock
        new_stock = max(0, previous + delta)
        effective = new_stock - previous

        updated = InventoryItem.objects.filter(
            id=item.id,
            tenant_id=tenant_id,
            facility_id=facility_id,
            version=item.version,
        ).update(stock=new_stock, version=F("version") + 1, updated_at=timezone.now())
        if not updated:
            return None

        if previous + delta < 0:
            logger.warning(
                "stock floor hit on %s (%s): requested %s, applied %s",
                item.name,
                item.id,
                delta,
                effective,
            )

        log = InventoryLog.objects.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            item_id=item.id,
            item_name=item.name,
            action=_action_for(kind, effective),
            quantity_change=effective,
            notes=reason or "",
            user=actor or "System",
            actor_user_id=actor_user_id,
        )

        return StockAdjustment(
            item_id=item.id,
            previous_stock=previous,
            new_stock=new_stock,
            quantity_change=effective,
            log=log,
        )
