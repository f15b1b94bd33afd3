from clinic_core.inventory.services.catalog import InventoryService, SupplierService
from clinic_core.inventory.services.ledger import AdjustmentKind, InventoryLedger, StockAdjustment

__all__ = [
    "AdjustmentKind",
    "InventoryLedger",
    "InventoryService",
    "StockAdjustment",
    "SupplierService",
]
