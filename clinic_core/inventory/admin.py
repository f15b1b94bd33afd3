# clinic_core/inventory/admin.py
from django.contrib import admin

from clinic_core.inventory.models import InventoryItem, InventoryLog, Supplier


@admin.register(InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "stock", "min_stock_level", "price", "version", "tenant_id", "facility_id")
    list_filter = ("tenant_id", "facility_id", "category")
    search_fields = ("name", "batch_number")
    # stock is ledger-owned
    readonly_fields = ("stock", "version", "created_at", "updated_at")
    ordering = ("name",)


@admin.register(InventoryLog)
class InventoryLogAdmin(admin.ModelAdmin):
    list_display = ("item_name", "action", "quantity_change", "user", "timestamp")
    list_filter = ("tenant_id", "facility_id", "action")
    search_fields = ("item_name", "notes", "user")
    ordering = ("-timestamp",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("name", "contact_person", "phone", "email", "tenant_id", "facility_id")
    list_filter = ("tenant_id", "facility_id")
    search_fields = ("name", "contact_person", "email")
