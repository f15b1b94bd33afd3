from decimal import Decimal

import pytest

from clinic_core.common.exceptions import StaleVersion
from clinic_core.common.notifications import collect_toasts
from clinic_core.inventory.models import InventoryAction, InventoryItem, InventoryLog
from clinic_core.inventory.selectors import list_low_stock_items
from clinic_core.inventory.services import InventoryService, SupplierService

pytestmark = pytest.mark.django_db


def _logs(item_id):
    return list(InventoryLog.objects.filter(item_id=item_id).order_by("timestamp"))


def test_create_item_logs_initial_stock(item):
    logs = _logs(item.id)
    assert len(logs) == 1
    assert logs[0].action == InventoryAction.CREATED
    assert logs[0].quantity_change == 5
    assert logs[0].notes == "Initial stock entry"


def test_update_details_only_writes_one_updated_log(item, tenant_id, facility_id):
    updated = InventoryService.update_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=None,
        item_id=item.id,
        data={"price": Decimal("120.00"), "min_stock_level": 3},
    )

    assert updated.price == Decimal("120.00")
    assert updated.stock == 5
    assert updated.version == item.version + 1

    logs = _logs(item.id)
    assert len(logs) == 2
    assert logs[-1].action == InventoryAction.UPDATED
    assert logs[-1].quantity_change is None


def test_update_with_stock_edit_logs_the_difference_once(item, tenant_id, facility_id):
    updated = InventoryService.update_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=None,
        item_id=item.id,
        data={"stock": 2, "batch_number": "B-77"},
        reason="Stock take",
    )

    assert updated.stock == 2
    assert updated.batch_number == "B-77"

    logs = _logs(item.id)
    assert len(logs) == 2
    assert logs[-1].quantity_change == -3
    assert logs[-1].notes == "Stock take"


def test_update_with_stale_version_changes_nothing(item, tenant_id, facility_id):
    with pytest.raises(StaleVersion):
        InventoryService.update_item(
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor="Test User",
            actor_user_id=None,
            item_id=item.id,
            data={"name": "Renamed"},
            expected_version=item.version + 1,
        )

    item.refresh_from_db()
    assert item.name == "Amoxicillin 500mg"
    assert len(_logs(item.id)) == 1


def test_restock_logs_restocked(item, tenant_id, facility_id):
    adj = InventoryService.restock(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Store Keeper",
        actor_user_id=None,
        item_id=item.id,
        quantity=10,
    )
    assert adj.new_stock == 15
    assert adj.log.action == InventoryAction.RESTOCKED
    assert adj.log.quantity_change == 10


def test_delete_item_keeps_trail(item, tenant_id, facility_id):
    with collect_toasts() as toasts:
        InventoryService.delete_item(
            tenant_id=tenant_id,
            facility_id=facility_id,
            actor="Test User",
            actor_user_id=None,
            item_id=item.id,
        )

    assert not InventoryItem.objects.filter(id=item.id).exists()
    logs = _logs(item.id)
    assert [log.action for log in logs] == [InventoryAction.CREATED, InventoryAction.DELETED]
    assert logs[-1].quantity_change is None
    assert logs[-1].item_name == "Amoxicillin 500mg"
    assert toasts[-1].message == "Item removed."


def test_low_stock_listing(item, tenant_id, facility_id):
    InventoryService.create_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=None,
        name="Gauze",
        stock=1,
        min_stock_level=10,
    )
    names = [i.name for i in list_low_stock_items(tenant_id=tenant_id, facility_id=facility_id)]
    assert names == ["Gauze"]


def test_deleting_supplier_detaches_items(tenant_id, facility_id):
    supplier = SupplierService.create_supplier(tenant_id=tenant_id, facility_id=facility_id, name="MedSupply Ltd")
    item = InventoryService.create_item(
        tenant_id=tenant_id,
        facility_id=facility_id,
        actor="Test User",
        actor_user_id=None,
        name="Syringe 5ml",
        stock=100,
        category="SUPPLY",
        supplier_id=supplier.id,
    )
    assert item.supplier_id == supplier.id

    detached = SupplierService.delete_supplier(tenant_id=tenant_id, facility_id=facility_id, supplier_id=supplier.id)

    assert detached == 1
    item.refresh_from_db()
    assert item.supplier_id is None
    assert item.stock == 100
