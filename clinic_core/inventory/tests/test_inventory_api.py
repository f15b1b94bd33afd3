import pytest

from clinic_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_create_list_and_restock(api_client, tenant_id, facility_id):
    h = scoped(tenant_id, facility_id)

    create = api_client.post(
        "/api/v1/inventory/items/",
        {"name": "Ibuprofen 400mg", "stock": 10, "min_stock_level": 5, "unit": "tabs", "price": "15.00"},
        format="json",
        **h,
    )
    assert create.status_code == 201, create.data
    item_id = create.data["id"]
    assert create.data["stock"] == 10
    assert create.data["version"] == 1

    r = api_client.post(f"/api/v1/inventory/items/{item_id}/restock/", {"quantity": 5}, format="json", **h)
    assert r.status_code == 200, r.data
    assert r.data["new_stock"] == 15
    assert r.data["log"]["action"] == "RESTOCKED"

    lst = api_client.get("/api/v1/inventory/items/", {"q": "ibu"}, **h)
    assert lst.status_code == 200
    assert [i["name"] for i in lst.data["results"]] == ["Ibuprofen 400mg"]


def test_adjust_endpoint_clamps(api_client, tenant_id, facility_id, item):
    r = api_client.post(
        f"/api/v1/inventory/items/{item.id}/adjust/",
        {"delta": -9, "reason": "Expired batch"},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert r.status_code == 200, r.data
    assert r.data["new_stock"] == 0
    assert r.data["quantity_change"] == -5


def test_patch_with_stale_version_is_409(api_client, tenant_id, facility_id, item):
    r = api_client.patch(
        f"/api/v1/inventory/items/{item.id}/",
        {"name": "Amoxil", "expected_version": 99},
        format="json",
        **scoped(tenant_id, facility_id),
    )
    assert r.status_code == 409
    assert r.data["error"]["code"] == "stale_version"


def test_logs_filter_by_action(api_client, tenant_id, facility_id, item):
    h = scoped(tenant_id, facility_id)
    api_client.post(f"/api/v1/inventory/items/{item.id}/restock/", {"quantity": 1}, format="json", **h)

    r = api_client.get("/api/v1/inventory/logs/", {"item": str(item.id), "action": "RESTOCKED"}, **h)
    assert r.status_code == 200, r.data
    assert r.data["count"] == 1
    assert r.data["results"][0]["quantity_change"] == 1


def test_low_stock_endpoint(api_client, tenant_id, facility_id, item):
    h = scoped(tenant_id, facility_id)
    api_client.post(
        f"/api/v1/inventory/items/{item.id}/adjust/",
        {"delta": -4, "reason": "count"},
        format="json",
        **h,
    )
    r = api_client.get("/api/v1/inventory/items/low-stock/", **h)
    assert r.status_code == 200
    assert [i["id"] for i in r.data] == [str(item.id)]
    assert r.data[0]["is_low_stock"] is True


def test_nurse_cannot_edit_inventory(client_for, tenant_id, facility_id, item):
    nurse = client_for("NURSE")
    h = scoped(tenant_id, facility_id)

    assert nurse.get("/api/v1/inventory/items/", **h).status_code == 200
    r = nurse.post(f"/api/v1/inventory/items/{item.id}/restock/", {"quantity": 1}, format="json", **h)
    assert r.status_code == 403


def test_delete_item_then_supplier_endpoints(api_client, tenant_id, facility_id, item):
    h = scoped(tenant_id, facility_id)

    r = api_client.delete(f"/api/v1/inventory/items/{item.id}/", **h)
    assert r.status_code == 204

    s = api_client.post("/api/v1/inventory/suppliers/", {"name": "Acme Pharma"}, format="json", **h)
    assert s.status_code == 201, s.data
    assert api_client.get("/api/v1/inventory/suppliers/", **h).data[0]["name"] == "Acme Pharma"
