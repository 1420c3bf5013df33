"""
Inventory ledger behaviour: stock never goes negative, the cached stock always
equals the signed ledger sum, and concurrent outflows are serialized.
"""
import asyncio
from decimal import Decimal

import pytest

from erp_api.schemas.inventory import InventoryItemCreate, InventoryTransactionCreate
from erp_api.services.inventory import InventoryService


async def _create_item(client, auth, sku="BOLT-M8", **extra):
    body = {"sku": sku, "name": f"Item {sku}", "unit_cost": 0.5}
    body.update(extra)
    return await client.post("/api/inventory", json=body, headers=auth("warehouse_manager"))


async def _post(client, auth, item_id, txn_type, quantity, role="warehouse_manager", **extra):
    body = {"item_id": str(item_id), "transaction_type": txn_type, "quantity": quantity}
    body.update(extra)
    return await client.post("/api/inventory/transactions", json=body, headers=auth(role))


async def _item(client, auth, item_id):
    return (await client.get(f"/api/inventory/{item_id}", headers=auth("operator"))).json()["data"]


async def _reconcile(client, auth, item_id):
    return (await client.get(f"/api/inventory/{item_id}/ledger", headers=auth("operator"))).json()["data"]


async def test_opening_stock_is_booked_as_adjustment(client, auth):
    resp = await _create_item(client, auth, opening_stock=40, minimum_stock=10)
    assert resp.status_code == 201
    item = resp.json()["data"]
    assert item["current_stock"] == 40
    assert item["low_stock"] is False

    resp = await client.get(
        "/api/inventory/transactions/history", params={"item_id": item["id"]}, headers=auth("operator")
    )
    rows = resp.json()["data"]
    assert [(r["transaction_type"], r["quantity"]) for r in rows] == [("adjustment", 40)]
    assert (await _reconcile(client, auth, item["id"]))["consistent"] is True


async def test_duplicate_sku_conflicts(client, auth):
    await _create_item(client, auth)
    resp = await _create_item(client, auth)
    assert resp.status_code == 409


async def test_receipt_and_issue_move_stock(client, auth):
    item = (await _create_item(client, auth)).json()["data"]

    resp = await _post(client, auth, item["id"], "receipt", 25, unit_cost=0.6, reference_number="GRN-7")
    assert resp.status_code == 201
    txn = resp.json()["data"]
    assert txn["quantity"] == 25
    assert txn["unit_cost"] == 0.6
    assert txn["reference_type"] == "manual"

    resp = await _post(client, auth, item["id"], "issue", 10, role="operator")
    assert resp.status_code == 201
    assert resp.json()["data"]["quantity"] == -10

    assert (await _item(client, auth, item["id"]))["current_stock"] == 15
    ledger = await _reconcile(client, auth, item["id"])
    assert ledger == {
        "item_id": item["id"],
        "current_stock": 15,
        "ledger_balance": 15,
        "transaction_count": 2,
        "consistent": True,
    }


async def test_issue_beyond_stock_is_rejected(client, auth):
    item = (await _create_item(client, auth, opening_stock=5)).json()["data"]

    resp = await _post(client, auth, item["id"], "issue", 6)
    assert resp.status_code == 409
    body = resp.json()
    assert body["type"] == "insufficient_stock"
    assert body["details"]["shortages"][0]["available"] == 5
    assert body["details"]["shortages"][0]["required"] == 6

    assert (await _item(client, auth, item["id"]))["current_stock"] == 5
    assert (await _reconcile(client, auth, item["id"]))["transaction_count"] == 1


async def test_adjustments_are_signed(client, auth):
    item = (await _create_item(client, auth, opening_stock=10)).json()["data"]

    assert (await _post(client, auth, item["id"], "adjustment", -4)).status_code == 201
    assert (await _item(client, auth, item["id"]))["current_stock"] == 6

    resp = await _post(client, auth, item["id"], "adjustment", -7)
    assert resp.status_code == 409
    assert (await _item(client, auth, item["id"]))["current_stock"] == 6


async def test_transaction_quantity_validation(client, auth):
    item = (await _create_item(client, auth)).json()["data"]
    for txn_type, qty in (("receipt", 0), ("issue", -3), ("adjustment", 0)):
        resp = await _post(client, auth, item["id"], txn_type, qty)
        assert resp.status_code == 400, (txn_type, qty)
        assert resp.json()["type"] == "validation_error"

    resp = await _post(client, auth, item["id"], "teleport", 1)
    assert resp.status_code == 400


async def test_quantities_finer_than_storage_scale_are_rejected(client, auth):
    resp = await _create_item(client, auth, opening_stock="0.00001")
    assert resp.status_code == 400
    assert "opening_stock" in {d["field"] for d in resp.json()["details"]}

    item = (await _create_item(client, auth, opening_stock=500)).json()["data"]
    for _ in range(3):
        resp = await _post(client, auth, item["id"], "issue", "0.00005")
        assert resp.status_code == 400
        assert "quantity" in {d["field"] for d in resp.json()["details"]}

    assert (await _post(client, auth, item["id"], "issue", "0.0001")).status_code == 201
    ledger = await _reconcile(client, auth, item["id"])
    assert ledger["consistent"] is True
    assert ledger["current_stock"] == 499.9999
    assert ledger["transaction_count"] == 2


async def test_service_postings_round_once_for_stock_and_ledger(session_factory):
    async with session_factory() as session:
        item = await InventoryService(session).create_item(
            InventoryItemCreate(sku="WIRE-1MM", name="Wire", opening_stock=Decimal("500"))
        )

    async with session_factory() as session:
        service = InventoryService(session)
        for _ in range(3):
            txn, _item_row = await service.post(item_id=item.id, transaction_type="issue", quantity=Decimal("0.00005"))
            assert txn.quantity == Decimal("-0.0001")
        await session.commit()

    async with session_factory() as session:
        result = await InventoryService(session).reconcile(item.id)
    assert result.consistent
    assert result.current_stock == 499.9997
    assert result.ledger_balance == pytest.approx(499.9997)
    assert result.transaction_count == 4


async def test_transaction_for_unknown_item(client, auth):
    resp = await _post(client, auth, "00000000-0000-0000-0000-000000000000", "receipt", 1)
    assert resp.status_code == 404


async def test_posting_requires_stock_role(client, auth):
    item = (await _create_item(client, auth)).json()["data"]
    resp = await _post(client, auth, item["id"], "receipt", 1, role="sales_rep")
    assert resp.status_code == 403


async def test_concurrent_issues_never_oversell(client, auth):
    item = (await _create_item(client, auth, opening_stock=100)).json()["data"]

    responses = await asyncio.gather(*[_post(client, auth, item["id"], "issue", 30) for _ in range(5)])
    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 201, 201, 409, 409]

    assert (await _item(client, auth, item["id"]))["current_stock"] == 10
    ledger = await _reconcile(client, auth, item["id"])
    assert ledger["consistent"] is True
    assert ledger["transaction_count"] == 4


async def test_concurrent_service_postings_keep_ledger_consistent(session_factory):
    async with session_factory() as session:
        item = await InventoryService(session).create_item(
            InventoryItemCreate(sku="NUT-M8", name="Nut", opening_stock=Decimal("50"))
        )

    async def move(txn_type, qty):
        async with session_factory() as session:
            await InventoryService(session).apply_transaction(
                InventoryTransactionCreate(item_id=item.id, transaction_type=txn_type, quantity=Decimal(qty))
            )

    await asyncio.gather(
        move("receipt", "7.5"),
        move("issue", "12.25"),
        move("receipt", "3"),
        move("issue", "20"),
        move("adjustment", "-0.25"),
    )

    async with session_factory() as session:
        result = await InventoryService(session).reconcile(item.id)
    assert result.consistent
    assert result.current_stock == 28.0
    assert result.transaction_count == 6


async def test_low_stock_listing_and_flag(client, auth):
    low = (await _create_item(client, auth, sku="LOW", opening_stock=20, minimum_stock=15)).json()["data"]
    await _create_item(client, auth, sku="OK", opening_stock=100, minimum_stock=15)

    await _post(client, auth, low["id"], "issue", 5)

    resp = await client.get("/api/inventory/stock/low-stock", headers=auth("operator"))
    data = resp.json()["data"]
    assert [i["sku"] for i in data] == ["LOW"]
    assert data[0]["low_stock"] is True

    levels = (await client.get("/api/inventory/stock/levels", headers=auth("operator"))).json()["data"]
    assert {lv["sku"]: lv["low_stock"] for lv in levels} == {"LOW": True, "OK": False}


async def test_valuation(client, auth):
    await _create_item(client, auth, sku="A", opening_stock=10, unit_cost=2.5)
    await _create_item(client, auth, sku="B", opening_stock=4, unit_cost=1.25)

    resp = await client.get("/api/inventory/valuation/current", headers=auth("manager"))
    body = resp.json()["data"]
    assert body["total_inventory_value"] == 30.0
    assert {line["sku"]: line["total_value"] for line in body["items"]} == {"A": 25.0, "B": 5.0}


async def test_update_item_cannot_touch_stock(client, auth):
    item = (await _create_item(client, auth, opening_stock=3)).json()["data"]
    resp = await client.put(
        f"/api/inventory/{item['id']}",
        json={"name": "Renamed", "minimum_stock": 5, "current_stock": 999},
        headers=auth("warehouse_manager"),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Renamed"
    assert data["current_stock"] == 3
    assert data["low_stock"] is True


async def test_delete_item_rules(client, auth, catalog):
    fresh = (await _create_item(client, auth, sku="UNUSED")).json()["data"]
    moved = (await _create_item(client, auth, sku="MOVED", opening_stock=1)).json()["data"]
    spare = (await _create_item(client, auth, sku="SPARE")).json()["data"]
    await client.put(
        f"/api/catalog/products/{catalog.product_id}/bom",
        json={"items": [{"material_id": spare["id"], "quantity_required": 1}]},
        headers=auth("manager"),
    )

    resp = await client.delete(f"/api/inventory/{moved['id']}", headers=auth("manager"))
    assert resp.status_code == 409
    assert resp.json()["error"] == "Inventory item has stock transactions and cannot be deleted"

    resp = await client.delete(f"/api/inventory/{spare['id']}", headers=auth("manager"))
    assert resp.status_code == 409
    assert resp.json()["error"] == "Inventory item is used in a bill of materials and cannot be deleted"

    resp = await client.delete(f"/api/inventory/{fresh['id']}", headers=auth("warehouse_manager"))
    assert resp.status_code == 403

    resp = await client.delete(f"/api/inventory/{fresh['id']}", headers=auth("manager"))
    assert resp.status_code == 200
    assert (await client.get(f"/api/inventory/{fresh['id']}", headers=auth("manager"))).status_code == 404
