"""
Production order lifecycle over HTTP.

The catalog fixture stocks 500 kg of steel; one bracket needs 2 kg plus 10%
scrap, so an order for 100 brackets issues 220 kg on release.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from erp_api.repositories.production import ProductionOrderRepository
from erp_api.schemas.production import ProductionOrderCreate
from erp_api.services.production import ProductionService


def _due(days: int = 15) -> str:
    return (datetime.now(timezone.utc).date() + timedelta(days=days)).isoformat()


async def _create(client, auth, product_id, quantity=100, role="production_manager", **extra):
    body = {"product_id": str(product_id), "quantity_planned": quantity, "due_date": _due()}
    body.update(extra)
    return await client.post("/api/production", json=body, headers=auth(role))


async def _transition(client, auth, order_id, status, role="production_manager", **extra):
    body = {"status": status}
    body.update(extra)
    return await client.put(f"/api/production/{order_id}/status", json=body, headers=auth(role))


async def _stock(client, auth, item_id) -> float:
    resp = await client.get(f"/api/inventory/{item_id}", headers=auth("manager"))
    return resp.json()["data"]["current_stock"]


async def _ledger(client, auth, item_id):
    resp = await client.get(f"/api/inventory/{item_id}/ledger", headers=auth("manager"))
    return resp.json()["data"]


async def test_create_order_defaults(client, auth, catalog):
    resp = await _create(client, auth, catalog.product_id)
    assert resp.status_code == 201
    order = resp.json()["data"]
    year = datetime.now(timezone.utc).year
    assert order["order_number"] == f"PO-{year}-0001"
    assert order["status"] == "planned"
    assert order["priority"] == "medium"
    assert order["quantity_planned"] == 100
    assert order["quantity_produced"] == 0
    assert order["start_date"] == datetime.now(timezone.utc).date().isoformat()


async def test_order_numbers_are_sequential_and_unique(client, auth, catalog):
    numbers = []
    for _ in range(3):
        resp = await _create(client, auth, catalog.product_id, quantity=1)
        numbers.append(resp.json()["data"]["order_number"])
    year = datetime.now(timezone.utc).year
    assert numbers == [f"PO-{year}-0001", f"PO-{year}-0002", f"PO-{year}-0003"]


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"quantity_planned": 0}, "quantity_planned"),
        ({"quantity_planned": -5}, "quantity_planned"),
        ({"due_date": "2000-01-01"}, "due_date"),
        ({"start_date": _due(30)}, "start_date"),
    ],
)
async def test_create_order_validation(client, auth, catalog, overrides, field):
    resp = await _create(client, auth, catalog.product_id, **overrides)
    assert resp.status_code == 400
    body = resp.json()
    assert body["type"] == "validation_error"
    assert field in {d["field"] for d in body["details"]}


async def test_create_order_for_unknown_product(client, auth, catalog):
    resp = await _create(client, auth, "00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "product_id"


async def test_create_order_requires_planning_role(client, auth, catalog):
    resp = await _create(client, auth, catalog.product_id, role="operator")
    assert resp.status_code == 403
    resp = await _create(client, auth, catalog.product_id, role="admin")
    assert resp.status_code == 201


async def test_order_number_collision_is_retried(client, auth, catalog, monkeypatch):
    await _create(client, auth, catalog.product_id, quantity=1)

    original = ProductionOrderRepository.max_sequence
    calls = {"n": 0}

    async def stale_once(self, year):
        calls["n"] += 1
        if calls["n"] == 1:
            return 0
        return await original(self, year)

    monkeypatch.setattr(ProductionOrderRepository, "max_sequence", stale_once)
    resp = await _create(client, auth, catalog.product_id, quantity=1)
    assert resp.status_code == 201
    assert resp.json()["data"]["order_number"].endswith("-0002")
    assert calls["n"] == 2


async def test_order_number_gives_up_after_retries(client, auth, catalog, monkeypatch):
    await _create(client, auth, catalog.product_id, quantity=1)

    async def always_stale(self, year):
        return 0

    monkeypatch.setattr(ProductionOrderRepository, "max_sequence", always_stale)
    resp = await _create(client, auth, catalog.product_id, quantity=1)
    assert resp.status_code == 409
    assert resp.json()["type"] == "conflict"


async def test_order_numbers_stop_at_four_digit_sequence(client, auth, catalog, monkeypatch):
    async def exhausted(self, year):
        return 9999

    monkeypatch.setattr(ProductionOrderRepository, "max_sequence", exhausted)
    resp = await _create(client, auth, catalog.product_id, quantity=1)
    assert resp.status_code == 409
    assert "exhausted" in resp.json()["error"]

    resp = await client.get("/api/production", headers=auth("manager"))
    assert resp.json()["pagination"]["total"] == 0


async def test_concurrent_creates_get_distinct_numbers(session_factory, catalog):
    async def create():
        async with session_factory() as session:
            order = await ProductionService(session).create_order(
                ProductionOrderCreate(
                    product_id=catalog.product_id,
                    quantity_planned=Decimal("1"),
                    due_date=datetime.now(timezone.utc).date() + timedelta(days=5),
                )
            )
            return order.order_number

    numbers = await asyncio.gather(*[create() for _ in range(5)])
    assert len(set(numbers)) == 5


async def test_release_issues_bom_materials(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]

    resp = await _transition(client, auth, order["id"], "released")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "released"

    assert await _stock(client, auth, catalog.material_id) == 280
    ledger = await _ledger(client, auth, catalog.material_id)
    assert ledger["consistent"] is True
    assert ledger["transaction_count"] == 2

    resp = await client.get(
        "/api/inventory/transactions/history",
        params={"reference_id": order["id"]},
        headers=auth("manager"),
    )
    rows = resp.json()["data"]
    assert len(rows) == 1
    assert rows[0]["transaction_type"] == "issue"
    assert rows[0]["quantity"] == -220
    assert rows[0]["reference_type"] == "production_order"
    assert rows[0]["reference_number"] == order["order_number"]


async def test_release_with_insufficient_stock_changes_nothing(client, auth, catalog):
    # 300 units need 660 kg, only 500 on hand
    order = (await _create(client, auth, catalog.product_id, quantity=300)).json()["data"]

    resp = await _transition(client, auth, order["id"], "released")
    assert resp.status_code == 409
    body = resp.json()
    assert body["type"] == "insufficient_stock"
    shortage = body["details"]["shortages"][0]
    assert shortage["sku"] == "STEEL-2MM"
    assert shortage["available"] == 500
    assert shortage["required"] == 660

    resp = await client.get(f"/api/production/{order['id']}", headers=auth("manager"))
    assert resp.json()["data"]["status"] == "planned"
    assert await _stock(client, auth, catalog.material_id) == 500
    assert (await _ledger(client, auth, catalog.material_id))["transaction_count"] == 1

    history = await client.get(f"/api/production/{order['id']}/history", headers=auth("manager"))
    assert history.json()["data"] == []


async def test_full_lifecycle_receipts_finished_goods(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]
    await _transition(client, auth, order["id"], "released")

    resp = await _transition(client, auth, order["id"], "in_progress", role="operator")
    assert resp.status_code == 200
    assert resp.json()["data"]["actual_start_date"] is not None

    resp = await _transition(client, auth, order["id"], "completed", role="operator", quantity_produced=95, quantity_rejected=5)
    assert resp.status_code == 200
    done = resp.json()["data"]
    assert done["status"] == "completed"
    assert done["quantity_produced"] == 95
    assert done["quantity_rejected"] == 5
    assert done["actual_end_date"] is not None

    assert await _stock(client, auth, catalog.finished_id) == 95
    assert (await _ledger(client, auth, catalog.finished_id))["consistent"] is True

    history = (await client.get(f"/api/production/{order['id']}/history", headers=auth("manager"))).json()["data"]
    assert [(e["from_status"], e["to_status"]) for e in history] == [
        ("planned", "released"),
        ("released", "in_progress"),
        ("in_progress", "completed"),
    ]


async def test_produced_cannot_exceed_planned(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id, quantity=10)).json()["data"]
    await _transition(client, auth, order["id"], "released")
    await _transition(client, auth, order["id"], "in_progress")

    resp = await _transition(client, auth, order["id"], "completed", quantity_produced=11)
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "quantity_produced"

    resp = await client.get(f"/api/production/{order['id']}", headers=auth("manager"))
    assert resp.json()["data"]["status"] == "in_progress"


async def test_cancel_after_release_returns_materials(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]
    await _transition(client, auth, order["id"], "released")
    assert await _stock(client, auth, catalog.material_id) == 280

    resp = await _transition(client, auth, order["id"], "cancelled", notes="customer withdrew")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "cancelled"

    assert await _stock(client, auth, catalog.material_id) == 500
    ledger = await _ledger(client, auth, catalog.material_id)
    assert ledger["consistent"] is True
    assert ledger["transaction_count"] == 3

    history = (await client.get(f"/api/production/{order['id']}/history", headers=auth("manager"))).json()["data"]
    assert history[-1]["notes"] == "customer withdrew"


async def test_cancel_planned_order_posts_nothing(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]
    resp = await _transition(client, auth, order["id"], "cancelled")
    assert resp.status_code == 200
    assert (await _ledger(client, auth, catalog.material_id))["transaction_count"] == 1


@pytest.mark.parametrize(
    "path,target",
    [
        (["released", "in_progress", "completed"], "released"),
        (["cancelled"], "released"),
        ([], "completed"),
        ([], "in_progress"),
    ],
)
async def test_invalid_transitions_are_rejected(client, auth, catalog, path, target):
    order = (await _create(client, auth, catalog.product_id, quantity=1)).json()["data"]
    for status in path:
        extra = {"quantity_produced": 1} if status == "completed" else {}
        assert (await _transition(client, auth, order["id"], status, **extra)).status_code == 200

    resp = await _transition(client, auth, order["id"], target)
    assert resp.status_code == 409
    assert resp.json()["type"] == "invalid_transition"


async def test_transition_of_missing_order(client, auth, catalog):
    resp = await _transition(client, auth, "00000000-0000-0000-0000-000000000000", "released")
    assert resp.status_code == 404
    assert resp.json()["type"] == "not_found"


async def test_transition_role_guard(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id, quantity=1)).json()["data"]
    resp = await _transition(client, auth, order["id"], "released", role="sales_rep")
    assert resp.status_code == 403


async def test_concurrent_releases_of_one_order_issue_materials_once(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]

    responses = await asyncio.gather(*[_transition(client, auth, order["id"], "released") for _ in range(3)])
    assert sorted(r.status_code for r in responses) == [200, 409, 409]
    assert {r.json()["type"] for r in responses if r.status_code == 409} == {"invalid_transition"}

    assert await _stock(client, auth, catalog.material_id) == 280
    resp = await client.get(
        "/api/inventory/transactions/history",
        params={"reference_id": order["id"]},
        headers=auth("manager"),
    )
    assert len(resp.json()["data"]) == 1
    assert (await _ledger(client, auth, catalog.material_id))["consistent"] is True

    history = (await client.get(f"/api/production/{order['id']}/history", headers=auth("manager"))).json()["data"]
    assert len(history) == 1


async def test_update_order_edit_rules(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id, quantity=10)).json()["data"]

    resp = await client.put(
        f"/api/production/{order['id']}",
        json={"quantity_planned": 20, "priority": "high", "notes": "rush"},
        headers=auth("production_manager"),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert (data["quantity_planned"], data["priority"], data["notes"]) == (20, "high", "rush")

    await _transition(client, auth, order["id"], "released")
    resp = await client.put(
        f"/api/production/{order['id']}", json={"quantity_planned": 30}, headers=auth("production_manager")
    )
    assert resp.status_code == 409

    resp = await client.put(
        f"/api/production/{order['id']}", json={"priority": "urgent"}, headers=auth("production_manager")
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["priority"] == "urgent"


async def test_update_order_status_field_runs_transition(client, auth, catalog):
    order = (await _create(client, auth, catalog.product_id)).json()["data"]
    resp = await client.put(
        f"/api/production/{order['id']}", json={"status": "released"}, headers=auth("production_manager")
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "released"
    assert await _stock(client, auth, catalog.material_id) == 280


async def test_status_change_through_update_counts_as_sensitive(client, auth, catalog, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_SENSITIVE", "2")
    orders = [(await _create(client, auth, catalog.product_id, quantity=1)).json()["data"] for _ in range(3)]

    def put(order, body):
        return client.put(f"/api/production/{order['id']}", json=body, headers=auth("production_manager"))

    assert (await put(orders[0], {"status": "cancelled"})).status_code == 200
    assert (await put(orders[1], {"status": "cancelled"})).status_code == 200

    resp = await put(orders[2], {"status": "cancelled"})
    assert resp.status_code == 429
    assert resp.json()["type"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) > 0

    # plain edits are not sensitive operations
    resp = await put(orders[2], {"notes": "still planned"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "planned"

    # the dedicated status route shares the same budget
    assert (await _transition(client, auth, orders[2]["id"], "cancelled")).status_code == 429


async def test_delete_rules(client, auth, catalog):
    planned = (await _create(client, auth, catalog.product_id, quantity=1)).json()["data"]
    released = (await _create(client, auth, catalog.product_id, quantity=1)).json()["data"]
    await _transition(client, auth, released["id"], "released")

    resp = await client.delete(f"/api/production/{released['id']}", headers=auth("manager"))
    assert resp.status_code == 409

    resp = await client.delete(f"/api/production/{planned['id']}", headers=auth("production_manager"))
    assert resp.status_code == 403

    resp = await client.delete(f"/api/production/{planned['id']}", headers=auth("manager"))
    assert resp.status_code == 200
    resp = await client.get(f"/api/production/{planned['id']}", headers=auth("manager"))
    assert resp.status_code == 404


async def test_list_pagination_and_filters(client, auth, catalog):
    for _ in range(12):
        await _create(client, auth, catalog.product_id, quantity=1)

    resp = await client.get("/api/production", headers=auth("operator"))
    body = resp.json()
    assert len(body["data"]) == 10
    assert body["pagination"] == {"total": 12, "page": 1, "limit": 10, "pages": 2}

    resp = await client.get("/api/production", params={"page": 2}, headers=auth("operator"))
    assert len(resp.json()["data"]) == 2

    resp = await client.get("/api/production", params={"limit": 1000}, headers=auth("operator"))
    assert resp.json()["pagination"]["limit"] == 100
    assert len(resp.json()["data"]) == 12

    resp = await client.get("/api/production", params={"status": "released"}, headers=auth("operator"))
    assert resp.json()["pagination"]["total"] == 0

    resp = await client.get("/api/production", params={"page": 0}, headers=auth("operator"))
    assert resp.status_code == 400


async def test_schedule_and_metrics(client, auth, catalog):
    first = (await _create(client, auth, catalog.product_id, quantity=10)).json()["data"]
    await _create(client, auth, catalog.product_id, quantity=5)
    await _transition(client, auth, first["id"], "released")
    await _transition(client, auth, first["id"], "in_progress")
    await _transition(client, auth, first["id"], "completed", quantity_produced=8)

    resp = await client.get("/api/production/schedule/view", headers=auth("operator"))
    assert resp.status_code == 200
    assert [o["status"] for o in resp.json()["data"]] == ["planned"]

    resp = await client.get("/api/production/metrics/dashboard", headers=auth("operator"))
    metrics = resp.json()["data"]
    assert metrics["total_orders"] == 2
    assert metrics["orders_by_status"] == {"completed": 1, "planned": 1}
    assert metrics["production_efficiency"] == 80.0
