"""Categories, products and bill-of-materials versioning."""


async def test_category_and_product_crud(client, auth):
    resp = await client.post("/api/catalog/categories", json={"name": "Brackets"}, headers=auth("manager"))
    assert resp.status_code == 201
    category_id = resp.json()["data"]["id"]

    resp = await client.post("/api/catalog/categories", json={"name": "Brackets"}, headers=auth("manager"))
    assert resp.status_code == 409

    resp = await client.post(
        "/api/catalog/products",
        json={"sku": "SHELF-1", "name": "Shelf", "category_id": category_id, "selling_price": 12.5},
        headers=auth("production_manager"),
    )
    assert resp.status_code == 201
    product = resp.json()["data"]
    assert product["product_type"] == "finished_good"
    assert product["inventory_item_id"] is None

    resp = await client.put(
        f"/api/catalog/products/{product['id']}", json={"name": "Wall shelf"}, headers=auth("manager")
    )
    assert resp.json()["data"]["name"] == "Wall shelf"

    resp = await client.get("/api/catalog/products", params={"search": "shelf"}, headers=auth("operator"))
    assert resp.json()["pagination"]["total"] == 1


async def test_product_validation(client, auth, catalog):
    resp = await client.post(
        "/api/catalog/products", json={"sku": "BRACKET", "name": "Again"}, headers=auth("manager")
    )
    assert resp.status_code == 409

    resp = await client.post(
        "/api/catalog/products",
        json={"sku": "GHOST", "name": "Ghost", "inventory_item_id": "00000000-0000-0000-0000-000000000000"},
        headers=auth("manager"),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "inventory_item_id"

    resp = await client.post("/api/catalog/products", json={"sku": "X", "name": "X"}, headers=auth("operator"))
    assert resp.status_code == 403


async def test_get_active_bom(client, auth, catalog):
    resp = await client.get(f"/api/catalog/products/{catalog.product_id}/bom", headers=auth("operator"))
    assert resp.status_code == 200
    bom = resp.json()["data"]
    assert bom["version"] == "1.0"
    assert bom["is_active"] is True
    assert len(bom["items"]) == 1
    line = bom["items"][0]
    assert line["material_id"] == str(catalog.material_id)
    assert line["quantity_required"] == 2
    assert line["scrap_percentage"] == 10


async def test_replace_bom_creates_next_version(client, auth, catalog):
    resp = await client.put(
        f"/api/catalog/products/{catalog.product_id}/bom",
        json={
            "description": "Thinner sheet",
            "items": [{"material_id": str(catalog.material_id), "quantity_required": 1.5, "unit_of_measure": "kg"}],
        },
        headers=auth("production_manager"),
    )
    assert resp.status_code == 200
    bom = resp.json()["data"]
    assert bom["version"] == "2.0"
    assert bom["items"][0]["quantity_required"] == 1.5

    resp = await client.get(f"/api/catalog/products/{catalog.product_id}/bom", headers=auth("operator"))
    assert resp.json()["data"]["version"] == "2.0"

    resp = await client.put(
        f"/api/catalog/products/{catalog.product_id}/bom",
        json={"version": "2.0", "items": [{"material_id": str(catalog.material_id), "quantity_required": 1}]},
        headers=auth("production_manager"),
    )
    assert resp.status_code == 409


async def test_replace_bom_validation(client, auth, catalog):
    url = f"/api/catalog/products/{catalog.product_id}/bom"

    resp = await client.put(url, json={"items": []}, headers=auth("manager"))
    assert resp.status_code == 400

    resp = await client.put(
        url,
        json={"items": [{"material_id": str(catalog.material_id), "quantity_required": 1, "scrap_percentage": 100}]},
        headers=auth("manager"),
    )
    assert resp.status_code == 400

    resp = await client.put(
        url,
        json={"items": [{"material_id": "00000000-0000-0000-0000-000000000000", "quantity_required": 1}]},
        headers=auth("manager"),
    )
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "items.material_id"


async def test_bom_of_unknown_product(client, auth, catalog):
    resp = await client.get(
        "/api/catalog/products/00000000-0000-0000-0000-000000000000/bom", headers=auth("operator")
    )
    assert resp.status_code == 404
