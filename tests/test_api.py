import uuid
from decimal import Decimal


async def _create(client, **kw):
    body = {
        "material_name": "A4 Bond 80gsm",
        "category": "paper",
        "paper_size": "A4",
        "paper_type": "bond",
        "grammage": 80,
        "sheets_per_unit": 500,
        "opening_reams": 2,
        "opening_loose_sheets": 3,
        "unit_cost": "0.02",
        "threshold_sheets": 1000,
        "reorder_quantity": 5000,
    }
    body.update(kw)
    resp = await client.post("/materials", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_create_and_get_material(client):
    m = await _create(client)
    assert m["current_stock_sheets"] == 1003
    assert m["display_stock"] == {"reams": 2, "sheets": 3, "label": "2 reams, 3 sheets"}
    # 1003 / 1000 rounds to 100%, still LOW
    assert m["status"] == "LOW"
    assert m["percentage"] == 100

    resp = await client.get(f"/materials/{m['id']}")
    assert resp.status_code == 200
    assert resp.json()["material_name"] == "A4 Bond 80gsm"

    resp = await client.get(f"/materials/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json()["detail"]["message"] == "material not found"


async def test_create_rejects_both_quantity_forms(client):
    resp = await client.post(
        "/materials",
        json={"material_name": "X", "category": "paper", "opening_stock_sheets": 10, "opening_reams": 1},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "opening_stock_sheets"


async def test_purchase_in_reams_and_usage(client):
    m = await _create(client, opening_reams=0, opening_loose_sheets=0, unit_cost="0")

    resp = await client.post(
        f"/materials/{m['id']}/adjustments",
        json={"type": "purchase", "reams": 2, "price_per_ream": "10.00"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["material"]["current_stock_sheets"] == 1000
    assert Decimal(str(body["material"]["unit_cost"])) == Decimal("0.02")
    assert Decimal(str(body["movement"]["total_cost"])) == Decimal("20")
    assert body["previous_status"] == "CRITICAL"
    assert body["status"] == "LOW"
    assert body["low_stock_crossed"] is False

    resp = await client.post(f"/materials/{m['id']}/adjustments", json={"type": "usage", "quantity_sheets": 1200})
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["error"] == "InsufficientStockError"
    assert detail["available_sheets"] == 1000
    assert detail["requested_sheets"] == 1200

    resp = await client.post(
        f"/materials/{m['id']}/adjustments",
        json={"type": "usage", "quantity_sheets": 600, "job_id": str(uuid.uuid4())},
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "CRITICAL"
    assert resp.json()["low_stock_crossed"] is True

    resp = await client.get(f"/materials/{m['id']}/movements")
    assert [r["quantity_sheets"] for r in resp.json()] == [-600, 1000]


async def test_purchase_total_keeps_sub_cent_precision(client):
    m = await _create(client, opening_reams=0, opening_loose_sheets=0, unit_cost="0")
    resp = await client.post(
        f"/materials/{m['id']}/adjustments",
        json={"type": "purchase", "quantity_sheets": 3, "purchase_total_cost": "0.005"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    # 0.005 / 3, not 0.01 / 3
    assert Decimal(str(body["material"]["unit_cost"])) == Decimal("0.001667")
    assert Decimal(str(body["movement"]["total_cost"])) == Decimal("0.005")


async def test_adjustment_validation_errors(client):
    m = await _create(client)
    url = f"/materials/{m['id']}/adjustments"

    resp = await client.post(url, json={"type": "usage", "quantity_sheets": 0})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "InvalidQuantityError"

    resp = await client.post(url, json={"type": "purchase", "quantity_sheets": 10})
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "MissingCostContextError"

    resp = await client.post(url, json={"type": "purchase", "reams": 2, "price_per_ream": "10", "purchase_total_cost": "25"})
    assert resp.status_code == 400

    resp = await client.post(url, json={"type": "usage", "quantity_sheets": 5, "purchase_total_cost": "1"})
    assert resp.status_code == 400

    resp = await client.post(url, json={"type": "adjustment", "quantity_sheets": 5, "direction": "in"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "reason"


async def test_patch_refuses_stock_fields(client):
    m = await _create(client)
    resp = await client.patch(f"/materials/{m['id']}", json={"current_stock_sheets": 99999})
    assert resp.status_code == 400
    assert resp.json()["detail"]["fields"] == ["current_stock_sheets"]

    resp = await client.patch(f"/materials/{m['id']}", json={"threshold_sheets": 1500, "attributes": {"fsc": True}})
    assert resp.status_code == 200
    body = resp.json()
    assert body["threshold_sheets"] == 1500
    assert body["status"] == "LOW"
    assert body["attributes"] == {"fsc": True}


async def test_count_low_stock_and_categories(client):
    m = await _create(client)
    resp = await client.post(f"/materials/{m['id']}/count", json={"counted_reams": 1, "reason": "stocktake"})
    assert resp.status_code == 200
    assert resp.json()["material"]["current_stock_sheets"] == 500
    assert resp.json()["movement"]["sub_type"] == "physical_count"

    resp = await client.get("/materials/low-stock")
    assert resp.status_code == 200
    rows = resp.json()
    assert [r["material_id"] for r in rows] == [m["id"]]
    assert rows[0]["status"] == "CRITICAL"
    assert rows[0]["reorder_quantity"] == 5000

    resp = await client.get("/materials/categories")
    assert resp.json() == ["paper"]

    resp = await client.get(f"/materials/{m['id']}/reconciliation")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert resp.json()["movement_total_sheets"] == -503


async def test_attribute_templates(client):
    resp = await client.get("/materials/attribute-templates")
    assert resp.status_code == 200
    templates = resp.json()["templates"]
    assert "ink" in templates
    assert [f["name"] for f in templates["paper"]] == ["paper_size", "paper_type", "grammage", "sheets_per_unit"]

    resp = await client.get("/materials/attribute-templates", params={"category": "Ink"})
    assert list(resp.json()["templates"]) == ["ink"]


async def test_delete_is_soft(client):
    m = await _create(client)
    resp = await client.delete(f"/materials/{m['id']}")
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert (await client.get("/materials")).json() == []
    assert len((await client.get("/materials", params={"include_inactive": True})).json()) == 1

    resp = await client.post(f"/materials/{m['id']}/adjustments", json={"type": "usage", "quantity_sheets": 1})
    assert resp.status_code == 400


async def test_convert(client):
    resp = await client.post("/materials/convert", json={"sheets_per_unit": 500, "total_sheets": 1250})
    assert resp.json()["reams"] == 2
    assert resp.json()["sheets"] == 250
    assert resp.json()["short_label"] == "2r 250s"

    resp = await client.post("/materials/convert", json={"sheets_per_unit": 250, "reams": 3, "sheets": 10})
    assert resp.json()["total_sheets"] == 760

    resp = await client.post("/materials/convert", json={"sheets_per_unit": 0, "total_sheets": 5})
    assert resp.status_code == 400


async def test_reports(client):
    m = await _create(client, unit_cost="0.05")
    await client.post(f"/materials/{m['id']}/adjustments", json={"type": "usage", "quantity_sheets": 100})
    await client.post(
        f"/materials/{m['id']}/adjustments", json={"type": "waste", "quantity_sheets": 20, "sub_type": "jam"}
    )

    resp = await client.get("/reports/usage-trends", params={"period": "day"})
    assert resp.status_code == 200
    assert resp.json()["total_sheets"] == 100
    assert Decimal(str(resp.json()["total_cost"])) == Decimal("5")

    resp = await client.get("/reports/waste-costs")
    assert resp.json()["by_reason"][0]["reason"] == "jam"

    resp = await client.get("/reports/cost-analysis", params={"days": 7})
    body = resp.json()
    assert Decimal(str(body["total_inventory_value"])) == Decimal("44.15")
    assert Decimal(str(body["waste_costs"])) == Decimal("1")

    resp = await client.get("/reports/usage-trends", params={"from_date": "2026-02-02", "to_date": "2026-02-01"})
    assert resp.status_code == 400


async def test_job_materials_endpoints(client):
    job_id = uuid.uuid4()
    resp = await client.put(
        f"/jobs/{job_id}/materials",
        json={
            "edit_reason": "initial estimate",
            "lines": [{"material_name": "A4 Bond", "quantity": "1000", "unit_cost": "0.02"}],
        },
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert Decimal(str(body["lines"][0]["total_cost"])) == Decimal("20")
    assert body["edits"][0]["change_type"] == "ADDED"

    resp = await client.put(f"/jobs/{job_id}/materials", json={"edit_reason": "oops", "lines": []})
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "edit_reason"

    resp = await client.post(
        f"/jobs/{job_id}/material-edits",
        json={
            "edit_reason": "price update",
            "previous": [{"material_name": "Ink", "quantity": "1", "unit_cost": "30"}],
            "new": [{"material_name": "Ink", "quantity": "1", "unit_cost": "32", "total_cost": "32"}],
        },
    )
    assert resp.status_code == 201
    assert resp.json()[0]["change_type"] == "UPDATED"

    resp = await client.get(f"/jobs/{job_id}/material-edits")
    assert len(resp.json()) == 2
    resp = await client.get(f"/jobs/{job_id}/materials")
    assert len(resp.json()) == 1
