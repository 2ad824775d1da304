"""HTTP surface: routes, status codes and the error envelope."""

from uuid import uuid4

DAY = "2026-03-14"


def _production_body(stores, products, **overrides):
    body = {
        "date": DAY,
        "output_store_id": str(stores["floor"].id),
        "remarks": "api run",
        "material_out": [
            {"store_id": str(stores["main"].id), "product_id": str(products["reel"].id), "quantity_packets": "10"}
        ],
        "items": [{"product_id": str(products["board"].id), "quantity_packets": "3", "rate": "40"}],
    }
    body.update(overrides)
    return body


async def _store_in(client, stores, products, quantity="20", product="reel", lot=None):
    body = {
        "date": DAY,
        "store_id": str(stores["main"].id),
        "product_id": str(products[product].id),
        "quantity_packets": quantity,
    }
    if lot:
        body["lot_no"] = lot
    return await client.post("/api/v1/stock", json=body)


class TestSystem:
    async def test_health(self, client):
        res = await client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.json()["message"] == "Healthy"

    async def test_correlation_id_is_echoed(self, client):
        res = await client.get("/api/v1/health", headers={"X-Correlation-ID": "abc-123"})
        assert res.headers["X-Correlation-ID"] == "abc-123"

    async def test_websocket_info(self, client):
        res = await client.get("/api/v1/websocket-info")
        assert res.json()["endpoints"][0]["path"] == "/ws/stock"


class TestStockRoutes:
    async def test_store_in_and_preview(self, client, stores, products):
        res = await _store_in(client, stores, products, lot="R-1")
        assert res.status_code == 201
        body = res.json()
        assert len(body["transaction_ids"]) == 1
        assert body["balances"][0]["quantity_packets"] == 20.0
        assert body["balances"][0]["lot_no"] == "R-1"

        res = await client.get("/api/v1/stock/store-stock", params={"store": str(stores["main"].id)})
        assert res.status_code == 200
        [row] = res.json()
        assert row["weight_kg"] == 1440.0

    async def test_balance_of_unwritten_key_is_zero(self, client, stores, products):
        res = await client.get(
            "/api/v1/stock/balance",
            params={"store": str(stores["main"].id), "product": str(products["reel"].id)},
        )
        assert res.status_code == 200
        assert res.json()["quantity_packets"] == 0.0
        assert res.json()["lot_no"] is None

    async def test_store_stock_for_unknown_store(self, client):
        res = await client.get("/api/v1/stock/store-stock", params={"store": str(uuid4())})
        assert res.status_code == 404
        assert res.json()["error"]["type"] == "REFERENCE_ERROR"

    async def test_unit_weight_preview(self, client, products):
        res = await client.get(
            "/api/v1/stock/unit-weight", params={"product_id": str(products["board"].id), "quantity": "3"}
        )
        body = res.json()
        assert body["row_weight"] == 3.871
        assert round(body["unit_weight"], 4) == 1.2903

    async def test_missing_field_is_a_400_envelope(self, client, stores, products):
        res = await client.post(
            "/api/v1/stock",
            json={"store_id": str(stores["main"].id), "product_id": str(products["reel"].id), "quantity_packets": "1"},
            headers={"X-Request-ID": "req-7"},
        )
        assert res.status_code == 400
        body = res.json()
        assert body["error"]["type"] == "VALIDATION_ERROR"
        assert body["error"]["details"] == {"field": "date"}
        assert body["correlation_id"] == "req-7"
        assert body["path"] == "/api/v1/stock"

    async def test_malformed_body_is_a_422_envelope(self, client):
        res = await client.post("/api/v1/stock", json={"quantity_packets": "-1"})
        assert res.status_code == 422
        assert res.json()["error"]["type"] == "validation_error"

    async def test_transactions_are_paged_with_a_cursor(self, client, stores, products):
        for _ in range(3):
            await _store_in(client, stores, products, quantity="1")

        res = await client.get("/api/v1/stock/transactions", params={"limit": 2})
        page = res.json()
        assert len(page["items"]) == 2
        assert page["next_cursor"]

        res = await client.get("/api/v1/stock/transactions", params={"limit": 2, "cursor": page["next_cursor"]})
        rest = res.json()
        assert len(rest["items"]) == 1
        assert rest["next_cursor"] is None
        ids = [i["id"] for i in page["items"] + rest["items"]]
        assert ids == sorted(ids)

        res = await client.get("/api/v1/stock/transactions", params={"from": "2026-03-15"})
        assert res.json()["items"] == []

    async def test_bad_cursor(self, client):
        res = await client.get("/api/v1/stock/transactions", params={"cursor": "not-a-cursor"})
        assert res.status_code == 400
        assert res.json()["error"]["details"] == {"field": "cursor"}

    async def test_document_lifecycle(self, client, stores, products):
        res = await client.post(
            "/api/v1/stock/documents",
            json={
                "kind": "PurchaseReceipt",
                "date": DAY,
                "lines": [
                    {
                        "store_id": str(stores["main"].id),
                        "product_id": str(products["reel"].id),
                        "quantity_packets": "10",
                        "rate": "55",
                    }
                ],
            },
        )
        assert res.status_code == 201
        created = res.json()
        assert created["source_document"] == "PI-000001"
        document_id = created["document"]["id"]

        res = await client.get(f"/api/v1/stock/documents/{document_id}")
        assert res.json()["kind"] == "PurchaseReceipt"

        res = await client.delete(f"/api/v1/stock/documents/{document_id}")
        assert res.status_code == 200
        assert res.json()["document"]["status"] == "cancelled"
        assert res.json()["balances"][0]["quantity_packets"] == 0.0

        res = await client.get(f"/api/v1/stock/documents/{uuid4()}")
        assert res.status_code == 404
        assert res.json()["error"]["type"] == "DOCUMENT_NOT_FOUND"

    async def test_reconciliation(self, client, stores, products):
        await _store_in(client, stores, products)
        res = await client.get("/api/v1/stock/reconciliation")
        assert res.status_code == 200
        assert res.json()["consistent"] is True
        assert res.json()["checked_keys"] == 1


class TestProductionRoutes:
    async def test_create_edit_delete(self, client, stores, products):
        await _store_in(client, stores, products)

        res = await client.post("/api/v1/production", json=_production_body(stores, products))
        assert res.status_code == 201
        created = res.json()
        assert created["production_number"] == "PR-000001"
        run_id = created["production"]["id"]
        balances = {(b["store_id"], b["product_id"]): b for b in created["resulting_balances"]}
        assert balances[(str(stores["main"].id), str(products["reel"].id))]["quantity_packets"] == 10.0

        res = await client.put(
            f"/api/v1/production/{run_id}", json=_production_body(stores, products, remarks="edited")
        )
        assert res.status_code == 200
        assert res.json()["production"]["remarks"] == "edited"

        res = await client.get(f"/api/v1/production/{run_id}")
        assert res.json()["remarks"] == "edited"

        res = await client.delete(f"/api/v1/production/{run_id}")
        assert res.status_code == 200
        assert res.json()["production"]["status"] == "cancelled"

        res = await client.get("/api/v1/production")
        assert res.json()["total"] == 0
        res = await client.get("/api/v1/production", params={"include_cancelled": "true"})
        assert res.json()["total"] == 1

    async def test_unknown_product_is_a_404_and_nothing_is_written(self, client, stores, products):
        body = _production_body(stores, products)
        body["items"][0]["product_id"] = str(uuid4())
        res = await client.post("/api/v1/production", json=body)
        assert res.status_code == 404
        assert res.json()["error"]["details"]["entity"] == "product"

        res = await client.get("/api/v1/stock/transactions")
        assert res.json()["items"] == []

    async def test_duplicate_number_is_a_409(self, client, stores, products):
        body = _production_body(stores, products, production_number="PR-9")
        assert (await client.post("/api/v1/production", json=body)).status_code == 201
        res = await client.post("/api/v1/production", json=body)
        assert res.status_code == 409
        assert res.json()["error"]["type"] == "DUPLICATE_ERROR"

    async def test_unknown_run(self, client):
        res = await client.get(f"/api/v1/production/{uuid4()}")
        assert res.status_code == 404
        assert res.json()["error"]["type"] == "PRODUCTION_NOT_FOUND"


class TestReportRoutes:
    async def test_inventory_valuation(self, client, stores, products):
        await client.post(
            "/api/v1/stock/documents",
            json={
                "kind": "PurchaseReceipt",
                "date": DAY,
                "lines": [
                    {
                        "store_id": str(stores["main"].id),
                        "product_id": str(products["reel"].id),
                        "quantity_packets": "10",
                        "rate": "55",
                    }
                ],
            },
        )
        res = await client.get(
            "/api/v1/reports/inventory-valuation",
            params={"cost": "wac", "basis": "Weight", "page": 1, "limit": 10, "to": DAY},
        )
        assert res.status_code == 200
        body = res.json()
        assert body["cost"] == "wac"
        [row] = body["rows"]
        assert row["unit_cost"] == 55.0
        assert row["total_value"] == 39600.0
        assert body["totals"]["total_value"] == 39600.0

        res = await client.get("/api/v1/reports/inventory-valuation/totals", params={"basis": "Weight"})
        assert res.json()["total_value"] == 39600.0

    async def test_invalid_cost_mode(self, client):
        res = await client.get("/api/v1/reports/inventory-valuation", params={"cost": "fifo"})
        assert res.status_code == 422

    async def test_limit_above_maximum(self, client):
        res = await client.get("/api/v1/reports/inventory-valuation", params={"limit": 100000})
        assert res.status_code == 400
        assert res.json()["error"]["details"] == {"field": "limit"}
