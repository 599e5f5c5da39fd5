"""
Clutch Backend — Inventory Tests
==================================

What:  Products and parts: stock adjustment and catalogue listings.

What we test:
    ✅ add / subtract stock, INSUFFICIENT_STOCK leaves the quantity unchanged
    ✅ Missing or invalid quantity / operation
    ✅ Low-stock list (default and custom threshold), scarcest first
    ✅ Distinct categories and brands over active items only
    ✅ Category listing and search; stats counts
"""

import pytest


@pytest.fixture
def add_item(client, token, user):
    async def _add(resource="products", **overrides):
        payload = {
            "name": "Brake pads",
            "description": "Ceramic front pads",
            "category": "brakes",
            "brand": "Stopwell",
            "price": "49.90",
            "stockQuantity": 20,
        }
        payload.update(overrides)
        response = await client.post(f"/api/{resource}", json=payload, headers=token(user))
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _add


class TestStockAdjustment:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource", ["products", "parts"])
    async def test_add_then_subtract(self, client, token, user, add_item, resource):
        item = await add_item(resource)
        url = f"/api/{resource}/{item['id']}/stock"

        added = await client.patch(url, json={"quantity": 5, "operation": "add"}, headers=token(user))
        assert added.status_code == 200
        assert added.json()["message"] == "Stock added successfully"
        assert added.json()["data"]["newQuantity"] == 25

        subtracted = await client.patch(url, json={"quantity": "25", "operation": "subtract"}, headers=token(user))
        assert subtracted.json()["message"] == "Stock subtracted successfully"
        assert subtracted.json()["data"]["newQuantity"] == 0
        assert subtracted.json()["data"]["item"]["stockQuantity"] == 0

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, client, token, user, add_item):
        item = await add_item(stockQuantity=3)
        response = await client.patch(
            f"/api/products/{item['id']}/stock", json={"quantity": 4, "operation": "subtract"}, headers=token(user)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "INSUFFICIENT_STOCK"

        fetched = (await client.get(f"/api/products/{item['id']}", headers=token(user))).json()["data"]
        assert fetched["stockQuantity"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body, code",
        [
            ({"operation": "add"}, "MISSING_REQUIRED_FIELDS"),
            ({"quantity": 1}, "MISSING_REQUIRED_FIELDS"),
            ({"quantity": 1, "operation": "multiply"}, "INVALID_OPERATION"),
            ({"quantity": 1.5, "operation": "add"}, "INVALID_NUMBER"),
            ({"quantity": -2, "operation": "add"}, "INVALID_NUMBER"),
        ],
    )
    async def test_rejected_adjustments(self, client, token, user, add_item, body, code):
        item = await add_item()
        response = await client.patch(f"/api/products/{item['id']}/stock", json=body, headers=token(user))
        assert response.status_code == 400
        assert response.json()["error"] == code

    @pytest.mark.asyncio
    async def test_only_owner_adjusts(self, client, token, other, add_item):
        item = await add_item()
        response = await client.patch(
            f"/api/products/{item['id']}/stock", json={"quantity": 1, "operation": "add"}, headers=token(other)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_part(self, client, token, user):
        response = await client.patch(
            "/api/parts/9b2f4c1e-1111-4a4a-8a8a-000000000001/stock",
            json={"quantity": 1, "operation": "add"},
            headers=token(user),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "PART_NOT_FOUND"


class TestCatalogue:
    @pytest.mark.asyncio
    async def test_low_stock_scarcest_first(self, client, token, user, add_item):
        await add_item(name="Plenty", stockQuantity=50)
        await add_item(name="Few", stockQuantity=8)
        await add_item(name="None left", stockQuantity=0)
        gone = await add_item(name="Discontinued", stockQuantity=1)
        await client.patch(f"/api/products/{gone['id']}/status", json={"status": "discontinued"}, headers=token(user))

        default = (await client.get("/api/products/low-stock/list", headers=token(user))).json()
        assert [p["name"] for p in default["data"]] == ["None left", "Few"]

        custom = (await client.get("/api/products/low-stock/list?threshold=5", headers=token(user))).json()
        assert [p["name"] for p in custom["data"]] == ["None left"]

    @pytest.mark.asyncio
    async def test_categories_and_brands(self, client, token, user, add_item):
        await add_item(category="brakes", brand="Stopwell")
        await add_item(category="filters", brand="")
        old = await add_item(category="lighting", brand="Glow")
        await client.patch(f"/api/products/{old['id']}/status", json={"status": "inactive"}, headers=token(user))

        categories = (await client.get("/api/products/categories/list", headers=token(user))).json()["data"]
        brands = (await client.get("/api/products/brands/list", headers=token(user))).json()["data"]
        assert categories == ["brakes", "filters"]
        assert brands == ["Stopwell"]

    @pytest.mark.asyncio
    async def test_category_listing_sorted_by_name(self, client, token, user, add_item):
        await add_item(name="Rotor", category="brakes")
        await add_item(name="Caliper", category="brakes")
        await add_item(name="Oil filter", category="filters")

        body = (await client.get("/api/products/category/brakes", headers=token(user))).json()
        assert [p["name"] for p in body["data"]] == ["Caliper", "Rotor"]

    @pytest.mark.asyncio
    async def test_search(self, client, token, user, add_item):
        await add_item(resource="parts", name="Spark plug", description="Iridium tip", category="ignition")
        await add_item(resource="parts", name="Wiper", description="All season", category="body")

        found = (await client.get("/api/parts/search/query?q=IRIDIUM", headers=token(user))).json()
        assert [p["name"] for p in found["data"]] == ["Spark plug"]

        missing = await client.get("/api/parts/search/query", headers=token(user))
        assert missing.status_code == 400
        assert missing.json()["error"] == "MISSING_QUERY"

    @pytest.mark.asyncio
    async def test_stats(self, client, token, user, add_item):
        await add_item(resource="parts", stockQuantity=2)
        await add_item(resource="parts", stockQuantity=40, category="engine")

        stats = (await client.get("/api/parts/stats/overview", headers=token(user))).json()["data"]
        assert stats["totalParts"] == 2
        assert stats["activeParts"] == 2
        assert stats["lowStockParts"] == 1
        assert stats["partsByCategory"] == {"brakes": 1, "engine": 1}
