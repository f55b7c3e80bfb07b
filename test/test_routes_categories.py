"""
Tests for category routes
"""

import pytest
from httpx import ASGITransport, AsyncClient

from catalog_search.main import create_app
from utils.mock_utils import StaticIdentityProvider, UnavailableCatalogSource


class TestCategoryList:
    @pytest.mark.asyncio
    async def test_lists_categories_with_counts(self, client):
        response = await client.get("/categories")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert [(c["name"], c["totalProducts"]) for c in data["categories"]] == [
            ("Accessories", 5),
            ("Electronics", 9),
            ("Home", 5),
            ("Sports", 5),
        ]

    @pytest.mark.asyncio
    async def test_catalog_outage_is_503(self, session_factory, registry):
        app = create_app(
            session_factory=session_factory,
            catalog_source=UnavailableCatalogSource(),
            identity_provider=StaticIdentityProvider({}),
            session_registry=registry,
            start_scheduler=False,
            configure_logging=False,
        )

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/categories")

        assert response.status_code == 503


class TestCategoryProducts:
    @pytest.mark.asyncio
    async def test_browse_is_case_insensitive_and_records_nothing(
        self, client, auth_headers, history_store, query_store
    ):
        response = await client.get("/categories/electronics/products", params={"pageSize": 4}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert len(data["products"]) == 4
        assert data["metadata"]["total"] == 9
        assert data["metadata"]["totalPages"] == 3
        assert all(p["category"] == "Electronics" for p in data["products"])
        assert await query_store.find_between() == []
        assert await history_store.find_by_owner("user_001") == []

    @pytest.mark.asyncio
    async def test_sorted_by_price(self, client):
        response = await client.get("/categories/Home/products", params={"sort": "price-desc"})

        prices = [p["price"] for p in response.json()["products"]]
        assert prices == sorted(prices, reverse=True)

    @pytest.mark.asyncio
    async def test_unknown_category_is_an_empty_page(self, client):
        response = await client.get("/categories/Garden/products")

        assert response.status_code == 200
        assert response.json()["products"] == []
        assert response.json()["metadata"]["total"] == 0

    @pytest.mark.asyncio
    async def test_overlong_category_is_rejected(self, client):
        response = await client.get(f"/categories/{'x' * 51}/products")

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "category"
