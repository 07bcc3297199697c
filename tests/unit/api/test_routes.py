"""Tests for the catalog HTTP endpoints."""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.errors import StoreTimeout, StoreUnavailable
from tests.unit.fakes import FakeRedis, InMemoryCatalog, build_container, make_client


class DriverError(Exception):
    def __init__(self, sqlstate: str):
        super().__init__("duplicate key value violates unique constraint")
        self.sqlstate = sqlstate


def seeded(client: FakeRedis | None = None) -> tuple[Any, InMemoryCatalog]:
    container, catalog = build_container(client)
    sports = catalog.add_category("Sports", "Sporting goods")
    books = catalog.add_category("Books")
    for i in range(25):
        catalog.add_product(f"Product {i + 1}", sports["id"], price=10 + i, stock=i)
    catalog.add_product("Novel", books["id"], price=12.5, stock=3)
    return container, catalog


class TestProducts:
    """Test /api/products."""

    def test_list_envelope(self) -> None:
        """Listings carry data, pagination and the request id."""
        container, _ = seeded()
        client = make_client(container)

        response = client.get("/api/products", headers={"x-request-id": "req-1"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]) == 20
        assert body["data"][0]["name"] == "Novel"
        assert body["pagination"] == {"cursor": 7, "hasMore": True, "limit": 20}
        assert body["requestId"] == "req-1"
        assert response.headers["x-request-id"] == "req-1"

    def test_follow_cursor(self) -> None:
        """The cursor of one page fetches the next one."""
        container, _ = seeded()
        client = make_client(container)

        first = client.get("/api/products", params={"limit": "10"}).json()
        second = client.get(
            "/api/products", params={"limit": "10", "cursor": first["pagination"]["cursor"]}
        ).json()
        third = client.get(
            "/api/products", params={"limit": "10", "cursor": second["pagination"]["cursor"]}
        ).json()

        ids = [p["id"] for body in (first, second, third) for p in body["data"]]
        assert ids == list(range(26, 0, -1))
        assert third["pagination"] == {"cursor": None, "hasMore": False, "limit": 10}

    def test_category_filter(self) -> None:
        """``category_id`` restricts the listing."""
        container, _ = seeded()
        body = make_client(container).get("/api/products", params={"category_id": 2}).json()
        assert [p["name"] for p in body["data"]] == ["Novel"]

    def test_category_filter_out_of_range(self) -> None:
        """A category id beyond the INT range is a validation error."""
        container, _ = seeded()
        response = make_client(container).get("/api/products", params={"category_id": 3000000000})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("limit,expected", [("1000", 100), ("0", 1), ("abc", 20)])
    def test_limit_clamped(self, limit: str, expected: int) -> None:
        """Out-of-range and non-numeric limits never fail."""
        container, _ = seeded()
        body = make_client(container).get("/api/products", params={"limit": limit}).json()
        assert body["pagination"]["limit"] == expected

    @pytest.mark.parametrize("cursor", ["abc", "-5", "0", "1.5"])
    def test_invalid_cursor(self, cursor: str) -> None:
        """Malformed cursors are client errors."""
        container, catalog = seeded()
        reads = catalog.reads

        response = make_client(container).get("/api/products", params={"cursor": cursor})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "INVALID_CURSOR"
        assert body["error"] == "Invalid cursor format: must be a positive integer"
        assert body["requestId"]
        assert catalog.reads == reads

    def test_get(self) -> None:
        """A single product includes its category name."""
        container, _ = seeded()
        body = make_client(container).get("/api/products/26").json()
        assert body["data"]["name"] == "Novel"
        assert body["data"]["category_name"] == "Books"
        assert body["data"]["price"] == 12.5

    def test_get_missing(self) -> None:
        """Unknown ids are 404."""
        container, _ = seeded()
        response = make_client(container).get("/api/products/999")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert response.json()["error"] == "Product not found"

    @pytest.mark.parametrize("product_id", ["0", "-1", "abc", "3000000000"])
    def test_invalid_id(self, product_id: str) -> None:
        """Ids must be positive integers."""
        container, _ = seeded()
        response = make_client(container).get(f"/api/products/{product_id}")
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"][0]["field"] == "id"

    def test_create(self) -> None:
        """Creating a product returns 201 and the stored row."""
        container, _ = seeded()
        client = make_client(container)

        response = client.post(
            "/api/products",
            json={"name": "  Yoga Mat  ", "price": 29.99, "category_id": 1, "stock": 5},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["id"] == 27
        assert data["name"] == "Yoga Mat"
        assert data["price"] == 29.99
        assert data["category_name"] == "Sports"
        assert container.audit.events[-1].context.client_ip == "testclient"

    def test_create_unknown_category(self) -> None:
        """A missing category is rejected with INVALID_CATEGORY."""
        container, _ = seeded()
        response = make_client(container).post(
            "/api/products", json={"name": "Ghost", "price": 1, "category_id": 99, "stock": 1}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CATEGORY"

    def test_create_validation(self) -> None:
        """Field errors are listed with their messages."""
        container, _ = seeded()
        response = make_client(container).post(
            "/api/products", json={"name": "ab", "price": -1, "category_id": 1}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["error"] == "Validation failed"
        details = {d["field"]: d["message"] for d in body["details"]}
        assert details["name"] == "Product name must be between 3 and 100 characters"
        assert details["price"] == "Price must be a positive number between 0.01 and 999999.99"
        assert "stock" in details

    def test_update(self) -> None:
        """Partial updates change only the named fields."""
        container, _ = seeded()
        client = make_client(container)

        response = client.put("/api/products/26", json={"stock": 40})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["stock"] == 40
        assert data["name"] == "Novel"

    @pytest.mark.parametrize("body", [{}, {"category_id": 1}, {"name": None}])
    def test_update_without_fields(self, body: dict[str, Any]) -> None:
        """Bodies that change nothing are rejected."""
        container, _ = seeded()
        response = make_client(container).put("/api/products/26", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "NO_UPDATE_FIELDS"

    def test_update_missing(self) -> None:
        """Updating an unknown product is 404."""
        container, _ = seeded()
        response = make_client(container).put("/api/products/999", json={"stock": 1})
        assert response.status_code == 404

    def test_delete(self) -> None:
        """Deleting returns a message and the product is gone."""
        container, _ = seeded()
        client = make_client(container)

        response = client.delete("/api/products/26")
        assert response.status_code == 200
        assert response.json()["message"] == "Product deleted successfully"
        assert client.get("/api/products/26").status_code == 404
        assert client.delete("/api/products/26").status_code == 404

    def test_write_visible_through_cache(self) -> None:
        """A cached listing reflects a write on the next read."""
        redis = FakeRedis()
        container, _ = seeded(redis)
        client = make_client(container)

        client.get("/api/products", params={"category_id": 2})
        client.put("/api/products/26", json={"name": "Short Stories"})
        body = client.get("/api/products", params={"category_id": 2}).json()

        assert body["data"][0]["name"] == "Short Stories"


class TestCategories:
    """Test /api/categories."""

    def test_list(self) -> None:
        """Categories default to pages of ten."""
        container, _ = seeded()
        body = make_client(container).get("/api/categories").json()
        assert [c["name"] for c in body["data"]] == ["Books", "Sports"]
        assert body["pagination"] == {"cursor": None, "hasMore": False, "limit": 10}

    def test_detail_includes_products(self) -> None:
        """The detail view embeds a page of the category's products."""
        container, _ = seeded()
        client = make_client(container)

        body = client.get("/api/categories/1").json()

        data = body["data"]
        assert data["name"] == "Sports"
        assert len(data["products"]) == 10
        assert data["products"][0]["id"] == 25
        assert data["productsPagination"] == {"cursor": 16, "hasMore": True, "limit": 10}

        more = client.get("/api/categories/1", params={"cursor": 16}).json()
        assert more["data"]["products"][0]["id"] == 15

    def test_detail_invalid_cursor(self) -> None:
        """The products cursor is validated too."""
        container, _ = seeded()
        response = make_client(container).get("/api/categories/1", params={"cursor": "x"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_CURSOR"

    def test_detail_missing(self) -> None:
        """Unknown categories are 404."""
        container, _ = seeded()
        response = make_client(container).get("/api/categories/99")
        assert response.status_code == 404
        assert response.json()["error"] == "Category not found"

    def test_create(self) -> None:
        """Valid categories are created."""
        container, _ = seeded()
        response = make_client(container).post(
            "/api/categories", json={"name": "Home & Garden", "description": "Outdoor"}
        )
        assert response.status_code == 201
        assert response.json()["data"]["name"] == "Home & Garden"

    @pytest.mark.parametrize(
        "name,message",
        [
            ("ab", "Category name must be between 3 and 50 characters"),
            ("x" * 51, "Category name must be between 3 and 50 characters"),
            ("Bad!Name", "Category name contains invalid characters"),
        ],
    )
    def test_create_invalid_name(self, name: str, message: str) -> None:
        """Names are length- and charset-checked."""
        container, _ = seeded()
        response = make_client(container).post("/api/categories", json={"name": name})
        assert response.status_code == 400
        assert response.json()["details"] == [{"field": "name", "message": message}]

    def test_create_duplicate(self) -> None:
        """Unique violations map to 409."""
        container, _ = seeded()

        async def duplicate(*args: Any, **kwargs: Any) -> Any:
            raise IntegrityError("INSERT", {}, DriverError("23505"))

        container.categories.create = duplicate  # type: ignore[method-assign]
        response = make_client(container).post("/api/categories", json={"name": "Sports"})

        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_ENTRY"

    def test_update(self) -> None:
        """Renaming a category is visible on its products."""
        container, _ = seeded(FakeRedis())
        client = make_client(container)
        client.get("/api/products/26")

        response = client.put("/api/categories/2", json={"name": "Literature"})

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Literature"
        assert client.get("/api/products/26").json()["data"]["category_name"] == "Literature"

    def test_update_without_fields(self) -> None:
        """An empty update is rejected."""
        container, _ = seeded()
        response = make_client(container).put("/api/categories/1", json={})
        assert response.json()["code"] == "NO_UPDATE_FIELDS"

    def test_delete_cascades(self) -> None:
        """Deleting a category removes its products."""
        container, _ = seeded()
        client = make_client(container)

        response = client.delete("/api/categories/2")

        assert response.json()["message"] == "Category deleted successfully"
        assert client.get("/api/products/26").status_code == 404
        assert client.delete("/api/categories/2").status_code == 404


class TestAuditLogs:
    """Test /api/audit-logs."""

    def test_lists_recorded_writes(self) -> None:
        """Writes made through the API show up newest first."""
        container, _ = seeded()
        client = make_client(container)
        client.post("/api/categories", json={"name": "Garden"})
        client.delete("/api/products/1")

        body = client.get("/api/audit-logs").json()

        assert [row["action"] for row in body["data"]] == ["DELETE", "CREATE"]
        assert body["pagination"] == {"limit": 100, "offset": 0}

    def test_action_filter(self) -> None:
        """Filters are passed to the audit log."""
        container, _ = seeded()
        client = make_client(container)
        client.post("/api/categories", json={"name": "Garden"})
        client.delete("/api/products/1")

        body = client.get("/api/audit-logs", params={"action": "create"}).json()

        assert [row["action"] for row in body["data"]] == ["CREATE"]


class TestStoreFailures:
    """Test database failures surfacing as 503."""

    def test_unavailable(self) -> None:
        """An unreachable database answers 503 DB_CONNECTION_ERROR."""
        container, _ = seeded()

        async def down(*args: Any, **kwargs: Any) -> Any:
            raise StoreUnavailable("connection refused")

        container.products.list_page = down  # type: ignore[method-assign]
        response = make_client(container).get("/api/products")

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "DB_CONNECTION_ERROR"
        assert "refused" not in body["error"]

    def test_timeout(self) -> None:
        """Statement timeouts answer 503 DB_TIMEOUT."""
        container, _ = seeded()

        async def slow(*args: Any, **kwargs: Any) -> Any:
            raise StoreTimeout("canceling statement")

        container.products.get = slow  # type: ignore[method-assign]
        response = make_client(container).get("/api/products/1")

        assert response.status_code == 503
        assert response.json()["code"] == "DB_TIMEOUT"

    def test_unexpected_error(self) -> None:
        """Unexpected errors are 500 without internals."""
        container, _ = seeded()

        async def broken(*args: Any, **kwargs: Any) -> Any:
            raise RuntimeError("secret stack detail")

        container.categories.list_page = broken  # type: ignore[method-assign]
        response = make_client(container).get("/api/categories")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert "secret" not in body["error"]

    def test_reads_survive_cache_outage(self) -> None:
        """A Redis outage only costs cache hits."""
        redis = FakeRedis()
        container, _ = seeded(redis)
        redis.fail = True

        response = make_client(container).get("/api/products/26")

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Novel"


class TestMisc:
    """Test framework-level responses."""

    def test_root(self) -> None:
        """The root lists the endpoints."""
        container, _ = build_container()
        body = make_client(container).get("/").json()
        assert body["success"] is True
        assert body["endpoints"]["products"] == "/api/products"

    def test_unknown_route(self) -> None:
        """Unknown routes use the error envelope."""
        container, _ = build_container()
        response = make_client(container).get("/api/nothing")
        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["code"] == "NOT_FOUND"

    def test_generated_request_id(self) -> None:
        """Requests without an id get one."""
        container, _ = build_container()
        response = make_client(container).get("/api/products")
        assert response.headers["x-request-id"] == response.json()["requestId"]

    def test_metrics(self) -> None:
        """Prometheus metrics are exposed as text."""
        container, _ = build_container()
        client = make_client(container)
        client.get("/api/products")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "storefront_http_requests_total" in response.text
