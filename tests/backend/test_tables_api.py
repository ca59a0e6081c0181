"""
Tests for the table API.

Runs the FastAPI app against an in-memory SQLite database through the
real TableQueryService, and against stub services for error mapping.
"""

import logging
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.main import app
from app.services.tables.execution import QueryExecutionError
from app.services.tables.service import TableQueryService, get_table_query_service
from packages.core.errors import MetadataLookupError, UnresolvableRelationshipError

TENANT = {"X-Tenant-ID": "acme"}


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Shared in-memory database usable from the server's worker threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE authors (id INTEGER PRIMARY KEY, first_name TEXT, views INTEGER)"
        )
        conn.exec_driver_sql(
            "CREATE TABLE posts (id INTEGER PRIMARY KEY, content TEXT, author_id INTEGER)"
        )
        conn.exec_driver_sql(
            "INSERT INTO authors VALUES (1, 'Jane', 10), (2, 'John', 50), (3, 'Ada', 5)"
        )
        conn.exec_driver_sql(
            "INSERT INTO posts VALUES (1, 'hello', 1), (2, 'solo', 2)"
        )
    yield engine
    engine.dispose()


@pytest.fixture
def service(engine: Engine) -> TableQueryService:
    return TableQueryService(engine, Settings())


@pytest.fixture
def client(service: TableQueryService) -> Iterator[TestClient]:
    app.dependency_overrides[get_table_query_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class StubService:
    """Service that fails with a fixed error."""

    def __init__(self, error: Exception):
        self._error = error

    def query(self, table, params, tenant):
        raise self._error


def client_raising(error: Exception) -> TestClient:
    app.dependency_overrides[get_table_query_service] = lambda: StubService(error)
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_overrides() -> Iterator[None]:
    yield
    app.dependency_overrides.clear()


# -----------------------------
# Success Tests
# -----------------------------


class TestTableQueries:
    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_select_and_filter(self, client: TestClient) -> None:
        response = client.get(
            "/authors",
            params={"select": "id,first_name", "views": "gt.8", "order": "id"},
            headers=TENANT,
        )

        assert response.status_code == 200
        assert response.json() == [
            {"id": 1, "first_name": "Jane"},
            {"id": 2, "first_name": "John"},
        ]

    def test_inner_embed_excludes_authors(self, client: TestClient) -> None:
        response = client.get(
            "/authors",
            params={"select": "id,posts!inner(id)", "order": "id"},
            headers=TENANT,
        )

        assert response.status_code == 200
        assert [row["id"] for row in response.json()] == [1, 2]

    def test_repeated_filters(self, client: TestClient) -> None:
        response = client.get(
            "/authors?select=id&views=gte.5&views=lt.50&order=id",
            headers=TENANT,
        )

        assert response.status_code == 200
        assert response.json() == [{"id": 1}, {"id": 3}]


# -----------------------------
# Error Mapping Tests
# -----------------------------


class TestErrorMapping:
    def test_missing_tenant(self, client: TestClient) -> None:
        response = client.get("/authors")

        assert response.status_code == 400
        assert "tenant" in response.json()["detail"].lower()

    def test_invalid_tenant(self, client: TestClient) -> None:
        response = client.get("/authors", headers={"X-Tenant-ID": "acme; drop"})

        assert response.status_code == 400

    def test_select_parse_error(self, client: TestClient) -> None:
        response = client.get(
            "/authors", params={"select": "id,posts(id"}, headers=TENANT
        )

        assert response.status_code == 400
        assert "position" in response.json()["detail"]

    def test_invalid_pagination(self, client: TestClient) -> None:
        response = client.get("/authors", params={"limit": "-1"}, headers=TENANT)

        assert response.status_code == 400

    def test_unresolvable_relationship(self, client: TestClient) -> None:
        response = client.get(
            "/authors", params={"select": "id,tags(id)"}, headers=TENANT
        )

        assert response.status_code == 400
        assert "authors" in response.json()["detail"]

    def test_unsupported_operator(self, client: TestClient) -> None:
        response = client.get("/authors", params={"views": "neq.1"}, headers=TENANT)

        assert response.status_code == 400

    def test_unknown_table_is_execution_error(self, client: TestClient) -> None:
        response = client.get("/nothing", headers=TENANT)

        assert response.status_code == 500
        assert "no such table" in response.json()["detail"]

    def test_metadata_lookup_failure(self) -> None:
        client = client_raising(MetadataLookupError("catalog unavailable"))

        response = client.get("/authors", headers=TENANT)

        assert response.status_code == 503
        assert response.json()["detail"] == "catalog unavailable"

    def test_execution_error_message_passed_through(self) -> None:
        client = client_raising(
            QueryExecutionError("canceling statement due to statement timeout")
        )

        response = client.get("/authors", headers=TENANT)

        assert response.status_code == 500
        assert response.json()["detail"] == (
            "canceling statement due to statement timeout"
        )


# -----------------------------
# Service Tests
# -----------------------------


class TestTableQueryService:
    def test_relationship_cache_per_tenant(self, service: TableQueryService) -> None:
        service.query("authors", [("select", "id,posts(id)")], "acme")
        service.query("authors", [("select", "id,posts(id)")], "globex")
        service.query("authors", [("select", "id,posts(id)")], "acme")

        assert len(service._caches) == 2
        assert len(service._caches["acme"]) == 1

    def test_failed_requests_register_no_tenant_cache(
        self, service: TableQueryService
    ) -> None:
        for index in range(20):
            with pytest.raises(UnresolvableRelationshipError):
                service.query("authors", [("select", "id,tags(id)")], f"tenant{index}")
        with pytest.raises(QueryExecutionError):
            service.query("nothing", [], "initech")

        assert service._caches == {}

    def test_result_carries_compiled_query(self, service: TableQueryService) -> None:
        result = service.query("authors", [("select", "id"), ("id", "eq.2")], "acme")

        assert result.rows == [{"id": 2}]
        assert result.query.params == ("2",)

    def test_flat_join_label_clash_is_logged(
        self, service: TableQueryService, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="app.services.tables.execution"):
            result = service.query(
                "posts",
                [("select", "id,content"), ("authors", "author_id.id"), ("order", "id")],
                "acme",
            )

        assert '"authors".*' in result.query.sql
        assert "['id']" in caplog.text
        assert result.rows[0]["first_name"] == "Jane"

    def test_flat_join_with_column_list_has_no_clash(
        self, service: TableQueryService, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="app.services.tables.execution"):
            result = service.query(
                "posts",
                [
                    ("select", "id,content"),
                    ("authors", "author_id.id"),
                    ("authors.select", "first_name"),
                    ("order", "id"),
                ],
                "acme",
            )

        assert "share labels" not in caplog.text
        assert result.rows == [
            {"id": 1, "content": "hello", "first_name": "Jane"},
            {"id": 2, "content": "solo", "first_name": "John"},
        ]

    def test_debug_log_names_dialect(
        self, service: TableQueryService, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="app.services.tables.service"):
            service.query("authors", [("select", "id")], "acme")

        assert "Executing on sqlite" in caplog.text
