"""
Table Query Service.

Serves one `GET /{table}` request end to end:
1. Validate the tenant
2. Open a transaction scoped to the tenant's schema
3. Compile the query parameters (metadata lookups run on the same connection)
4. Execute the compiled statement
5. Return the rows
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.engine import Engine

from packages.core.safety.identifiers import validate_tenant
from packages.core.schema_catalog.lookup import CatalogMetadataLookup
from packages.core.sql_ast.assembly import QueryCompiler
from packages.core.sql_ast.models import CompiledQuery
from packages.core.sql_ast.relationship_resolver import RelationshipCache

from app.core.config import Settings, get_settings
from app.db.session import get_engine
from app.services.tables.execution import execute_compiled, scope_transaction

logger = logging.getLogger(__name__)


@dataclass
class TableQueryResult:
    """Rows returned for one table request, with the statement that produced them."""

    query: CompiledQuery
    rows: list[dict[str, Any]]


class TableQueryService:
    """
    Compiles and executes table queries inside tenant-scoped transactions.

    Relationship caches are kept per tenant: two tenant schemas may give
    the same table names different columns.
    """

    def __init__(self, engine: Engine, settings: Settings | None = None):
        """
        Initialize the table query service.

        Args:
            engine: Engine requests check connections out of.
            settings: Application settings. Defaults to the cached settings.
        """
        self._engine = engine
        self._settings = settings or get_settings()
        self._caches: dict[str, RelationshipCache] = {}
        self._caches_lock = threading.Lock()

    def query(
        self,
        table: str,
        params: Iterable[tuple[str, str]],
        tenant: str | None,
    ) -> TableQueryResult:
        """
        Run a table request for a tenant.

        Args:
            table: Root table name from the URL path.
            params: Query parameters as ordered pairs.
            tenant: Raw tenant header value.

        Returns:
            TableQueryResult with the compiled query and its rows.

        Raises:
            CompileError: If the request cannot be compiled.
            QueryExecutionError: If the database rejects the statement.
        """
        schema = validate_tenant(tenant)
        logger.info(f"Querying table '{table}' for tenant '{schema}'")

        with self._engine.connect() as connection:
            with connection.begin():
                dialect = connection.dialect.name
                # SQLite has a single schema and no session settings
                if dialect == "postgresql":
                    scope_transaction(
                        connection, schema, self._settings.statement_timeout_ms
                    )

                cache = self._cache_for(schema)
                compiler = QueryCompiler(
                    CatalogMetadataLookup(connection),
                    dialect=dialect,
                    cache=cache,
                    primary_key=self._settings.primary_key_column,
                )
                query = compiler.compile(table, list(params))
                logger.debug(
                    f"Executing on {compiler.dialect}: {query.sql} params={query.params}"
                )

                rows = execute_compiled(connection, query)

        self._remember_cache(schema, cache)
        return TableQueryResult(query=query, rows=rows)

    def _cache_for(self, schema: str) -> RelationshipCache:
        with self._caches_lock:
            cache = self._caches.get(schema)
        return cache if cache is not None else RelationshipCache()

    def _remember_cache(self, schema: str, cache: RelationshipCache) -> None:
        # Tenants are registered only once a request succeeds, so arbitrary
        # header values cannot grow the cache map
        with self._caches_lock:
            self._caches.setdefault(schema, cache)


# Global service instance
_table_service: TableQueryService | None = None


def get_table_query_service() -> TableQueryService:
    """Get the table query service instance."""
    global _table_service
    if _table_service is None:
        _table_service = TableQueryService(get_engine())
    return _table_service
