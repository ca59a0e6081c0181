"""Query execution layer."""

import logging
from collections import Counter
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError

from packages.core.sql_ast.models import CompiledQuery

logger = logging.getLogger(__name__)

_SET_SEARCH_PATH = text("SELECT set_config('search_path', :schema, true)")
_SET_STATEMENT_TIMEOUT = text("SELECT set_config('statement_timeout', :timeout, true)")


class QueryExecutionError(Exception):
    """Raised when the database rejects or aborts a compiled statement."""

    pass


def scope_transaction(
    connection: Connection,
    schema: str,
    statement_timeout_ms: int,
) -> None:
    """
    Point the current transaction at a tenant schema.

    Both settings are transaction-local (`is_local = true`), so they end
    with the transaction and never leak to the next user of the pooled
    connection. The schema name must already be validated; it is still
    passed as a bound parameter.

    Args:
        connection: Connection with an open transaction.
        schema: Validated tenant schema name.
        statement_timeout_ms: Statement timeout, 0 to leave the default.
    """
    connection.execute(_SET_SEARCH_PATH, {"schema": schema})
    if statement_timeout_ms > 0:
        connection.execute(
            _SET_STATEMENT_TIMEOUT, {"timeout": str(statement_timeout_ms)}
        )


def execute_compiled(
    connection: Connection,
    query: CompiledQuery,
) -> list[dict[str, Any]]:
    """
    Execute a compiled statement and return its rows as dicts.

    This is a thin execution layer with no business logic. The SQL is
    already rendered for the driver's positional paramstyle, so it goes
    straight to the DBAPI cursor.

    Args:
        connection: Connection the request's transaction runs on.
        query: Compiled statement and its ordered parameters.

    Returns:
        One dict per row, keyed by column label.

    Raises:
        QueryExecutionError: If execution fails. The engine's message is
            passed through unchanged.
    """
    try:
        result = connection.exec_driver_sql(query.sql, query.params)
        _warn_duplicate_labels(list(result.keys()))
        return [dict(row) for row in result.mappings()]
    except DBAPIError as e:
        message = str(e.orig) if e.orig is not None else str(e)
        logger.error(f"Query execution failed: {message}")
        raise QueryExecutionError(message) from e


def _warn_duplicate_labels(labels: list[str]) -> None:
    # A flat join without `related.select` expands to `related.*`, whose
    # columns can share labels with the root's. Only the last one survives
    # in the row dict.
    duplicates = sorted(label for label, count in Counter(labels).items() if count > 1)
    if duplicates:
        logger.warning(
            f"Result columns share labels {duplicates}; later values replace "
            f"earlier ones. Use 'related.select' to pick joined columns."
        )
