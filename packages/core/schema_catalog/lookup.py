"""
Schema metadata lookups for EmbedQL.

The relationship resolver only ever asks one question of the database:
does this table have this column? `MetadataLookup` is that capability.
`InMemorySchema` answers it from a fixed table definition, and
`CatalogMetadataLookup` answers it from the live schema catalog.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from packages.core.errors import MetadataLookupError

logger = logging.getLogger(__name__)


# -----------------------------
# Interface
# -----------------------------


class MetadataLookup(ABC):
    """Answers column-existence questions about the current schema."""

    @abstractmethod
    def column_exists(self, table: str, column: str) -> bool:
        """
        Check whether `table` has a column named `column`.

        Raises:
            MetadataLookupError: If the metadata source cannot be queried.
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# -----------------------------
# In-memory Schema
# -----------------------------


class InMemorySchema(MetadataLookup):
    """
    Fixed schema definition, mapping table names to their columns.

    Example:
        InMemorySchema({
            "authors": ["id", "first_name"],
            "posts": ["id", "content", "author_id"],
        })
    """

    def __init__(self, tables: Mapping[str, Iterable[str]]):
        self._tables: dict[str, frozenset[str]] = {
            name: frozenset(columns) for name, columns in tables.items()
        }

    def column_exists(self, table: str, column: str) -> bool:
        return column in self._tables.get(table, frozenset())


# -----------------------------
# Catalog-backed Lookup
# -----------------------------

_POSTGRES_COLUMN_EXISTS = text(
    """
    SELECT EXISTS (
        SELECT 1 FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = :table
          AND column_name = :column
    )
    """
)

_SQLITE_COLUMN_EXISTS = text(
    "SELECT EXISTS (SELECT 1 FROM pragma_table_info(:table) WHERE name = :column)"
)


class CatalogMetadataLookup(MetadataLookup):
    """
    Looks columns up in the live schema catalog.

    Runs on the caller's connection, so on PostgreSQL the lookup sees the
    schema selected by the transaction's search_path.
    """

    def __init__(self, connection: Connection):
        self._connection = connection
        if connection.dialect.name == "sqlite":
            self._statement = _SQLITE_COLUMN_EXISTS
        else:
            self._statement = _POSTGRES_COLUMN_EXISTS

    def column_exists(self, table: str, column: str) -> bool:
        try:
            result = self._connection.execute(
                self._statement, {"table": table, "column": column}
            )
            exists = bool(result.scalar())
        except SQLAlchemyError as e:
            logger.error(f"Metadata lookup failed for {table}.{column}: {e}")
            raise MetadataLookupError(
                f"Could not look up column '{column}' on '{table}'"
            ) from e

        logger.debug(f"Column {table}.{column} exists: {exists}")
        return exists
