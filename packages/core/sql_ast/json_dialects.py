"""
JSON construction per SQL dialect.

The compiler describes embeds as "a JSON object of these entries" and
"a JSON array of those objects"; a JsonDialect turns that into the
functions a given database provides. Each dialect also pins the
positional paramstyle the compiled statement is rendered with.
"""

from abc import ABC, abstractmethod

from sqlalchemy import JSON, cast, func, literal_column
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.dialects.sqlite.base import SQLiteDialect
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import TableClause

from packages.core.errors import UnsupportedSelectionError

# (key, value) pairs of a JSON object. Keys are validated identifiers.
JsonEntries = list[tuple[str, ColumnElement]]


def all_columns(table: TableClause) -> ColumnElement:
    """`"table".*` for a table whose name passed identifier validation."""
    return literal_column(f'"{table.name}".*')


def _key(name: str) -> ColumnElement:
    return literal_column(f"'{name}'")


def _flatten(entries: JsonEntries) -> list[ColumnElement]:
    args: list[ColumnElement] = []
    for key, value in entries:
        args.extend((_key(key), value))
    return args


# -----------------------------
# Interface
# -----------------------------


class JsonDialect(ABC):
    """JSON building blocks for one SQL dialect."""

    name: str

    @abstractmethod
    def sql_dialect(self) -> Dialect:
        """SQLAlchemy dialect used to render statements positionally."""
        pass

    @abstractmethod
    def build_object(
        self,
        table: TableClause,
        entries: JsonEntries,
        include_all: bool = False,
    ) -> ColumnElement:
        """
        One JSON object per row of `table`.

        Args:
            table: The table the row comes from.
            entries: Explicit keys and their values, in order.
            include_all: Also include every column of the row.
        """
        pass

    @abstractmethod
    def aggregate_array(self, element: ColumnElement) -> ColumnElement:
        """Aggregate per-row JSON values into a JSON array."""
        pass

    @abstractmethod
    def empty_array(self) -> ColumnElement:
        """A JSON empty array literal."""
        pass

    def embedded_value(self, value: ColumnElement) -> ColumnElement:
        """Wrap a nested embed so it stays JSON inside an enclosing object."""
        return value

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name}>"


# -----------------------------
# PostgreSQL
# -----------------------------


class PostgresJsonDialect(JsonDialect):
    """json_build_object / json_agg, rendered with %s placeholders."""

    name = "postgresql"

    def sql_dialect(self) -> Dialect:
        return PGDialect(paramstyle="format")

    def build_object(
        self,
        table: TableClause,
        entries: JsonEntries,
        include_all: bool = False,
    ) -> ColumnElement:
        if not include_all:
            return func.json_build_object(*_flatten(entries))
        if not entries:
            return func.row_to_json(all_columns(table))
        # jsonb is needed for ||; cast back so every embed is plain json
        merged = func.to_jsonb(all_columns(table)).op("||")(
            func.jsonb_build_object(*_flatten(entries))
        )
        return cast(merged, JSON)

    def aggregate_array(self, element: ColumnElement) -> ColumnElement:
        return func.json_agg(element)

    def empty_array(self) -> ColumnElement:
        return literal_column("'[]'::json")


# -----------------------------
# SQLite
# -----------------------------


class SQLiteJsonDialect(JsonDialect):
    """json_object / json_group_array (JSON1), rendered with ? placeholders."""

    name = "sqlite"

    def sql_dialect(self) -> Dialect:
        return SQLiteDialect(paramstyle="qmark")

    def build_object(
        self,
        table: TableClause,
        entries: JsonEntries,
        include_all: bool = False,
    ) -> ColumnElement:
        if include_all:
            raise UnsupportedSelectionError(
                f"SQLite cannot embed every column of '{table.name}'; "
                "list the columns explicitly"
            )
        return func.json_object(*_flatten(entries))

    def aggregate_array(self, element: ColumnElement) -> ColumnElement:
        return func.json_group_array(element)

    def empty_array(self) -> ColumnElement:
        return func.json(literal_column("'[]'"))

    def embedded_value(self, value: ColumnElement) -> ColumnElement:
        # JSON subtypes do not survive a subquery boundary in SQLite
        return func.json(value)


# -----------------------------
# Registry
# -----------------------------

_DIALECTS: dict[str, type[JsonDialect]] = {
    PostgresJsonDialect.name: PostgresJsonDialect,
    SQLiteJsonDialect.name: SQLiteJsonDialect,
}


def get_json_dialect(name: str) -> JsonDialect:
    """
    Get the JSON dialect for a database dialect name.

    Raises:
        ValueError: If the dialect is not supported.
    """
    try:
        return _DIALECTS[name]()
    except KeyError:
        raise ValueError(
            f"Unsupported dialect '{name}'. Available: {', '.join(sorted(_DIALECTS))}"
        ) from None
