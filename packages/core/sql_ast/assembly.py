"""
Query assembly for EmbedQL.

`QueryCompiler` is the public entry point. It runs every stage for one
request and merges the results into a single parameterized statement:

    SELECT <root columns>, <embed subqueries>, <flat join columns>
    FROM root LEFT OUTER JOIN <flat joins>
    WHERE <filters> AND <inner-embed EXISTS predicates>
    ORDER BY ... LIMIT ... OFFSET ...
"""

import logging

from sqlalchemy import literal, select
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import FromClause, Select, TableClause

from packages.core.safety.identifiers import validate_identifier
from packages.core.schema_catalog.lookup import MetadataLookup
from packages.core.sql_ast.compiler import SQLCompiler, make_table, table_column
from packages.core.sql_ast.json_dialects import (
    JsonDialect,
    all_columns,
    get_json_dialect,
)
from packages.core.sql_ast.models import (
    CompiledQuery,
    FilterOperator,
    FilterPredicate,
    OrderDirection,
    RequestSpec,
)
from packages.core.sql_ast.relationship_resolver import (
    DEFAULT_PRIMARY_KEY,
    RelationshipCache,
    RelationshipResolver,
)
from packages.core.sql_ast.request_params import (
    SELECT_PARAM,
    Params,
    RequestParamParser,
    first_value,
    normalize_params,
)
from packages.core.sql_ast.select_parser import embedded_tables, parse_select

logger = logging.getLogger(__name__)


class QueryCompiler:
    """
    Compiles a table name and its query parameters into one statement.

    The compiler holds no per-request state. Only the relationship cache
    outlives a call to `compile`, so one instance per schema can be shared
    across threads.

    Example:
        compiler = QueryCompiler(InMemorySchema({...}), dialect="sqlite")
        query = compiler.compile("authors", {"select": "id,posts(id)"})
        rows = connection.exec_driver_sql(query.sql, query.params)
    """

    def __init__(
        self,
        lookup: MetadataLookup,
        dialect: str = "postgresql",
        cache: RelationshipCache | None = None,
        primary_key: str = DEFAULT_PRIMARY_KEY,
    ):
        """
        Initialize the query compiler.

        Args:
            lookup: Column-existence capability for the target schema.
            dialect: Target database ("postgresql" or "sqlite").
            cache: Relationship cache shared between compilations.
            primary_key: Primary key column name used by every table.

        Raises:
            ValueError: If the dialect is not supported.
        """
        self._lookup = lookup
        self._json: JsonDialect = get_json_dialect(dialect)
        self._cache = cache if cache is not None else RelationshipCache()
        self._primary_key = primary_key

    @property
    def dialect(self) -> str:
        return self._json.name

    def compile(self, table: str, params: Params) -> CompiledQuery:
        """
        Compile a request against `table`.

        Args:
            table: Root table name.
            params: Query parameters, as a mapping or as ordered pairs
                    (pairs keep repeated filters on the same column).

        Returns:
            CompiledQuery whose params match its placeholders in order.

        Raises:
            CompileError: Any subclass, for input that cannot be compiled.
        """
        table = validate_identifier(table, "table")
        pairs = normalize_params(params)

        fields = parse_select(first_value(pairs, SELECT_PARAM))

        resolver = RelationshipResolver(
            self._lookup, cache=self._cache, primary_key=self._primary_key
        )
        compiler = SQLCompiler(resolver, self._json)

        root = make_table(table)
        selection = compiler.compile_selection(root, fields)

        spec = RequestParamParser(self._lookup).parse(
            table, pairs, embedded=embedded_tables(fields)
        )

        columns = list(selection.columns)
        from_clause: FromClause = root
        for join in spec.joins:
            joined = make_table(join.table)
            from_clause = from_clause.outerjoin(
                joined,
                table_column(root, join.foreign_key)
                == table_column(joined, join.primary_key),
            )
            if join.columns:
                columns.extend(table_column(joined, name) for name in join.columns)
            else:
                columns.append(all_columns(joined))

        stmt = select(*columns).select_from(from_clause)

        conditions = [self._filter_condition(root, f) for f in spec.filters]
        conditions.extend(selection.constraints)
        if conditions:
            stmt = stmt.where(*conditions)

        stmt = self._apply_sort_and_page(stmt, root, spec)

        compiled = stmt.compile(dialect=self._json.sql_dialect())
        query = CompiledQuery(
            sql=str(compiled),
            params=tuple(compiled.params[name] for name in compiled.positiontup),
        )

        logger.debug(f"Compiled {table}: {query.sql} params={query.params}")
        return query

    # -------------------------
    # Clauses
    # -------------------------

    def _filter_condition(
        self, root: TableClause, predicate: FilterPredicate
    ) -> ColumnElement:
        col = table_column(root, predicate.column)
        value = predicate.value

        match predicate.operator:
            case FilterOperator.EQ:
                return col == value
            case FilterOperator.GT:
                return col > value
            case FilterOperator.LT:
                return col < value
            case FilterOperator.GTE:
                return col >= value
            case FilterOperator.LTE:
                return col <= value
            case FilterOperator.LIKE:
                return col.like(value)
            case FilterOperator.IN:
                # One placeholder per value, no expanding parameters
                return col.in_([literal(v) for v in value])
            case _:
                raise ValueError(f"Unhandled filter operator: {predicate.operator}")

    def _apply_sort_and_page(
        self, stmt: Select, root: TableClause, spec: RequestSpec
    ) -> Select:
        if spec.sort is not None:
            col = table_column(root, spec.sort.column)
            if spec.sort.direction == OrderDirection.DESC:
                stmt = stmt.order_by(col.desc())
            else:
                stmt = stmt.order_by(col.asc())

        if spec.page.limit is not None:
            stmt = stmt.limit(spec.page.limit)
        if spec.page.offset is not None:
            stmt = stmt.offset(spec.page.offset)

        return stmt
