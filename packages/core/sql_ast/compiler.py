"""
SQL Compiler for EmbedQL.

Lowers a select tree into SQLAlchemy Core expressions. Each embed becomes
a correlated scalar subquery that renders the related rows as JSON:

    many-to-one:  (SELECT <object> FROM related
                   WHERE related.id = parent.related_id LIMIT 1)
    one-to-many:  (SELECT coalesce(<array of objects>, <empty array>)
                   FROM related WHERE related.parent_id = parent.id)

An `!inner` embed leaves its subquery alone and adds an EXISTS predicate
to the query that selects the parent's rows instead.
"""

from dataclasses import dataclass, field

from sqlalchemy import column, func, literal_column, select, table
from sqlalchemy.sql.elements import ColumnElement, quoted_name
from sqlalchemy.sql.expression import ColumnClause, TableClause

from packages.core.safety.identifiers import validate_identifier
from packages.core.sql_ast.json_dialects import JsonDialect, JsonEntries, all_columns
from packages.core.sql_ast.models import (
    STAR,
    ColumnField,
    EmbedField,
    FieldNode,
)
from packages.core.sql_ast.relationship_resolver import (
    RelationshipDescriptor,
    RelationshipResolver,
)


# -----------------------------
# Table Helpers
# -----------------------------


def make_table(name: str) -> TableClause:
    """A lightweight, always-quoted table reference."""
    return table(quoted_name(validate_identifier(name, "table"), quote=True))


def table_column(tbl: TableClause, name: str) -> ColumnClause:
    """Get (or attach) a quoted column of a lightweight table."""
    if name not in tbl.c:
        tbl.append_column(
            column(quoted_name(validate_identifier(name, "column"), quote=True))
        )
    return tbl.c[name]


# -----------------------------
# Lowered Output
# -----------------------------


@dataclass
class Selection:
    """
    A select tree lowered against one table.

    `columns` is the select list for a plain SELECT over the table, while
    `json_entries` / `include_all` describe the same fields as one JSON
    object per row. `constraints` holds the EXISTS predicates of `!inner`
    embeds; they belong in the WHERE clause that selects this table's rows.
    """

    columns: list[ColumnElement] = field(default_factory=list)
    json_entries: JsonEntries = field(default_factory=list)
    include_all: bool = False
    constraints: list[ColumnElement] = field(default_factory=list)


# -----------------------------
# Compiler
# -----------------------------


class SQLCompiler:
    """
    Compiles select trees into correlated JSON subqueries.

    Relationship direction and join columns come from the resolver; JSON
    functions come from the dialect.
    """

    def __init__(self, resolver: RelationshipResolver, json_dialect: JsonDialect):
        """
        Initialize the compiler.

        Args:
            resolver: Resolves each embed against its parent table.
            json_dialect: JSON building blocks for the target database.
        """
        self._resolver = resolver
        self._json = json_dialect

    def compile_selection(
        self, tbl: TableClause, fields: tuple[FieldNode, ...]
    ) -> Selection:
        """
        Lower `fields` against `tbl`, recursing into every embed.

        Raises:
            UnresolvableRelationshipError: If an embed has no inferable join.
            UnsupportedSelectionError: If the dialect cannot express a field.
            IdentifierRejectedError: If a name fails validation.
        """
        selection = Selection()

        for node in fields:
            if isinstance(node, ColumnField):
                if node.is_star:
                    selection.columns.append(all_columns(tbl))
                    selection.include_all = True
                    continue
                col = table_column(tbl, node.name)
                selection.columns.append(col)
                selection.json_entries.append((node.name, col))
                continue

            value, existence = self._compile_embed(tbl, node)
            selection.columns.append(value.label(node.table))
            selection.json_entries.append(
                (node.table, self._json.embedded_value(value))
            )
            if existence is not None:
                selection.constraints.append(existence)

        return selection

    # -------------------------
    # Embeds
    # -------------------------

    def _compile_embed(
        self, parent: TableClause, node: EmbedField
    ) -> tuple[ColumnElement, ColumnElement | None]:
        """Build the JSON subquery for an embed and, if inner, its EXISTS."""
        descriptor = self._resolver.resolve(parent.name, node.table)
        related = make_table(node.table)

        children = (ColumnField(name=STAR),) if node.selects_all else node.children
        inner = self.compile_selection(related, children)
        condition = self._join_condition(descriptor, parent, related)

        row = self._json.build_object(
            related, inner.json_entries, include_all=inner.include_all
        )

        if descriptor.is_many_to_one:
            value = (
                select(row)
                .select_from(related)
                .where(condition, *inner.constraints)
                .correlate(parent)
                .limit(literal_column("1"))
                .scalar_subquery()
            )
        else:
            array = func.coalesce(
                self._json.aggregate_array(row), self._json.empty_array()
            )
            value = (
                select(array)
                .select_from(related)
                .where(condition, *inner.constraints)
                .correlate(parent)
                .scalar_subquery()
            )

        existence = None
        if node.is_inner:
            existence = (
                select(literal_column("1"))
                .select_from(related)
                .where(condition, *inner.constraints)
                .correlate(parent)
                .exists()
            )

        return value, existence

    def _join_condition(
        self,
        descriptor: RelationshipDescriptor,
        parent: TableClause,
        related: TableClause,
    ) -> ColumnElement:
        """Correlation predicate between a related row and its parent row."""
        if descriptor.is_many_to_one:
            return table_column(related, descriptor.referenced_key) == table_column(
                parent, descriptor.foreign_key
            )
        return table_column(related, descriptor.foreign_key) == table_column(
            parent, descriptor.referenced_key
        )
