"""SQL AST for EmbedQL - select trees, embed compilation and query assembly."""

from .assembly import QueryCompiler
from .compiler import Selection, SQLCompiler
from .json_dialects import (
    JsonDialect,
    PostgresJsonDialect,
    SQLiteJsonDialect,
    get_json_dialect,
)
from .models import (
    ColumnField,
    CompiledQuery,
    EmbedField,
    ExplicitJoin,
    FieldNode,
    FilterOperator,
    FilterPredicate,
    JoinModifier,
    OrderDirection,
    PageSpec,
    RequestSpec,
    SortSpec,
)
from .relationship_resolver import (
    Cardinality,
    RelationshipCache,
    RelationshipDescriptor,
    RelationshipResolver,
)
from .select_parser import SelectParser, format_fields, parse_select

__all__ = [
    "Cardinality",
    "ColumnField",
    "CompiledQuery",
    "EmbedField",
    "ExplicitJoin",
    "FieldNode",
    "FilterOperator",
    "FilterPredicate",
    "JoinModifier",
    "JsonDialect",
    "OrderDirection",
    "PageSpec",
    "PostgresJsonDialect",
    "QueryCompiler",
    "RelationshipCache",
    "RelationshipDescriptor",
    "RelationshipResolver",
    "RequestSpec",
    "SQLCompiler",
    "SQLiteJsonDialect",
    "SelectParser",
    "Selection",
    "SortSpec",
    "format_fields",
    "get_json_dialect",
    "parse_select",
]
