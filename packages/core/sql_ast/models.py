"""
AST models for EmbedQL.

Two families live here:

- The select tree (`ColumnField` / `EmbedField`), produced by the select
  grammar parser and lowered to SQL by the compiler.
- The request models (`FilterPredicate`, `SortSpec`, `PageSpec`,
  `ExplicitJoin`), produced from the remaining query parameters.

Everything is created fresh per request and discarded after compilation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# -----------------------------
# Enums
# -----------------------------


class JoinModifier(str, Enum):
    """How an embed affects membership of its parent rows."""

    LEFT = "left"
    INNER = "inner"


class FilterOperator(str, Enum):
    """Filter operators accepted in `column=operator.value` parameters."""

    EQ = "eq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    LIKE = "like"
    IN = "in"


class OrderDirection(str, Enum):
    """Sort direction for ORDER BY clauses."""

    ASC = "asc"
    DESC = "desc"


# -----------------------------
# Select Tree
# -----------------------------

STAR = "*"


@dataclass(frozen=True)
class ColumnField:
    """
    A plain column of the enclosing table.

    Examples:
        id
        first_name
        *
    """

    name: str

    @property
    def is_star(self) -> bool:
        return self.name == STAR


@dataclass(frozen=True)
class EmbedField:
    """
    A related resource rendered as nested JSON.

    An empty `children` tuple means "all columns" of the related table.

    Examples:
        posts(id,content)
        posts!inner(id,stats(views))
        directors()
    """

    table: str
    join: JoinModifier = JoinModifier.LEFT
    children: tuple["FieldNode", ...] = ()

    @property
    def selects_all(self) -> bool:
        return not self.children

    @property
    def is_inner(self) -> bool:
        return self.join == JoinModifier.INNER


FieldNode = ColumnField | EmbedField


# -----------------------------
# Request Models
# -----------------------------


class FilterPredicate(BaseModel):
    """
    Represents a WHERE condition on the root table.

    Examples:
        views=gt.100        -> views > '100'
        name=like.J%        -> name LIKE 'J%'
        id=in.1,2,3         -> id IN ('1', '2', '3')
    """

    column: str
    operator: FilterOperator
    value: str | list[str]


class SortSpec(BaseModel):
    """
    Represents the single ORDER BY column of a request.

    Example:
        order=views.desc
    """

    column: str
    direction: OrderDirection = OrderDirection.ASC


class PageSpec(BaseModel):
    """LIMIT / OFFSET of a request. Both are optional."""

    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)


class ExplicitJoin(BaseModel):
    """
    A flat LEFT JOIN requested with `related=fk.pk`.

    The root table's `foreign_key` column is matched against the related
    table's `primary_key` column. `columns` comes from `related.select=a,b`;
    empty means every column of the related table.
    """

    table: str
    foreign_key: str
    primary_key: str
    columns: list[str] = Field(default_factory=list)


class RequestSpec(BaseModel):
    """Everything a request asks for besides the select tree."""

    filters: list[FilterPredicate] = Field(default_factory=list)
    sort: SortSpec | None = None
    page: PageSpec = Field(default_factory=PageSpec)
    joins: list[ExplicitJoin] = Field(default_factory=list)


# -----------------------------
# Compiled Output
# -----------------------------


@dataclass(frozen=True)
class CompiledQuery:
    """
    A single SQL statement ready for execution.

    `params` matches the statement's positional placeholders in order.
    """

    sql: str
    params: tuple[Any, ...] = ()
