"""
Request parameter parsing for EmbedQL.

Turns every query parameter other than `select` into request models:

    views=gt.100          -> FilterPredicate
    order=views.desc      -> SortSpec
    limit=10&offset=20    -> PageSpec
    directors=director_id.id&directors.select=name
                          -> ExplicitJoin

Nothing is silently dropped: a parameter that fits none of these forms,
or a `related.select` with no `related` join, raises a CompileError.
"""

import logging
import re
from collections.abc import Iterable, Mapping

from packages.core.errors import (
    InvalidPaginationError,
    UnresolvableRelationshipError,
    UnsupportedOperatorError,
)
from packages.core.safety.identifiers import validate_identifier
from packages.core.schema_catalog.lookup import MetadataLookup
from packages.core.sql_ast.models import (
    ExplicitJoin,
    FilterOperator,
    FilterPredicate,
    OrderDirection,
    PageSpec,
    RequestSpec,
    SortSpec,
)

logger = logging.getLogger(__name__)

Params = Mapping[str, str] | Iterable[tuple[str, str]]

SELECT_PARAM = "select"
ORDER_PARAM = "order"
LIMIT_PARAM = "limit"
OFFSET_PARAM = "offset"
RESERVED_PARAMS = frozenset({SELECT_PARAM, ORDER_PARAM, LIMIT_PARAM, OFFSET_PARAM})

# Suffix of `related.select=a,b`, the column list of a flat join
JOIN_SELECT_SUFFIX = ".select"

_JOIN_VALUE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\.([A-Za-z_][A-Za-z0-9_]*)$")
_NON_NEGATIVE_INT = re.compile(r"^[0-9]+$")
_OPERATOR_NAMES = frozenset(operator.value for operator in FilterOperator)


# -----------------------------
# Normalization
# -----------------------------


def normalize_params(params: Params) -> list[tuple[str, str]]:
    """Flatten a mapping or a sequence of pairs into ordered pairs."""
    if isinstance(params, Mapping):
        return [(str(key), str(value)) for key, value in params.items()]
    return [(str(key), str(value)) for key, value in params]


def first_value(pairs: list[tuple[str, str]], name: str) -> str | None:
    """First value of a parameter. Later repeats are ignored."""
    for key, value in pairs:
        if key == name:
            return value
    return None


# -----------------------------
# Single-parameter Parsers
# -----------------------------


def parse_filter(column: str, value: str) -> FilterPredicate:
    """
    Parse `column=operator.operand` into a FilterPredicate.

    Raises:
        UnsupportedOperatorError: If the value has no operator or the
            operator is unknown.
        IdentifierRejectedError: If the column name is invalid.
    """
    validate_identifier(column, "column")

    operator_name, separator, operand = value.partition(".")
    if not separator:
        raise UnsupportedOperatorError(column, value, "expected 'operator.value'")

    try:
        operator = FilterOperator(operator_name)
    except ValueError:
        raise UnsupportedOperatorError(
            column, value, f"unknown operator '{operator_name}'"
        ) from None

    if operator == FilterOperator.IN:
        # dict.fromkeys keeps first-seen order while dropping repeats
        values = list(dict.fromkeys(operand.split(",")))
        return FilterPredicate(column=column, operator=operator, value=values)

    return FilterPredicate(column=column, operator=operator, value=operand)


def parse_order(value: str) -> SortSpec:
    """
    Parse `column` or `column.desc` into a SortSpec.

    Any suffix other than `desc` (e.g. `views.banana`) sorts ascending.
    """
    column, _, suffix = value.partition(".")
    validate_identifier(column.strip(), "order column")
    direction = OrderDirection.DESC if suffix == "desc" else OrderDirection.ASC
    return SortSpec(column=column.strip(), direction=direction)


def parse_page_value(name: str, value: str | None) -> int | None:
    """
    Parse a limit/offset value.

    Raises:
        InvalidPaginationError: If the value is not a non-negative integer.
    """
    if value is None:
        return None
    if not _NON_NEGATIVE_INT.match(value.strip()):
        raise InvalidPaginationError(name, value)
    return int(value.strip())


# -----------------------------
# Request Parser
# -----------------------------


class RequestParamParser:
    """
    Parses the non-select parameters of a request against a root table.

    Uses the metadata lookup to tell a filter with a bad operator
    (`views=banana.x`, where `views` is a root column) apart from a flat
    join (`directors=director_id.id`).
    """

    def __init__(self, lookup: MetadataLookup):
        self._lookup = lookup

    def parse(
        self,
        table: str,
        pairs: list[tuple[str, str]],
        embedded: set[str] | None = None,
    ) -> RequestSpec:
        """
        Build the RequestSpec for `table`.

        Args:
            table: Root table name (already validated).
            pairs: Normalized query parameters, in request order.
            embedded: Tables embedded via `select`; flat joins to these
                      are skipped so a relation is never included twice.

        Raises:
            UnsupportedOperatorError, InvalidPaginationError,
            IdentifierRejectedError, UnresolvableRelationshipError
        """
        embedded = embedded or set()
        spec = RequestSpec(
            page=PageSpec(
                limit=parse_page_value(LIMIT_PARAM, first_value(pairs, LIMIT_PARAM)),
                offset=parse_page_value(OFFSET_PARAM, first_value(pairs, OFFSET_PARAM)),
            )
        )

        order = first_value(pairs, ORDER_PARAM)
        if order is not None and order.strip():
            spec.sort = parse_order(order)

        join_columns = self._collect_join_columns(pairs)
        joined: set[str] = set()

        for key, value in pairs:
            if key in RESERVED_PARAMS or key in join_columns:
                continue

            operator_name = value.partition(".")[0]
            is_operator = operator_name in _OPERATOR_NAMES
            join_match = None if is_operator else _JOIN_VALUE.match(value)

            if join_match is None:
                spec.filters.append(parse_filter(key, value))
                continue

            joined.add(key)
            if key in embedded:
                logger.debug(f"Skipping flat join to '{key}', already embedded via select")
                continue

            spec.joins.append(
                self._parse_join(table, key, value, join_match, join_columns)
            )

        self._check_join_columns(pairs, join_columns, joined)
        return spec

    # -------------------------
    # Helpers
    # -------------------------

    def _collect_join_columns(
        self, pairs: list[tuple[str, str]]
    ) -> dict[str, list[str]]:
        """Map `related.select` keys to their column lists."""
        columns: dict[str, list[str]] = {}
        for key, value in pairs:
            if key.endswith(JOIN_SELECT_SUFFIX) and key not in columns:
                columns[key] = [c.strip() for c in value.split(",") if c.strip()]
        return columns

    def _check_join_columns(
        self,
        pairs: list[tuple[str, str]],
        join_columns: dict[str, list[str]],
        joined: set[str],
    ) -> None:
        """Reject `related.select` without a `related=fk.pk` join to select from."""
        for key in join_columns:
            related = key[: -len(JOIN_SELECT_SUFFIX)]
            if related not in joined:
                raise UnsupportedOperatorError(
                    key,
                    first_value(pairs, key) or "",
                    f"no '{related}=foreign_key.primary_key' join to select from",
                )

    def _parse_join(
        self,
        table: str,
        key: str,
        value: str,
        match: re.Match,
        join_columns: dict[str, list[str]],
    ) -> ExplicitJoin:
        related = validate_identifier(key, "table")
        foreign_key, primary_key = match.group(1), match.group(2)

        if self._lookup.column_exists(table, related):
            # A root column with an unknown operator, not a table
            raise UnsupportedOperatorError(
                key, value, f"unknown operator '{foreign_key}'"
            )

        if not (
            self._lookup.column_exists(table, foreign_key)
            and self._lookup.column_exists(related, primary_key)
        ):
            raise UnresolvableRelationshipError(
                table,
                related,
                f"expected '{table}.{foreign_key}' and '{related}.{primary_key}'",
            )

        columns = join_columns.get(f"{related}{JOIN_SELECT_SUFFIX}", [])
        return ExplicitJoin(
            table=related,
            foreign_key=foreign_key,
            primary_key=primary_key,
            columns=[validate_identifier(c, "column") for c in columns],
        )
