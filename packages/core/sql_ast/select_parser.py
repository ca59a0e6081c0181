"""
Select grammar parser for EmbedQL.

Turns the `select` query parameter into a tree of FieldNode objects:

    expr     := field (',' field)*
    field    := name [ '!' modifier ] [ '(' [ expr ] ')' ]
    modifier := 'inner' | 'left'
    name     := identifier | '*'

The same descent is used at every nesting level, so commas inside an
embed's column list never split the enclosing list.
"""

from packages.core.errors import SelectParseError
from packages.core.safety.identifiers import validate_identifier
from packages.core.sql_ast.models import (
    STAR,
    ColumnField,
    EmbedField,
    FieldNode,
    JoinModifier,
)


# -----------------------------
# Parser
# -----------------------------


class SelectParser:
    """
    Recursive-descent parser for a single select expression.

    Instances are single use: create one per expression.
    """

    _DELIMITERS = frozenset(",()!")

    def __init__(self, expression: str):
        self._text = expression
        self._pos = 0

    def parse(self) -> tuple[FieldNode, ...]:
        """
        Parse the whole expression.

        Raises:
            SelectParseError: If the expression is malformed.
            IdentifierRejectedError: If a name contains invalid characters.
        """
        fields = self._parse_list()
        self._skip_whitespace()
        if not self._at_end():
            if self._peek() == ")":
                raise self._error("Unbalanced ')'")
            raise self._error(f"Unexpected '{self._peek()}'")
        return fields

    # -------------------------
    # Grammar Rules
    # -------------------------

    def _parse_list(self) -> tuple[FieldNode, ...]:
        fields = [self._parse_field()]
        while self._consume(","):
            fields.append(self._parse_field())
        return tuple(fields)

    def _parse_field(self) -> FieldNode:
        name, name_pos = self._read_name()

        modifier: JoinModifier | None = None
        if self._consume("!"):
            modifier_name, modifier_pos = self._read_name()
            try:
                modifier = JoinModifier(modifier_name)
            except ValueError:
                raise self._error(
                    f"Unknown join modifier '{modifier_name}'", modifier_pos
                ) from None

        self._skip_whitespace()
        is_embed = modifier is not None or self._peek() == "("

        if name == STAR:
            if is_embed:
                raise self._error("'*' cannot be embedded", name_pos)
            return ColumnField(name=STAR)

        if not is_embed:
            return ColumnField(name=validate_identifier(name, "column"))

        table = validate_identifier(name, "table")
        children: tuple[FieldNode, ...] = ()
        if self._peek() == "(":
            open_pos = self._pos
            self._pos += 1
            self._skip_whitespace()
            if self._peek() != ")":
                children = self._parse_list()
            if not self._consume(")"):
                if self._at_end():
                    raise self._error("Unclosed '('", open_pos)
                raise self._error(f"Unexpected '{self._peek()}'")

        return EmbedField(
            table=table,
            join=modifier or JoinModifier.LEFT,
            children=children,
        )

    # -------------------------
    # Scanning Helpers
    # -------------------------

    def _read_name(self) -> tuple[str, int]:
        """Read a name up to the next delimiter, trimming whitespace."""
        self._skip_whitespace()
        start = self._pos
        while not self._at_end() and self._peek() not in self._DELIMITERS:
            self._pos += 1
        name = self._text[start:self._pos].strip()
        if not name:
            raise self._error("Expected a column or embed name", start)
        return name, start

    def _consume(self, char: str) -> bool:
        self._skip_whitespace()
        if self._peek() == char:
            self._pos += 1
            return True
        return False

    def _skip_whitespace(self) -> None:
        while not self._at_end() and self._text[self._pos].isspace():
            self._pos += 1

    def _peek(self) -> str:
        return "" if self._at_end() else self._text[self._pos]

    def _at_end(self) -> bool:
        return self._pos >= len(self._text)

    def _error(self, message: str, position: int | None = None) -> SelectParseError:
        return SelectParseError(
            message,
            expression=self._text,
            position=self._pos if position is None else position,
        )


# -----------------------------
# Public API
# -----------------------------


def parse_select(expression: str | None) -> tuple[FieldNode, ...]:
    """
    Parse a select expression into a field tree.

    A missing or blank expression selects every column (`*`).
    """
    if expression is None or not expression.strip():
        return (ColumnField(name=STAR),)
    return SelectParser(expression).parse()


def format_fields(fields: tuple[FieldNode, ...] | list[FieldNode]) -> str:
    """Render a field tree back into select grammar."""
    parts: list[str] = []
    for node in fields:
        if isinstance(node, ColumnField):
            parts.append(node.name)
            continue
        modifier = "!inner" if node.is_inner else ""
        parts.append(f"{node.table}{modifier}({format_fields(node.children)})")
    return ",".join(parts)


def embedded_tables(fields: tuple[FieldNode, ...]) -> set[str]:
    """Names of the tables embedded at the top level of a field tree."""
    return {node.table for node in fields if isinstance(node, EmbedField)}
