"""
Tests for the select grammar parser.

Tests that select expressions parse into the expected field trees and
that malformed expressions are rejected with a position.
"""

import pytest

from packages.core.errors import IdentifierRejectedError, SelectParseError
from packages.core.sql_ast.models import (
    ColumnField,
    EmbedField,
    JoinModifier,
)
from packages.core.sql_ast.select_parser import (
    embedded_tables,
    format_fields,
    parse_select,
)


# -----------------------------
# Basic Parsing Tests
# -----------------------------


class TestBasicParsing:
    """Tests for flat column lists."""

    def test_single_column(self) -> None:
        assert parse_select("id") == (ColumnField("id"),)

    def test_column_list(self) -> None:
        fields = parse_select("id,first_name,last_name")

        assert fields == (
            ColumnField("id"),
            ColumnField("first_name"),
            ColumnField("last_name"),
        )

    def test_whitespace_is_ignored(self) -> None:
        assert parse_select(" id , first_name ") == (
            ColumnField("id"),
            ColumnField("first_name"),
        )

    @pytest.mark.parametrize("expression", [None, "", "   "])
    def test_missing_select_means_star(self, expression: str | None) -> None:
        """No select parameter is the same as select=*."""
        assert parse_select(expression) == parse_select("*")
        assert parse_select(expression) == (ColumnField("*"),)

    def test_star_with_columns(self) -> None:
        fields = parse_select("*,posts(id)")

        assert fields[0].is_star
        assert isinstance(fields[1], EmbedField)


# -----------------------------
# Embed Tests
# -----------------------------


class TestEmbeds:
    """Tests for embedded resources."""

    def test_nested_commas_stay_inside_embed(self) -> None:
        """Commas inside parentheses never split the outer list."""
        fields = parse_select("id,content,stats(id,views)")

        assert len(fields) == 3
        assert fields[2] == EmbedField(
            table="stats",
            children=(ColumnField("id"), ColumnField("views")),
        )

    def test_two_fields_with_nested_embed(self) -> None:
        fields = parse_select("content,stats(id,views)")

        assert len(fields) == 2
        assert fields[0] == ColumnField("content")
        embed = fields[1]
        assert isinstance(embed, EmbedField)
        assert embed.table == "stats"
        assert len(embed.children) == 2

    def test_deep_nesting(self) -> None:
        fields = parse_select("id,posts(id,stats(views,likes(id)))")

        posts = fields[1]
        stats = posts.children[1]
        likes = stats.children[1]
        assert (posts.table, stats.table, likes.table) == ("posts", "stats", "likes")
        assert likes.children == (ColumnField("id"),)

    def test_empty_embed_selects_all(self) -> None:
        (embed,) = parse_select("directors()")

        assert embed.table == "directors"
        assert embed.selects_all

    def test_default_join_is_left(self) -> None:
        (embed,) = parse_select("posts(id)")

        assert embed.join == JoinModifier.LEFT
        assert not embed.is_inner

    def test_inner_modifier_is_not_part_of_name(self) -> None:
        (embed,) = parse_select("posts!inner(id,content)")

        assert embed.table == "posts"
        assert embed.is_inner
        assert embed.children == (ColumnField("id"), ColumnField("content"))

    def test_modifier_without_parentheses_is_embed(self) -> None:
        (embed,) = parse_select("posts!inner")

        assert isinstance(embed, EmbedField)
        assert embed.is_inner
        assert embed.selects_all

    def test_mixed_modifiers(self) -> None:
        (posts,) = parse_select("posts(id,stats!inner(views))")

        assert posts.join == JoinModifier.LEFT
        assert posts.children[1].join == JoinModifier.INNER

    def test_embedded_tables_top_level_only(self) -> None:
        fields = parse_select("id,posts(id,stats(id)),directors(name)")

        assert embedded_tables(fields) == {"posts", "directors"}


# -----------------------------
# Error Tests
# -----------------------------


class TestParseErrors:
    """Tests for malformed select expressions."""

    def test_unclosed_parenthesis(self) -> None:
        with pytest.raises(SelectParseError) as exc_info:
            parse_select("id,posts(id")

        assert exc_info.value.position == 8
        assert "Unclosed" in str(exc_info.value)

    def test_unbalanced_closing_parenthesis(self) -> None:
        with pytest.raises(SelectParseError) as exc_info:
            parse_select("id)")

        assert exc_info.value.position == 2

    def test_empty_field(self) -> None:
        with pytest.raises(SelectParseError) as exc_info:
            parse_select("id,,name")

        assert exc_info.value.position == 3

    def test_trailing_comma(self) -> None:
        with pytest.raises(SelectParseError):
            parse_select("id,")

    def test_unknown_modifier(self) -> None:
        with pytest.raises(SelectParseError, match="Unknown join modifier 'outer'"):
            parse_select("posts!outer(id)")

    def test_star_cannot_be_embedded(self) -> None:
        with pytest.raises(SelectParseError):
            parse_select("*(id)")

    def test_characters_after_embed(self) -> None:
        with pytest.raises(SelectParseError):
            parse_select("posts(id)x")

    @pytest.mark.parametrize(
        "expression",
        ["id;drop", "first name", 'posts"(id)', "1abc"],
    )
    def test_invalid_identifier(self, expression: str) -> None:
        with pytest.raises(IdentifierRejectedError):
            parse_select(expression)


# -----------------------------
# Formatting Tests
# -----------------------------


class TestFormatting:
    """Tests for rendering trees back into select grammar."""

    def test_format_nested(self) -> None:
        fields = parse_select(" id , posts!inner( id, stats(views) ) ")

        assert format_fields(fields) == "id,posts!inner(id,stats(views))"

    @pytest.mark.parametrize(
        "expression",
        [
            "*",
            "id,first_name",
            "id,posts(id,content,stats(id,views))",
            "posts!inner(id,stats!inner(views))",
            "directors(),*",
            "posts!left(id)",
        ],
    )
    def test_parse_is_idempotent_over_format(self, expression: str) -> None:
        fields = parse_select(expression)

        assert parse_select(format_fields(fields)) == fields
