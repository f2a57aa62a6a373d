"""Unit tests for query depth calculation."""

from __future__ import annotations

import pytest
from graphql import parse

from graphlens.features.graphql.analysis.depth import (
    calculate_depth,
    calculate_depth_from_ast,
    exceeds_max_depth,
    get_depth_description,
)


def _nested(levels: int) -> str:
    return "{" + "f{" * (levels - 1) + "x" + "}" * levels


class TestCalculateDepth:
    """Test text-based depth calculation."""

    def test_nested_selection_sets(self) -> None:
        """Test the root selection set counts as depth 1."""
        assert calculate_depth("{a{b{c}}}").max_depth == 3

    def test_braces_in_arguments_ignored(self) -> None:
        """Test braces inside an argument string never count."""
        assert calculate_depth('{a(filter:"{nope}"){b}}').max_depth == 2

    def test_braces_in_object_arguments_ignored(self) -> None:
        """Test input object literals inside arguments never count."""
        assert calculate_depth("{ users(where: { age: { gt: 3 } }) { id } }").max_depth == 2

    def test_braces_in_block_strings_ignored(self) -> None:
        """Test block strings are blanked before scanning."""
        query = '{ a(text: """ { { { """) { b } }'
        assert calculate_depth(query).max_depth == 2

    def test_comments_ignored(self) -> None:
        """Test comments are stripped before scanning."""
        assert calculate_depth("{ a # { { {\n { b } }").max_depth == 2

    def test_deepest_path(self) -> None:
        """Test the path to the deepest selection set."""
        result = calculate_depth("query Q { user { posts { title } } viewer { id } }")

        assert result.max_depth == 3
        assert result.deepest_path == ["user", "posts"]

    def test_alias_uses_field_name(self) -> None:
        """Test an alias does not replace the field in the path."""
        result = calculate_depth("{ me: viewer { friends { id } } }")
        assert result.deepest_path == ["viewer", "friends"]

    def test_directive_name_not_in_path(self) -> None:
        """Test directive names never become path entries."""
        result = calculate_depth("{ user @include(if: true) { id } }")
        assert result.deepest_path == ["user"]

    def test_empty_query(self) -> None:
        """Test text without selection sets has depth 0."""
        result = calculate_depth("")
        assert result.max_depth == 0
        assert result.warnings == []

    def test_warning_above_recommended_depth(self) -> None:
        """Test a warning is attached beyond the recommended depth."""
        result = calculate_depth(_nested(12), max_recommended_depth=10)

        assert result.max_depth == 12
        assert result.warnings == [
            "Query depth of 12 exceeds recommended maximum of 10. "
            "Deep queries can cause performance issues."
        ]

    def test_second_warning_when_extremely_deep(self) -> None:
        """Test a DoS warning is added beyond twice the recommended depth."""
        result = calculate_depth(_nested(21), max_recommended_depth=10)

        assert len(result.warnings) == 2
        assert "extremely deep (21 levels)" in result.warnings[1]

    def test_no_warning_at_limit(self) -> None:
        """Test depth equal to the limit is fine."""
        assert calculate_depth(_nested(10), max_recommended_depth=10).warnings == []


class TestCalculateDepthFromAst:
    """Test AST-based depth calculation."""

    def test_counts_fields_with_selection_sets(self) -> None:
        """Test leaf fields do not add depth."""
        assert calculate_depth_from_ast(parse("{a{b{c}}}")).max_depth == 2

    def test_fragment_spread_resolved(self) -> None:
        """Test named fragments count where they are spread."""
        document = parse(
            """
            query { user { ...UserFields } }
            fragment UserFields on User { posts { comments { id } } }
            """
        )
        result = calculate_depth_from_ast(document)

        assert result.max_depth == 3
        assert result.deepest_path == ["user", "posts", "comments"]

    def test_inline_fragment(self) -> None:
        """Test inline fragments do not add a level of their own."""
        document = parse("{ node { ... on User { friends { id } } } }")
        assert calculate_depth_from_ast(document).max_depth == 2

    def test_cyclic_fragments_terminate(self) -> None:
        """Test a fragment cycle is followed only once."""
        document = parse(
            """
            { user { ...A } }
            fragment A on User { friend { ...B } }
            fragment B on User { friend { ...A } }
            """
        )
        assert calculate_depth_from_ast(document).max_depth == 3

    def test_non_document_input(self) -> None:
        """Test anything that is not a document yields a warning."""
        result = calculate_depth_from_ast({"kind": "Document"})

        assert result.max_depth == 0
        assert result.warnings == ["Unable to calculate depth from AST"]


class TestDepthHelpers:
    """Test depth helper functions."""

    def test_exceeds_max_depth(self) -> None:
        """Test the strict greater-than comparison."""
        assert exceeds_max_depth("{a{b{c}}}", 2) is True
        assert exceeds_max_depth("{a{b{c}}}", 3) is False

    @pytest.mark.parametrize(
        ("depth", "description"),
        [(1, "shallow"), (3, "shallow"), (5, "moderate"), (10, "deep"), (11, "very deep")],
    )
    def test_get_depth_description(self, depth: int, description: str) -> None:
        """Test depth buckets."""
        assert get_depth_description(depth) == description
