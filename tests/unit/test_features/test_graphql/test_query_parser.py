"""Unit tests for query fingerprinting helpers."""

from __future__ import annotations

import re

import pytest

from graphlens.features.graphql.analysis.query_parser import (
    TRUNCATION_MARKER,
    count_fields,
    extract_operation_name,
    extract_operation_type,
    format_query,
    hash_query,
    is_introspection_query,
    normalize_query,
    parse_query,
    truncate_query,
)
from graphlens.features.graphql.models import OperationType


class TestNormalizeQuery:
    """Test whitespace and comment normalization."""

    def test_collapses_whitespace_around_punctuation(self) -> None:
        """Test that formatting differences disappear."""
        assert normalize_query("{ user ( id : 1 ) { id } }") == "{user(id:1){id}}"

    def test_strips_comments(self) -> None:
        """Test that # comments are removed."""
        assert normalize_query("{ a # trailing\n b }") == "{a b}"


class TestHashQuery:
    """Test query hashing."""

    def test_empty_query_hash_is_seed(self) -> None:
        """Test the hash of empty text is the 5381 seed."""
        assert hash_query("") == "00001505"

    def test_single_character(self) -> None:
        """Test one round of the multiply-xor fold."""
        # (5381 * 33) ^ ord("a") == 0x2B5C4
        assert hash_query("a") == "0002b5c4"

    def test_hash_is_eight_hex_chars(self) -> None:
        """Test hash format."""
        assert re.fullmatch(r"[0-9a-f]{8}", hash_query("query GetUser { user { id } }"))

    def test_whitespace_insensitive(self) -> None:
        """Test that formatting does not change the hash."""
        assert hash_query("{ user { id } }") == hash_query("{user{id}}")
        assert hash_query("{\n  user {\n    id\n  }\n}") == hash_query("{user{id}}")

    def test_comment_insensitive(self) -> None:
        """Test that comments do not change the hash."""
        assert hash_query("{ a } # note") == hash_query("{a}")

    def test_token_sensitive(self) -> None:
        """Test that different tokens produce different hashes."""
        assert hash_query("query A { x }") != hash_query("query B { x }")
        assert hash_query("{ user { id } }") != hash_query("{ user { name } }")


class TestTruncateQuery:
    """Test query truncation."""

    def test_short_query_unchanged(self) -> None:
        """Test queries within the limit pass through."""
        assert truncate_query("{ a }", 100) == "{ a }"

    def test_exact_length_unchanged(self) -> None:
        """Test a query of exactly max_size is kept."""
        query = "x" * 64
        assert truncate_query(query, 64) == query

    def test_long_query_gets_marker(self) -> None:
        """Test long queries are cut and marked."""
        query = "{ " + "field, " * 200 + "}"
        result = truncate_query(query, 100)

        assert result.endswith(TRUNCATION_MARKER)
        assert len(result) <= 100 + len(TRUNCATION_MARKER)

    def test_prefers_cut_before_separator(self) -> None:
        """Test the cut lands on the last comma in the tail of the window."""
        query = "{ " + "field, " * 200 + "}"
        window = query[:100]
        result = truncate_query(query, 100)

        assert result == window[: window.rfind(",")] + TRUNCATION_MARKER

    def test_falls_back_to_window_minus_fifty(self) -> None:
        """Test a text without separators is cut 50 characters before the limit."""
        result = truncate_query("a" * 500, 100)
        assert result == "a" * 50 + TRUNCATION_MARKER


class TestOperationExtraction:
    """Test operation name and type extraction."""

    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("query GetUser($id: ID!) { user(id: $id) { name } }", "GetUser"),
            ("mutation CreatePost { createPost { id } }", "CreatePost"),
            ("subscription OnTick { ticks }", "OnTick"),
            ("{ user { id } }", None),
            ("query { user { id } }", None),
            ("# query Fake\nquery Real { a }", "Real"),
        ],
    )
    def test_extract_operation_name(self, query: str, expected: str | None) -> None:
        """Test operation name extraction."""
        assert extract_operation_name(query) == expected

    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("mutation X { a }", OperationType.MUTATION),
            ("  subscription OnTick { ticks }", OperationType.SUBSCRIPTION),
            ("query Q { a }", OperationType.QUERY),
            ("{ a }", OperationType.QUERY),
            ("# comment\nmutation { a }", OperationType.MUTATION),
        ],
    )
    def test_extract_operation_type(self, query: str, expected: OperationType) -> None:
        """Test operation type extraction defaults to query."""
        assert extract_operation_type(query) is expected


class TestIntrospection:
    """Test introspection detection."""

    @pytest.mark.parametrize(
        "query",
        [
            "{ __schema { types { name } } }",
            '{ __type(name: "User") { name } }',
            "query IntrospectionQuery { __schema { queryType { name } } }",
        ],
    )
    def test_introspection_detected(self, query: str) -> None:
        """Test schema reads are introspection."""
        assert is_introspection_query(query) is True

    def test_typename_is_not_introspection(self) -> None:
        """Test __typename is an ordinary meta field."""
        assert is_introspection_query("{ user { __typename id } }") is False

    def test_regular_query(self) -> None:
        """Test ordinary queries are not introspection."""
        assert is_introspection_query("{ user { id } }") is False


class TestCountFields:
    """Test field counting."""

    def test_counts_fields_with_selection_sets(self) -> None:
        """Test identifiers that open a selection set are counted."""
        assert count_fields("{ user { posts { title } } }") == 2

    def test_ignores_braces_in_strings(self) -> None:
        """Test string literals are dropped before counting."""
        assert count_fields('{ search(q: "x {") { id } }') == 1


class TestParseQuery:
    """Test one-call fingerprinting."""

    def test_fingerprint_fields(self) -> None:
        """Test all fingerprint attributes are populated."""
        fingerprint = parse_query("mutation AddPost { addPost { id } }")

        assert fingerprint.operation_name == "AddPost"
        assert fingerprint.operation_type is OperationType.MUTATION
        assert fingerprint.hash == hash_query("mutation AddPost { addPost { id } }")
        assert fingerprint.is_introspection is False
        assert fingerprint.query == "mutation AddPost { addPost { id } }"

    def test_hash_covers_full_text_when_truncated(self) -> None:
        """Test the hash is computed before truncation."""
        query = "{ " + "field, " * 200 + "}"
        fingerprint = parse_query(query, max_size=100)

        assert fingerprint.query.endswith(TRUNCATION_MARKER)
        assert fingerprint.hash == hash_query(query)


class TestFormatQuery:
    """Test pretty printing."""

    def test_one_selection_per_line(self) -> None:
        """Test nested selections are indented."""
        assert format_query("{ user { id name } }") == "{\n  user {\n    id\n    name\n  }\n}"
