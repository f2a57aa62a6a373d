"""Lightweight GraphQL query fingerprinting.

Regex and single-pass helpers over raw query text. None of them build an AST,
so they are cheap enough to run for every observed operation.

Example:
    >>> hash_query("{ user { id } }") == hash_query("{user{id}}")
    True
    >>> extract_operation_name("query GetUser($id: ID!) { user(id: $id) { name } }")
    'GetUser'
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from graphlens.features.graphql.models import OperationType

TRUNCATION_MARKER = "\n... [truncated]"

_COMMENT_RE = re.compile(r"#[^\n]*")
_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_SPACE_RE = re.compile(r"\s*([{}():,!])\s*")
_OPERATION_NAME_RE = re.compile(r"\b(?:query|mutation|subscription)\s+([a-zA-Z_][a-zA-Z0-9_]*)")
_OPERATION_TYPE_RE = re.compile(r"^(query|mutation|subscription)\b")
_INTROSPECTION_RE = re.compile(r"__schema|(?<![a-z0-9_])__type\s*[({]|introspectionquery")
_STRING_RE = re.compile(r'"[^"]*"')
_FIELD_RE = re.compile(r"\b[a-zA-Z_][a-zA-Z0-9_]*\s*(?:\([^)]*\))?\s*(?:\{|\Z)")


@dataclass(frozen=True, slots=True)
class OperationFingerprint:
    """Everything the observer derives from query text before execution."""

    hash: str
    query: str
    operation_name: str | None
    operation_type: OperationType
    field_count: int
    is_introspection: bool


def normalize_query(query: str) -> str:
    """Normalize query text so formatting-only edits do not change it.

    Strips ``#`` comments, collapses whitespace runs to one space and removes
    whitespace around ``{ } ( ) : , !``.
    """
    normalized = _COMMENT_RE.sub("", query)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    normalized = _PUNCTUATION_SPACE_RE.sub(r"\1", normalized)
    return normalized.strip()


def hash_query(query: str) -> str:
    """Hash normalized query text into an 8-character lowercase hex id.

    Uses a 32-bit multiply-xor fold seeded at 5381, so two queries that differ
    only in whitespace or comments share a hash.
    """
    h = 5381
    for char in normalize_query(query):
        h = ((h * 33) ^ ord(char)) & 0xFFFFFFFF
    return f"{h:08x}"


def truncate_query(query: str, max_size: int) -> str:
    """Shorten a query to roughly ``max_size`` characters.

    Prefers to cut right before the last ``}`` or ``,`` that falls within the
    final 50 characters of the window, then appends ``TRUNCATION_MARKER``.
    """
    if len(query) <= max_size:
        return query

    window = query[:max_size]
    cut = max(window.rfind("}"), window.rfind(","), max_size - 50, 0)
    return window[:cut] + TRUNCATION_MARKER


def extract_operation_name(query: str) -> str | None:
    """Return the name following the operation keyword, or None if anonymous."""
    match = _OPERATION_NAME_RE.search(_COMMENT_RE.sub("", query))
    return match.group(1) if match else None


def extract_operation_type(query: str) -> OperationType:
    """Return the operation kind from the leading keyword (default ``query``)."""
    match = _OPERATION_TYPE_RE.match(_COMMENT_RE.sub("", query).lstrip())
    if match:
        return OperationType(match.group(1))
    return OperationType.QUERY


def is_introspection_query(query: str) -> bool:
    """Check whether the query reads the schema (``__schema``/``__type(...)``).

    ``__typename`` is an ordinary meta field and never counts.
    """
    return _INTROSPECTION_RE.search(query.lower()) is not None


def count_fields(query: str) -> int:
    """Roughly count selected fields that open a selection set.

    Counts identifiers followed by an optional argument list and then ``{`` or
    the end of the text. String literals are dropped first.
    """
    stripped = _STRING_RE.sub("", _COMMENT_RE.sub("", query))
    return len(_FIELD_RE.findall(stripped))


def parse_query(query: str, max_size: int = 8192) -> OperationFingerprint:
    """Fingerprint a query in one call.

    Args:
        query: Raw query text as received by the server.
        max_size: Maximum stored query length before truncation.

    Returns:
        OperationFingerprint with the hash computed over the full text and the
        stored query truncated to ``max_size``.
    """
    return OperationFingerprint(
        hash=hash_query(query),
        query=truncate_query(query, max_size),
        operation_name=extract_operation_name(query),
        operation_type=extract_operation_type(query),
        field_count=count_fields(query),
        is_introspection=is_introspection_query(query),
    )


def format_query(query: str, indent: str = "  ") -> str:
    """Pretty print a query with one selection per line.

    Only braces drive indentation; it is meant for display, not round-tripping.
    """
    lines: list[str] = []
    level = 0
    current = ""
    in_string = False

    for char in normalize_query(query):
        if char == '"':
            in_string = not in_string
            current += char
            continue
        if in_string:
            current += char
            continue
        if char == "{":
            header = f"{current.strip()} {{".lstrip()
            lines.append(f"{indent * level}{header}")
            level += 1
            current = ""
        elif char == "}":
            if current.strip():
                lines.append(f"{indent * level}{current.strip()}")
            level = max(level - 1, 0)
            lines.append(f"{indent * level}}}")
            current = ""
        elif char == " " and not current.strip():
            continue
        elif char == " " and level > 0 and "(" not in current:
            lines.append(f"{indent * level}{current.strip()}")
            current = ""
        else:
            current += char

    if current.strip():
        lines.append(current.strip())
    return "\n".join(lines)


__all__ = [
    "TRUNCATION_MARKER",
    "OperationFingerprint",
    "count_fields",
    "extract_operation_name",
    "extract_operation_type",
    "format_query",
    "hash_query",
    "is_introspection_query",
    "normalize_query",
    "parse_query",
    "truncate_query",
]
