"""Query depth estimation.

``calculate_depth`` scans raw text once and never parses; it is what the
observer runs for every operation. ``calculate_depth_from_ast`` walks an
already parsed graphql-core document for callers that hold one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from graphql.language import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    InlineFragmentNode,
    OperationDefinitionNode,
    SelectionSetNode,
)

DEFAULT_MAX_RECOMMENDED_DEPTH = 10

_COMMENT_RE = re.compile(r"#[^\n]*")
_BLOCK_STRING_RE = re.compile(r'"""[\s\S]*?"""')
_STRING_RE = re.compile(r'"(?:[^"\\\n]|\\.)*"')


@dataclass(slots=True)
class DepthResult:
    """Outcome of a depth calculation.

    Attributes:
        max_depth: Deepest selection-set nesting found.
        deepest_path: Field names leading to the deepest selection set.
        warnings: Human-readable warnings when the depth is excessive.
    """

    max_depth: int = 0
    deepest_path: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _depth_warnings(max_depth: int, max_recommended_depth: int) -> list[str]:
    warnings: list[str] = []
    if max_depth > max_recommended_depth:
        warnings.append(
            f"Query depth of {max_depth} exceeds recommended maximum of "
            f"{max_recommended_depth}. Deep queries can cause performance issues."
        )
    if max_depth > max_recommended_depth * 2:
        warnings.append(
            f"Query is extremely deep ({max_depth} levels). "
            "Consider implementing depth limiting to prevent DoS attacks."
        )
    return warnings


def calculate_depth(
    query: str,
    max_recommended_depth: int = DEFAULT_MAX_RECOMMENDED_DEPTH,
) -> DepthResult:
    """Compute selection-set depth from raw query text in a single scan.

    Braces inside argument lists and string literals never count. The root
    selection set is depth 1, so ``{a{b{c}}}`` has depth 3.

    Args:
        query: Raw query text.
        max_recommended_depth: Depth above which a warning is attached; a
            second warning is added beyond twice this value.

    Returns:
        DepthResult with max depth, the field path to it and any warnings.

    Example:
        >>> calculate_depth("{ user { posts { title } } }").deepest_path
        ['user', 'posts']
    """
    text = _COMMENT_RE.sub("", query)
    text = _BLOCK_STRING_RE.sub('""', text)
    text = _STRING_RE.sub('""', text)

    depth = 0
    max_depth = 0
    deepest_path: list[str] = []
    # One entry per open brace: the field that opened it, or None
    stack: list[str | None] = []
    in_args = 0
    pending = ""
    in_identifier = False
    after_at = False
    in_directive_name = False

    for char in text:
        if char == "(":
            in_args += 1
            in_identifier = False
            continue
        if char == ")":
            in_args = max(in_args - 1, 0)
            continue
        if in_args:
            continue

        if char.isalnum() or char == "_":
            if not in_identifier:
                if char.isdigit():
                    continue
                in_identifier = True
                # Directive names never become the pending field
                in_directive_name = after_at
                after_at = False
                if not in_directive_name:
                    pending = ""
            if not in_directive_name:
                pending += char
            continue
        in_identifier = False

        if char == "@":
            after_at = True
        elif char == "{":
            depth += 1
            # The root selection set belongs to the operation, not a field
            stack.append((pending or None) if depth > 1 else None)
            pending = ""
            if depth > max_depth:
                max_depth = depth
                deepest_path = [name for name in stack if name]
        elif char == "}":
            if depth:
                depth -= 1
                stack.pop()
            pending = ""
        elif char == ":":
            # Alias: the real field name follows
            pending = ""

    return DepthResult(
        max_depth=max_depth,
        deepest_path=deepest_path,
        warnings=_depth_warnings(max_depth, max_recommended_depth),
    )


def calculate_depth_from_ast(
    document: Any,
    max_recommended_depth: int = DEFAULT_MAX_RECOMMENDED_DEPTH,
) -> DepthResult:
    """Compute depth from a parsed graphql-core ``DocumentNode``.

    Counts fields that carry a selection set, so ``{a{b{c}}}`` has depth 2.
    Fragments (inline or spread) count at the level where they are used.
    Anything that is not a document yields an empty result with a warning.
    """
    if not isinstance(document, DocumentNode):
        return DepthResult(warnings=["Unable to calculate depth from AST"])

    fragments = {
        definition.name.value: definition
        for definition in document.definitions
        if isinstance(definition, FragmentDefinitionNode)
    }
    result = DepthResult()

    def traverse(
        selection_set: SelectionSetNode | None,
        depth: int,
        path: list[str],
        seen_fragments: frozenset[str],
    ) -> None:
        if selection_set is None:
            return
        for selection in selection_set.selections:
            if isinstance(selection, FieldNode):
                if selection.selection_set is None:
                    continue
                new_path = [*path, selection.name.value]
                if depth + 1 > result.max_depth:
                    result.max_depth = depth + 1
                    result.deepest_path = new_path
                traverse(selection.selection_set, depth + 1, new_path, seen_fragments)
            elif isinstance(selection, InlineFragmentNode):
                traverse(selection.selection_set, depth, path, seen_fragments)
            elif isinstance(selection, FragmentSpreadNode):
                name = selection.name.value
                fragment = fragments.get(name)
                if fragment is not None and name not in seen_fragments:
                    traverse(fragment.selection_set, depth, path, seen_fragments | {name})

    for definition in document.definitions:
        if isinstance(definition, OperationDefinitionNode):
            traverse(definition.selection_set, 0, [], frozenset())

    result.warnings = _depth_warnings(result.max_depth, max_recommended_depth)
    return result


def exceeds_max_depth(query: str, max_depth: int) -> bool:
    """Check whether a query nests deeper than ``max_depth``."""
    return calculate_depth(query).max_depth > max_depth


def get_depth_description(depth: int) -> str:
    """Describe a depth as shallow, moderate, deep or very deep."""
    if depth <= 3:
        return "shallow"
    if depth <= 6:
        return "moderate"
    if depth <= 10:
        return "deep"
    return "very deep"


__all__ = [
    "DEFAULT_MAX_RECOMMENDED_DEPTH",
    "DepthResult",
    "calculate_depth",
    "calculate_depth_from_ast",
    "exceeds_max_depth",
    "get_depth_description",
]
