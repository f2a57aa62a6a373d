"""N+1 resolver pattern detection.

Counts resolver invocations per ``ParentType.field`` during one operation. A
field resolved at least ``threshold`` times under the same parent type is most
likely fetched once per parent item and is reported with a suggestion.

Example:
    >>> detector = N1Detector(threshold=3)
    >>> for post_id in range(5):
    ...     detector.record_call("Post", "author", parent_id=post_id)
    >>> detector.detect().warnings[0].count
    5
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_N1_THRESHOLD = 10

_RELATION_PATTERNS = tuple(
    re.compile(p) for p in (r"s$", r"^get", r"^find", r"List$", r"All$")
)
_COMPUTED_PATTERNS = tuple(
    re.compile(p)
    for p in (r"^is", r"^has", r"^can", r"Count$", r"Total$", r"^calculate", r"^compute")
)


@dataclass(frozen=True, slots=True)
class N1Warning:
    """A resolver that ran often enough to look like an N+1 pattern."""

    field: str
    parent_type: str
    count: int
    suggestion: str


@dataclass(slots=True)
class N1DetectionResult:
    """Warnings found for one operation, most severe first."""

    has_warnings: bool = False
    warnings: list[N1Warning] = field(default_factory=list)


def _looks_like_relation(field_name: str) -> bool:
    return any(p.search(field_name) for p in _RELATION_PATTERNS)


def _looks_like_computed(field_name: str) -> bool:
    return any(p.search(field_name) for p in _COMPUTED_PATTERNS)


def generate_suggestion(parent_type: str, field_name: str, count: int) -> str:
    """Build remediation advice based on how the field name reads."""
    if _looks_like_relation(field_name):
        return (
            f"Consider using DataLoader to batch {parent_type}.{field_name} queries. "
            f"This resolver was called {count} times, likely once per parent item. "
            "DataLoader can batch these into a single database query."
        )
    if _looks_like_computed(field_name):
        return (
            f"The computed field {parent_type}.{field_name} was called {count} times. "
            "If this involves database queries, consider caching or batching."
        )
    return (
        f"The resolver {parent_type}.{field_name} was called {count} times. "
        "Consider using DataLoader or batch fetching to optimize this."
    )


class N1Detector:
    """Per-operation resolver call tally.

    Create one detector per tracked operation and drop it after ``detect()``.
    """

    def __init__(self, threshold: int = DEFAULT_N1_THRESHOLD) -> None:
        self.threshold = threshold
        self._counts: dict[tuple[str, str], int] = defaultdict(int)
        self._parent_ids: dict[tuple[str, str], set[Any]] = defaultdict(set)

    def record_call(self, parent_type: str, field_name: str, parent_id: Any = None) -> None:
        """Count one resolver invocation, remembering the parent id when known."""
        key = (parent_type, field_name)
        self._counts[key] += 1
        if parent_id is not None:
            self._parent_ids[key].add(parent_id)

    def get_count(self, parent_type: str, field_name: str) -> int:
        return self._counts.get((parent_type, field_name), 0)

    def get_all_counts(self) -> dict[str, int]:
        """Return counts keyed by ``"ParentType.field"``."""
        return {f"{parent}.{name}": count for (parent, name), count in self._counts.items()}

    def get_distinct_parents(self, parent_type: str, field_name: str) -> int:
        """Number of distinct parent ids seen for a field."""
        return len(self._parent_ids.get((parent_type, field_name), ()))

    @property
    def total_calls(self) -> int:
        return sum(self._counts.values())

    def detect(self, threshold: int | None = None) -> N1DetectionResult:
        """Report every field resolved at least ``threshold`` times.

        Args:
            threshold: Overrides the detector threshold for this call.

        Returns:
            N1DetectionResult with warnings sorted by descending count.
        """
        limit = self.threshold if threshold is None else threshold
        warnings = [
            N1Warning(
                field=name,
                parent_type=parent,
                count=count,
                suggestion=generate_suggestion(parent, name, count),
            )
            for (parent, name), count in self._counts.items()
            if count >= limit
        ]
        warnings.sort(key=lambda w: w.count, reverse=True)
        return N1DetectionResult(has_warnings=bool(warnings), warnings=warnings)

    def get_stats(self) -> dict[str, float]:
        """Summarize the tally: resolvers seen, total, max and average calls."""
        counts = list(self._counts.values())
        if not counts:
            return {"total_resolvers": 0, "total_calls": 0, "max_calls": 0, "avg_calls": 0.0}
        total = sum(counts)
        return {
            "total_resolvers": len(counts),
            "total_calls": total,
            "max_calls": max(counts),
            "avg_calls": total / len(counts),
        }

    def reset(self) -> None:
        self._counts.clear()
        self._parent_ids.clear()


def detect_n1_from_counts(
    counts: Mapping[str, int],
    threshold: int = DEFAULT_N1_THRESHOLD,
) -> list[N1Warning]:
    """Run detection over precomputed ``{"ParentType.field": count}`` tallies."""
    detector = N1Detector(threshold)
    for key, count in counts.items():
        parent, _, name = key.partition(".")
        detector._counts[(parent, name)] += count
    return detector.detect().warnings


__all__ = [
    "DEFAULT_N1_THRESHOLD",
    "N1DetectionResult",
    "N1Detector",
    "N1Warning",
    "detect_n1_from_counts",
    "generate_suggestion",
]
