"""Masking of sensitive values in GraphQL variables and responses.

Values are masked when their key matches a configured pattern or when a string
value itself looks like a credential (JWT, bearer token, vendor API key).

Example:
    >>> sanitize({"password": "p", "nested": {"apiKey": "k"}}, ["password", "apiKey"])
    {'password': '***', 'nested': {'apiKey': '***'}}
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

MASKED_VALUE = "***"
DEFAULT_MAX_DEPTH = 10
MIN_SECRET_LENGTH = 20

_SECRET_PATTERNS = (
    # JWT
    re.compile(r"^eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+$"),
    re.compile(r"^Bearer\s+\S+$", re.IGNORECASE),
    re.compile(r"^(sk|pk|api|key|secret|token)[-_][a-zA-Z0-9]{20,}$", re.IGNORECASE),
    re.compile(r"^Basic\s+[a-zA-Z0-9+/]+=*$", re.IGNORECASE),
    # AWS access key id
    re.compile(r"^AKIA[0-9A-Z]{16}$"),
    # GitHub tokens
    re.compile(r"^(ghp|gho|ghu|ghs|ghr)_[a-zA-Z0-9]{36,}$"),
    # Stripe keys
    re.compile(r"^(sk|pk)_(test|live)_[a-zA-Z0-9]{20,}$"),
)


def _truncation_marker() -> dict[str, Any]:
    return {"_truncated": True, "_message": "Max depth exceeded"}


def is_sensitive_key(key: str, patterns: Iterable[str]) -> bool:
    """Match a key against patterns: exact, substring, or ``prefix*`` (case-insensitive)."""
    lower_key = key.lower()
    for pattern in patterns:
        lower_pattern = pattern.lower()
        if lower_pattern.endswith("*"):
            if lower_key.startswith(lower_pattern[:-1]):
                return True
        elif lower_pattern in lower_key:
            return True
    return False


def looks_like_secret(value: str) -> bool:
    """Check whether a string has the shape of a token or API key."""
    if len(value) < MIN_SECRET_LENGTH:
        return False
    return any(pattern.match(value) for pattern in _SECRET_PATTERNS)


def _sanitize_leaf(value: Any) -> Any:
    if isinstance(value, str) and looks_like_secret(value):
        return MASKED_VALUE
    return value


def _sanitize_mapping(
    obj: Mapping[Any, Any],
    patterns: list[str],
    depth: int,
    max_depth: int,
) -> dict[str, Any]:
    if depth >= max_depth:
        return _truncation_marker()

    result: dict[str, Any] = {}
    for key, value in obj.items():
        name = str(key)
        if is_sensitive_key(name, patterns):
            result[name] = MASKED_VALUE
        else:
            result[name] = _sanitize_value(value, patterns, depth + 1, max_depth)
    return result


def _sanitize_sequence(
    items: Iterable[Any],
    patterns: list[str],
    depth: int,
    max_depth: int,
) -> list[Any]:
    if depth >= max_depth:
        return [_truncation_marker()]
    return [_sanitize_value(item, patterns, depth + 1, max_depth) for item in items]


def _sanitize_value(value: Any, patterns: list[str], depth: int, max_depth: int) -> Any:
    if isinstance(value, Mapping):
        return _sanitize_mapping(value, patterns, depth, max_depth)
    if isinstance(value, (list, tuple)):
        return _sanitize_sequence(value, patterns, depth, max_depth)
    return _sanitize_leaf(value)


def sanitize(
    value: Any,
    sensitive_patterns: Iterable[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Any:
    """Return a masked copy of ``value``.

    Args:
        value: Mapping, list/tuple or scalar to sanitize. The input is never mutated.
        sensitive_patterns: Key patterns whose values are masked outright.
        max_depth: Nesting level at which whole subtrees are replaced by a
            truncation marker.

    Returns:
        A structure of the same shape with sensitive values replaced by ``"***"``.
    """
    return _sanitize_value(value, list(sensitive_patterns), 0, max_depth)


def sanitize_variables(
    variables: Mapping[str, Any] | None,
    sensitive_patterns: Iterable[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict[str, Any] | None:
    """Sanitize operation variables; None and non-mappings pass through as None."""
    if not isinstance(variables, Mapping):
        return None
    return _sanitize_mapping(variables, list(sensitive_patterns), 0, max_depth)


def sanitize_response(
    data: Any,
    sensitive_patterns: Iterable[str],
    max_size: int,
) -> Any:
    """Sanitize response data, replacing it entirely when it is too large.

    Returns:
        None for None input, ``{"_error": ...}`` when the data cannot be
        serialized, ``{"_truncated": True, "_size": n, "_maxSize": max}`` when
        the serialized UTF-8 size exceeds ``max_size``, otherwise the sanitized data.
    """
    if data is None:
        return None

    try:
        size = len(json.dumps(data, ensure_ascii=False, default=str).encode("utf-8"))
    except (TypeError, ValueError, RecursionError):
        logger.debug("Response data could not be serialized", exc_info=True)
        return {"_error": "Unable to serialize response"}

    if size > max_size:
        return {"_truncated": True, "_size": size, "_maxSize": max_size}

    return sanitize(data, sensitive_patterns)


class PayloadSanitizer:
    """Sanitizer bound to one set of key patterns.

    Example:
        sanitizer = PayloadSanitizer(settings.sensitive_variables)
        sanitizer.sanitize_variables({"token": "abc"})  # {"token": "***"}
    """

    def __init__(self, sensitive_patterns: Iterable[str], max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.sensitive_patterns = list(sensitive_patterns)
        self.max_depth = max_depth

    def sanitize(self, value: Any) -> Any:
        return sanitize(value, self.sensitive_patterns, self.max_depth)

    def sanitize_variables(self, variables: Mapping[str, Any] | None) -> dict[str, Any] | None:
        return sanitize_variables(variables, self.sensitive_patterns, self.max_depth)

    def sanitize_response(self, data: Any, max_size: int) -> Any:
        return sanitize_response(data, self.sensitive_patterns, max_size)


__all__ = [
    "MASKED_VALUE",
    "PayloadSanitizer",
    "is_sensitive_key",
    "looks_like_secret",
    "sanitize",
    "sanitize_response",
    "sanitize_variables",
]
