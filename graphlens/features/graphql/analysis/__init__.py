"""Pure per-operation analysis: fingerprints, depth, N+1 tallies, tracing, masking."""

from __future__ import annotations

from .depth import DepthResult, calculate_depth, calculate_depth_from_ast, get_depth_description
from .field_tracer import NOOP_TRACER, FieldTrace, FieldTracer, FieldTracerConfig, build_waterfall
from .n_plus_one import N1DetectionResult, N1Detector, N1Warning
from .query_parser import (
    OperationFingerprint,
    hash_query,
    is_introspection_query,
    normalize_query,
    parse_query,
    truncate_query,
)
from .sanitizer import PayloadSanitizer, sanitize, sanitize_response, sanitize_variables

__all__ = [
    "NOOP_TRACER",
    "DepthResult",
    "FieldTrace",
    "FieldTracer",
    "FieldTracerConfig",
    "N1DetectionResult",
    "N1Detector",
    "N1Warning",
    "OperationFingerprint",
    "PayloadSanitizer",
    "build_waterfall",
    "calculate_depth",
    "calculate_depth_from_ast",
    "get_depth_description",
    "hash_query",
    "is_introspection_query",
    "normalize_query",
    "parse_query",
    "sanitize",
    "sanitize_response",
    "sanitize_variables",
    "truncate_query",
]
