"""JSON Lines formatter for graphlens log records.

Two kinds of records flow through it: ordinary module logs carrying
``extra=`` fields (operation name, subscription ids, durations), and the
observed-entry lines written by ``LoggingEntryCollector``, which attach the
full camelCase record under ``entry``. For the latter, a handful of entry
fields are lifted to the top level so log pipelines can filter on them
without parsing the nested body.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

# LogRecord internals that never belong in the output body
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)

# Output key -> camelCase key of an observed entry
ENTRY_LABELS: dict[str, str] = {
    "graphql_operation": "operationName",
    "graphql_operation_type": "operationType",
    "graphql_query_hash": "queryHash",
    "graphql_status": "statusCode",
    "graphql_duration_ms": "duration",
    "graphql_has_errors": "hasErrors",
    "graphql_subscription_event": "subscriptionEvent",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, UTC timestamps, trace ids when a span is active.

    Context bound with ``set_log_context`` (``graphql_correlation_id`` while an
    operation is being finished) arrives as record attributes through
    ``ContextInjectingFilter`` and is written like any other ``extra`` field.

    Example output for an observed operation:
        ```json
        {"level": "INFO", "logger": "graphlens.entries", "message": "graphql entry", "timestamp": "2025-01-01T00:00:00.123Z", "service": "graphlens", "graphql_operation": "GetUser", "graphql_operation_type": "query", "graphql_status": 200, "entry_kind": "graphql", "correlation_id": "5f0c...", "entry": {"operationName": "GetUser", "...": "..."}}
        ```
    """

    def __init__(
        self,
        fmt_keys: dict[str, str] | None = None,
        static: dict[str, Any] | None = None,
        promote_entry_fields: bool = True,
    ) -> None:
        """Initialize JSON formatter.

        Args:
            fmt_keys: Mapping of output keys to LogRecord attributes.
                Default: {"level": "levelname", "logger": "name", "message": "message"}
            static: Fields added to every line (e.g., {"service": "graphlens"}).
            promote_entry_fields: Copy the ``ENTRY_LABELS`` fields of an attached
                ``entry`` to the top level.
        """
        super().__init__()
        self.fmt_keys = fmt_keys or {
            "level": "levelname",
            "logger": "name",
            "message": "message",
        }
        self.static = static or {}
        self.promote_entry_fields = promote_entry_fields

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict[str, Any] = {k: getattr(record, v, None) for k, v in self.fmt_keys.items()}

        data["timestamp"] = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            ctx = span.get_span_context()
            data["trace_id"] = format(ctx.trace_id, "032x")
            data["span_id"] = format(ctx.span_id, "016x")

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info).replace("\n", "\\n")

        if record.stack_info:
            data["stack_trace"] = record.stack_info.replace("\n", "\\n")

        if self.static:
            data.update(self.static)

        entry = getattr(record, "entry", None)
        if self.promote_entry_fields and isinstance(entry, dict):
            data.update(_entry_labels(entry))

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in data:
                data[key] = value

        return json.dumps(data, ensure_ascii=False, default=str)


def _entry_labels(entry: dict[str, Any]) -> dict[str, Any]:
    return {
        label: entry[source]
        for label, source in ENTRY_LABELS.items()
        if entry.get(source) is not None
    }


__all__ = ["ENTRY_LABELS", "JSONFormatter"]
