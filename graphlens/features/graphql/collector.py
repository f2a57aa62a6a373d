"""Entry collection sink contract and two in-process implementations.

The observer never stores records itself. It hands every record to an
``EntryCollector``: ``collect`` for ordinary telemetry that may be buffered,
``collect_immediate`` for errors and other terminal events that should be
flushed right away.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from graphlens.features.graphql.models import GraphQLPayload

GRAPHQL_ENTRY_KIND = "graphql"


@runtime_checkable
class EntryCollector(Protocol):
    """Destination for observability records."""

    async def collect(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None: ...

    async def collect_immediate(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None: ...


@dataclass(frozen=True, slots=True)
class CollectedEntry:
    """A record as received by ``MemoryEntryCollector``."""

    kind: str
    payload: GraphQLPayload
    correlation_id: str | None
    immediate: bool


class MemoryEntryCollector:
    """Bounded in-memory collector for tests and local debugging.

    Example:
        collector = MemoryEntryCollector(max_entries=500)
        watcher = GraphQLWatcher(collector)
        ...
        collector.payloads()[-1].operation_name
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self.entries: deque[CollectedEntry] = deque(maxlen=max_entries)

    async def collect(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None:
        self.entries.append(CollectedEntry(kind, payload, correlation_id, immediate=False))

    async def collect_immediate(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None:
        self.entries.append(CollectedEntry(kind, payload, correlation_id, immediate=True))

    def payloads(self, kind: str | None = None) -> list[GraphQLPayload]:
        """Return collected payloads in arrival order, optionally filtered by kind."""
        return [e.payload for e in self.entries if kind is None or e.kind == kind]

    def clear(self) -> None:
        self.entries.clear()


class LoggingEntryCollector:
    """Collector that writes each record as a structured log line.

    Pair it with ``JSONFormatter`` to get one JSON record per observed event.
    """

    def __init__(
        self,
        logger_name: str = "graphlens.entries",
        level: int = logging.INFO,
    ) -> None:
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def _log(self, kind: str, payload: GraphQLPayload, correlation_id: str | None, level: int) -> None:
        entry: dict[str, Any] = payload.to_entry()
        self._logger.log(
            level,
            "%s entry",
            kind,
            extra={
                "entry_kind": kind,
                "correlation_id": correlation_id,
                "entry": entry,
            },
        )

    async def collect(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None:
        self._log(kind, payload, correlation_id, self._level)

    async def collect_immediate(
        self,
        kind: str,
        payload: GraphQLPayload,
        correlation_id: str | None = None,
    ) -> None:
        level = logging.WARNING if payload.has_errors else self._level
        self._log(kind, payload, correlation_id, level)
        for handler in self._logger.handlers:
            handler.flush()


__all__ = [
    "GRAPHQL_ENTRY_KIND",
    "CollectedEntry",
    "EntryCollector",
    "LoggingEntryCollector",
    "MemoryEntryCollector",
]
