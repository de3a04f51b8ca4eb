"""Audit events emitted by the CRUD engine, and simple sinks."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .context import RequestContext

logger = logging.getLogger("opaca.audit")


class AuditEventKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"


@dataclass(frozen=True)
class AuditEvent:
    """One audited operation on a table.

    Attributes:
        kind: What happened.
        table: Physical table name.
        payload: Kind-specific data (``data`` for writes, ``id``, ``soft``
            for deletes, ``query`` for list reads).
        timestamp: When the event occurred (UTC).
    """

    kind: AuditEventKind
    table: str
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "table": self.table, **self.payload}


class AuditSink(Protocol):
    """Receives every audit event; may be sync or async."""

    def on_event(
        self, event: AuditEvent, ctx: RequestContext
    ) -> None | Awaitable[None]: ...


class InMemoryAuditSink:
    """Keeps events in memory. Intended for tests and development."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def on_event(self, event: AuditEvent, ctx: RequestContext) -> None:
        self.events.append(event)

    def of_kind(self, kind: AuditEventKind) -> list[AuditEvent]:
        return [e for e in self.events if e.kind is kind]

    def clear(self) -> None:
        self.events.clear()


class LoggingAuditSink:
    """Writes each event to the ``opaca.audit`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def on_event(self, event: AuditEvent, ctx: RequestContext) -> None:
        logger.log(
            self.level,
            "audit %s on %s (request_id=%s): %s",
            event.kind.value,
            event.table,
            ctx.request_id,
            dict(event.payload),
        )
