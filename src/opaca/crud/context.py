"""Request and per-operation contexts handed to policies and hooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..query.syntax import normalize_params

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..query.pagination import ListParams


class Operation(str, Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class RequestContext:
    """Transport-neutral view of one CRUD request.

    Attributes:
        query: Query parameters as ordered ``(key, value)`` pairs. A raw
            query string or a mapping is accepted and normalized.
        body: Raw JSON body (``bytes``/``str``) or an already decoded object.
        state: Whatever the authentication layer attached to the request
            (principal, roles, tenant claims); read by ACLs and tenant
            providers.
        request_id: Correlation ID for request tracing.
    """

    query: Any = ()
    body: Any = None
    state: Mapping[str, Any] = field(default_factory=dict)
    request_id: str | None = None
    method: str | None = None
    path: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", tuple(normalize_params(self.query)))

    def query_dict(self) -> dict[str, str]:
        """First value per key, in request order."""
        out: dict[str, str] = {}
        for key, value in self.query:
            out.setdefault(key, value)
        return out


@dataclass(frozen=True)
class OperationContext:
    table: str
    request: RequestContext

    @property
    def state(self) -> Mapping[str, Any]:
        return self.request.state


@dataclass(frozen=True)
class ListContext(OperationContext):
    params: ListParams | None = None


@dataclass(frozen=True)
class ReadContext(OperationContext):
    id: Any = None


@dataclass(frozen=True)
class CreateContext(OperationContext):
    data: Mapping[str, Any] = field(default_factory=dict)
    tenant_id: Any = None


@dataclass(frozen=True)
class UpdateContext(OperationContext):
    id: Any = None
    data: Mapping[str, Any] = field(default_factory=dict)
    tenant_id: Any = None


@dataclass(frozen=True)
class DeleteContext(OperationContext):
    id: Any = None
    soft: bool = False
    tenant_id: Any = None
