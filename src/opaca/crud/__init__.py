"""Generic CRUD engine, request contexts, policies and audit sinks."""

from .audit import (
    AuditEvent,
    AuditEventKind,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from .context import (
    CreateContext,
    DeleteContext,
    ListContext,
    Operation,
    ReadContext,
    RequestContext,
    UpdateContext,
)
from .engine import CrudEngine
from .policies import (
    FailurePolicy,
    RateLimitConfig,
    SoftDeleteConfig,
    TableAcl,
    TableConfig,
    TableHooks,
    TenantConfig,
)
from .response import CrudResponse
from .serialization import SerializeOptions, normalize_for_db, serialize_row
from .uow import SQLAlchemyUnitOfWork

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "AuditSink",
    "CreateContext",
    "CrudEngine",
    "CrudResponse",
    "DeleteContext",
    "FailurePolicy",
    "InMemoryAuditSink",
    "ListContext",
    "LoggingAuditSink",
    "Operation",
    "RateLimitConfig",
    "ReadContext",
    "RequestContext",
    "SQLAlchemyUnitOfWork",
    "SerializeOptions",
    "SoftDeleteConfig",
    "TableAcl",
    "TableConfig",
    "TableHooks",
    "TenantConfig",
    "UpdateContext",
    "normalize_for_db",
    "serialize_row",
]
