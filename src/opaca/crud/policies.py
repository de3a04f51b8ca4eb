"""
Per-table policies consumed by the CRUD engine.

ACL gates and lifecycle hooks are plain classes: subclass and override the
methods you need. Every method may be synchronous or ``async``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from ..utils import utcnow

if TYPE_CHECKING:
    from .context import (
        CreateContext,
        DeleteContext,
        ListContext,
        Operation,
        ReadContext,
        RequestContext,
        UpdateContext,
    )

MaybeAwaitable = Union[Any, Awaitable[Any]]


class TableAcl:
    """Authorization gates. Every gate allows by default."""

    def can_list(self, ctx: ListContext) -> bool | Awaitable[bool]:
        return True

    def can_read(self, ctx: ReadContext) -> bool | Awaitable[bool]:
        return True

    def can_create(self, ctx: CreateContext) -> bool | Awaitable[bool]:
        return True

    def can_update(self, ctx: UpdateContext) -> bool | Awaitable[bool]:
        return True

    def can_delete(self, ctx: DeleteContext) -> bool | Awaitable[bool]:
        return True


class TableHooks:
    """Lifecycle hooks.

    ``before_*`` hooks may return a transformed payload; returning ``None``
    keeps the payload unchanged. Raising aborts the request.
    ``after_*`` hooks observe the persisted row.
    """

    def before_create(self, ctx: CreateContext, data: dict[str, Any]) -> MaybeAwaitable:
        return data

    def after_create(self, ctx: CreateContext, row: dict[str, Any]) -> MaybeAwaitable:
        return None

    def before_update(self, ctx: UpdateContext, data: dict[str, Any]) -> MaybeAwaitable:
        return data

    def after_update(self, ctx: UpdateContext, row: dict[str, Any]) -> MaybeAwaitable:
        return None

    def before_delete(self, ctx: DeleteContext) -> MaybeAwaitable:
        return None

    def after_delete(self, ctx: DeleteContext, row: dict[str, Any]) -> MaybeAwaitable:
        return None


@dataclass(frozen=True)
class SoftDeleteConfig:
    """Mark rows deleted by setting *column* instead of removing them."""

    column: str = "deletedAt"
    exclude_by_default: bool = True
    value_factory: Callable[[], Any] = utcnow


@dataclass(frozen=True)
class TenantConfig:
    """Scope rows by an equality condition on *column*."""

    column: str
    get_tenant_id: Callable[[RequestContext], Any]
    required: bool = True


@dataclass(frozen=True)
class RateLimitConfig:
    """``allow(request, table, operation)`` returning false yields a 429."""

    allow: Callable[[RequestContext, str, Operation], bool | Awaitable[bool]]


class FailurePolicy(str, Enum):
    """How failures of after-hooks and the audit sink are handled.

    ``RAISE`` runs them inside the unit of work; a failure rolls it back
    and the request fails with a 500. ``LOG`` runs them after commit and
    only logs failures.
    """

    RAISE = "raise"
    LOG = "log"


class _Inherit(Enum):
    INHERIT = "inherit"


INHERIT = _Inherit.INHERIT


@dataclass(frozen=True)
class TableConfig:
    """Policy for one table.

    ``soft_delete`` and ``tenant`` inherit the engine-wide defaults unless
    set; ``None`` disables them for this table.
    """

    id_column: str | None = None
    read_only: tuple[str, ...] = ()
    json_fields: tuple[str, ...] = ()
    acl: TableAcl = field(default_factory=TableAcl)
    hooks: TableHooks = field(default_factory=TableHooks)
    soft_delete: SoftDeleteConfig | None | _Inherit = INHERIT
    tenant: TenantConfig | None | _Inherit = INHERIT
