"""
Generic CRUD engine.

Implements list/get/create/update/delete over any compiled table. Every
request walks Authorize -> Scope (tenant) -> Filter (soft delete and
predicate) -> Execute -> Serialize -> Audit, and any step may
short-circuit with a status-coded error envelope.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import (
    AuditError,
    AuthorizationError,
    BadRequestError,
    ConfigurationError,
    HookError,
    NotFoundError,
    OpacaError,
    RateLimitError,
    StorageError,
    TenantError,
)
from ..query.coercion import coerce_id, split_list
from ..query.compiler import compile_predicate
from ..query.pagination import DEFAULT_MAX_LIMIT, parse_list_params
from ..schema.compiler import UPDATED_AT
from ..utils import maybe_await, utcnow
from ..validation import build_table_schemas
from .audit import AuditEvent, AuditEventKind
from .context import (
    CreateContext,
    DeleteContext,
    ListContext,
    Operation,
    ReadContext,
    UpdateContext,
)
from .policies import INHERIT, FailurePolicy, TableConfig
from .response import CrudResponse
from .serialization import SerializeOptions, normalize_for_db, serialize_row
from .uow import SQLAlchemyUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from ..config.types import BuiltConfig
    from ..query.strategy import FilterOperatorRegistry
    from ..schema.columns import ColumnSpec
    from ..schema.compiler import PhysicalSchema, PhysicalTable
    from ..validation import TableSchemas
    from .audit import AuditSink
    from .context import RequestContext
    from .policies import RateLimitConfig, SoftDeleteConfig, TenantConfig

logger = logging.getLogger("opaca.crud")


@dataclass(frozen=True)
class _TableRuntime:
    """Everything resolved once per table: columns, policies, schemas."""

    table: PhysicalTable
    config: TableConfig
    schemas: TableSchemas
    id_column: ColumnSpec
    soft_delete: SoftDeleteConfig | None
    tenant: TenantConfig | None

    @property
    def name(self) -> str:
        return self.table.name


class CrudEngine:
    """
    Uniform CRUD surface over the tables of a compiled schema.

    Args:
        config: The immutable build artifact.
        schema: Tables compiled from *config* for the storage dialect.
        session_factory: Callable returning a fresh ``AsyncSession``
            (typically an ``async_sessionmaker``).
        tables: Per-table policy keyed by table name or collection slug.
        max_limit: Upper bound for ``limit`` on list requests.
        serialize: Output representation of dates.
        soft_delete: Default soft-delete policy inherited by every table.
        tenant: Default tenant policy inherited by every table.
        rate_limit: Optional limiter consulted before every request.
        audit: Optional audit sink.
        hook_failure: Failure policy for ``after_*`` hooks.
        audit_failure: Failure policy for the audit sink.
        registry: Custom filter operator registry.
    """

    def __init__(
        self,
        config: BuiltConfig,
        schema: PhysicalSchema,
        *,
        session_factory: Callable[[], AsyncSession],
        tables: Mapping[str, TableConfig] | None = None,
        max_limit: int = DEFAULT_MAX_LIMIT,
        serialize: SerializeOptions | None = None,
        soft_delete: SoftDeleteConfig | None = None,
        tenant: TenantConfig | None = None,
        rate_limit: RateLimitConfig | None = None,
        audit: AuditSink | None = None,
        hook_failure: FailurePolicy = FailurePolicy.RAISE,
        audit_failure: FailurePolicy = FailurePolicy.RAISE,
        registry: FilterOperatorRegistry | None = None,
    ) -> None:
        self._config = config
        self._schema = schema
        self._session_factory = session_factory
        self._tables = dict(tables or {})
        self._max_limit = max_limit
        self._serialize_options = serialize or SerializeOptions()
        self._soft_delete = soft_delete
        self._tenant = tenant
        self._rate_limit = rate_limit
        self._audit = audit
        self._hook_failure = FailurePolicy(hook_failure)
        self._audit_failure = FailurePolicy(audit_failure)
        self._registry = registry
        self._runtimes: dict[str, _TableRuntime] = {}

    # -- public operations -------------------------------------------------

    async def list_rows(self, table: str, ctx: RequestContext) -> CrudResponse:
        return await self._dispatch(Operation.LIST, table, ctx, self._list)

    async def get_row(
        self, table: str, row_id: str, ctx: RequestContext
    ) -> CrudResponse:
        return await self._dispatch(Operation.READ, table, ctx, self._get, row_id)

    async def create_row(self, table: str, ctx: RequestContext) -> CrudResponse:
        return await self._dispatch(Operation.CREATE, table, ctx, self._create)

    async def update_row(
        self, table: str, row_id: str, ctx: RequestContext
    ) -> CrudResponse:
        return await self._dispatch(Operation.UPDATE, table, ctx, self._update, row_id)

    async def delete_row(
        self, table: str, row_id: str, ctx: RequestContext
    ) -> CrudResponse:
        return await self._dispatch(Operation.DELETE, table, ctx, self._delete, row_id)

    # -- dispatch ----------------------------------------------------------

    async def _dispatch(
        self,
        operation: Operation,
        table_key: str,
        ctx: RequestContext,
        handler: Callable[..., Awaitable[CrudResponse]],
        *args: Any,
    ) -> CrudResponse:
        try:
            runtime = self._runtime(table_key)
            await self._check_rate_limit(runtime, ctx, operation)
            return await handler(runtime, ctx, *args)
        except StorageError as exc:
            logger.error(
                "Storage failure during %s on %r: %s", operation.value, table_key, exc
            )
            return CrudResponse.from_error(StorageError("Storage operation failed"))
        except OpacaError as exc:
            if exc.status_code >= 500:
                logger.error(
                    "%s failed during %s on %r: %s",
                    type(exc).__name__,
                    operation.value,
                    table_key,
                    exc,
                )
            else:
                logger.debug(
                    "%s rejected with %d: %s", operation.value, exc.status_code, exc
                )
            return CrudResponse.from_error(exc)
        except SQLAlchemyError:
            logger.exception(
                "Storage failure during %s on %r", operation.value, table_key
            )
            return CrudResponse.from_error(StorageError("Storage operation failed"))

    def _runtime(self, table_key: str) -> _TableRuntime:
        cached = self._runtimes.get(table_key)
        if cached is not None:
            return cached

        table = self._resolve_table(table_key)
        config = self._tables.get(table.name) or self._tables.get(table.slug)
        config = config or TableConfig()

        soft_delete = (
            self._soft_delete if config.soft_delete is INHERIT else config.soft_delete
        )
        tenant = self._tenant if config.tenant is INHERIT else config.tenant
        id_key = config.id_column or table.primary_key.key
        id_column = table.column(id_key)
        if id_column is None:
            raise ConfigurationError(f"Id column '{id_key}' does not exist on {table.name}")
        if soft_delete is not None and not table.has_column(soft_delete.column):
            raise ConfigurationError(
                f"Soft-delete column '{soft_delete.column}' does not exist on {table.name}"
            )
        if tenant is not None and not table.has_column(tenant.column):
            raise ConfigurationError(
                f"Tenant column '{tenant.column}' does not exist on {table.name}"
            )

        runtime = _TableRuntime(
            table=table,
            config=config,
            schemas=build_table_schemas(table, json_fields=config.json_fields),
            id_column=id_column,
            soft_delete=soft_delete,  # type: ignore[arg-type]
            tenant=tenant,  # type: ignore[arg-type]
        )
        self._runtimes[table_key] = runtime
        return runtime

    def _resolve_table(self, table_key: str) -> PhysicalTable:
        collection = self._config.get(table_key)
        table = None
        if collection is not None:
            table = self._schema.by_slug.get(collection.slug)
        if table is None:
            table = self._schema.tables.get(table_key)
        if table is None:
            raise NotFoundError(f"Unknown table '{table_key}'")
        return table

    async def _check_rate_limit(
        self, runtime: _TableRuntime, ctx: RequestContext, operation: Operation
    ) -> None:
        if self._rate_limit is None:
            return
        allowed = await maybe_await(self._rate_limit.allow(ctx, runtime.name, operation))
        if not allowed:
            raise RateLimitError("Too many requests")

    # -- policy helpers ----------------------------------------------------

    async def _tenant_id(self, runtime: _TableRuntime, ctx: RequestContext) -> Any:
        tenant = runtime.tenant
        if tenant is None:
            return None
        tenant_id = await maybe_await(tenant.get_tenant_id(ctx))
        if tenant.required and (tenant_id is None or tenant_id == ""):
            raise TenantError("Tenant required")
        return None if tenant_id == "" else tenant_id

    @staticmethod
    async def _authorize(decision: bool | Awaitable[bool], operation: Operation) -> None:
        if not await maybe_await(decision):
            raise AuthorizationError(f"Not allowed to {operation.value} this resource")

    def _scope(
        self,
        runtime: _TableRuntime,
        tenant_id: Any,
        *,
        soft_delete: bool = True,
    ) -> list[sa.ColumnElement[bool]]:
        conditions: list[sa.ColumnElement[bool]] = []
        table = runtime.table
        if runtime.tenant is not None and tenant_id is not None:
            conditions.append(table.sa_column(runtime.tenant.column) == tenant_id)
        if (
            soft_delete
            and runtime.soft_delete is not None
            and runtime.soft_delete.exclude_by_default
        ):
            conditions.append(table.sa_column(runtime.soft_delete.column).is_(None))
        return conditions

    def _id_condition(self, runtime: _TableRuntime, row_id: str) -> sa.ColumnElement[bool]:
        value = coerce_id(row_id, runtime.id_column.kind)
        return runtime.table.sa_column(runtime.id_column.key) == value

    async def _run_before(self, hook: Callable[..., Any], *args: Any) -> Any:
        try:
            return await maybe_await(hook(*args))
        except OpacaError:
            raise
        except Exception as exc:
            logger.exception("before hook %s failed", getattr(hook, "__name__", hook))
            raise HookError("Lifecycle hook failed") from exc

    async def _finish(
        self,
        uow: SQLAlchemyUnitOfWork,
        ctx: RequestContext,
        event: AuditEvent,
        after: Callable[[], Any] | None = None,
    ) -> None:
        """Emit the audit event, then the after hook, per failure policy."""
        if self._audit is not None:
            sink = self._audit

            async def deliver() -> None:
                await maybe_await(sink.on_event(event, ctx))

            if self._audit_failure is FailurePolicy.RAISE:
                try:
                    await deliver()
                except Exception as exc:
                    logger.exception("Audit sink failed for %s", event.kind.value)
                    raise AuditError("Audit delivery failed") from exc
            else:
                uow.on_commit(deliver)

        if after is not None:

            async def observe() -> None:
                await maybe_await(after())

            if self._hook_failure is FailurePolicy.RAISE:
                try:
                    await observe()
                except OpacaError:
                    raise
                except Exception as exc:
                    logger.exception("after hook failed for %s", event.kind.value)
                    raise HookError("Lifecycle hook failed") from exc
            else:
                uow.on_commit(observe)

    # -- row helpers -------------------------------------------------------

    def _parse_body(self, ctx: RequestContext) -> Any:
        body = ctx.body
        if isinstance(body, Mapping):
            return dict(body)
        if body is None or (isinstance(body, bytes | str) and not body.strip()):
            raise BadRequestError("Request body must be valid JSON")
        if isinstance(body, bytes | str):
            try:
                return json.loads(body)
            except ValueError as exc:
                raise BadRequestError("Request body must be valid JSON") from exc
        return body

    @staticmethod
    def _row_dict(
        columns: Sequence[sa.Column[Any]], row: sa.Row[Any]
    ) -> dict[str, Any]:
        mapping = row._mapping
        return {column.key: mapping[column] for column in columns}

    def _serialize(self, runtime: _TableRuntime, row: Mapping[str, Any]) -> dict[str, Any]:
        return serialize_row(
            runtime.table,
            row,
            json_fields=runtime.config.json_fields,
            options=self._serialize_options,
        )

    def _strip_read_only(self, runtime: _TableRuntime, data: dict[str, Any]) -> None:
        for key in runtime.config.read_only:
            data.pop(key, None)

    # -- operations --------------------------------------------------------

    async def _list(self, runtime: _TableRuntime, ctx: RequestContext) -> CrudResponse:
        table = runtime.table
        params = parse_list_params(ctx.query, table.keys, max_limit=self._max_limit)
        await self._authorize(
            runtime.config.acl.can_list(
                ListContext(table=runtime.name, request=ctx, params=params)
            ),
            Operation.LIST,
        )
        tenant_id = await self._tenant_id(runtime, ctx)
        conditions = self._scope(runtime, tenant_id)
        predicate = compile_predicate(
            table, table.kinds, ctx.query, registry=self._registry
        )
        if predicate is not None:
            conditions.append(predicate)

        columns = [table.sa_column(k) for k in params.select] or list(table.table.c)
        stmt = sa.select(*columns)
        if conditions:
            stmt = stmt.where(sa.and_(*conditions))
        if params.order_by is not None:
            order_col = table.sa_column(params.order_by)
            stmt = stmt.order_by(
                order_col.asc() if params.order == "asc" else order_col.desc()
            )
        stmt = stmt.limit(params.limit).offset(params.offset)

        query = ctx.query_dict()
        async with SQLAlchemyUnitOfWork(session_factory=self._session_factory) as uow:
            result = await uow.session.execute(stmt)
            data = [
                self._serialize(runtime, self._row_dict(columns, row)) for row in result
            ]
            await self._finish(
                uow,
                ctx,
                AuditEvent(
                    AuditEventKind.READ,
                    runtime.name,
                    {"query": query} if query else {},
                ),
            )

        return CrudResponse(
            200,
            {
                "data": data,
                "limit": params.limit,
                "offset": params.offset,
                "orderBy": params.order_by,
                "order": params.order,
                "selected": list(params.select) or None,
            },
        )

    async def _get(
        self, runtime: _TableRuntime, ctx: RequestContext, row_id: str
    ) -> CrudResponse:
        table = runtime.table
        await self._authorize(
            runtime.config.acl.can_read(
                ReadContext(table=runtime.name, request=ctx, id=row_id)
            ),
            Operation.READ,
        )
        tenant_id = await self._tenant_id(runtime, ctx)
        conditions = [self._id_condition(runtime, row_id), *self._scope(runtime, tenant_id)]

        selected = [k for k in split_list(ctx.query_dict().get("select")) if table.has_column(k)]
        columns = [table.sa_column(k) for k in selected] or list(table.table.c)
        stmt = sa.select(*columns).where(sa.and_(*conditions)).limit(1)

        async with SQLAlchemyUnitOfWork(session_factory=self._session_factory) as uow:
            row = (await uow.session.execute(stmt)).first()
            if row is None:
                raise NotFoundError("Not found")
            body = self._serialize(runtime, self._row_dict(columns, row))
            await self._finish(
                uow,
                ctx,
                AuditEvent(
                    AuditEventKind.READ,
                    runtime.name,
                    {"id": coerce_id(row_id, runtime.id_column.kind)},
                ),
            )
        return CrudResponse(200, body)

    async def _create(self, runtime: _TableRuntime, ctx: RequestContext) -> CrudResponse:
        table = runtime.table
        body = self._parse_body(ctx)
        tenant_id = await self._tenant_id(runtime, ctx)
        if (
            runtime.tenant is not None
            and tenant_id is not None
            and isinstance(body, dict)
            and body.get(runtime.tenant.column) is None
        ):
            body[runtime.tenant.column] = tenant_id

        data = runtime.schemas.parse_insert(body)
        self._strip_read_only(runtime, data)

        create_ctx = CreateContext(
            table=runtime.name, request=ctx, data=data, tenant_id=tenant_id
        )
        await self._authorize(runtime.config.acl.can_create(create_ctx), Operation.CREATE)
        hooks = runtime.config.hooks
        transformed = await self._run_before(hooks.before_create, create_ctx, data)
        if transformed is not None:
            data = dict(transformed)

        values = normalize_for_db(table, data, json_fields=runtime.config.json_fields)
        columns = list(table.table.c)
        stmt = sa.insert(table.table).values(values).returning(*columns)

        async with SQLAlchemyUnitOfWork(session_factory=self._session_factory) as uow:
            row = (await uow.session.execute(stmt)).one()
            inserted = self._serialize(runtime, self._row_dict(columns, row))
            await self._finish(
                uow,
                ctx,
                AuditEvent(AuditEventKind.CREATE, runtime.name, {"data": inserted}),
                lambda: hooks.after_create(create_ctx, inserted),
            )
        logger.debug("Created row in %s", runtime.name)
        return CrudResponse(201, inserted)

    async def _update(
        self, runtime: _TableRuntime, ctx: RequestContext, row_id: str
    ) -> CrudResponse:
        table = runtime.table
        body = self._parse_body(ctx)
        tenant_id = await self._tenant_id(runtime, ctx)
        if isinstance(body, dict):
            if runtime.tenant is not None:
                # Rows never move between tenants.
                body.pop(runtime.tenant.column, None)
            self._strip_read_only(runtime, body)

        data = runtime.schemas.parse_update(body)
        update_ctx = UpdateContext(
            table=runtime.name, request=ctx, id=row_id, data=data, tenant_id=tenant_id
        )
        await self._authorize(runtime.config.acl.can_update(update_ctx), Operation.UPDATE)
        hooks = runtime.config.hooks
        transformed = await self._run_before(hooks.before_update, update_ctx, data)
        if transformed is not None:
            data = dict(transformed)
        if runtime.tenant is not None:
            data.pop(runtime.tenant.column, None)

        values = normalize_for_db(table, data, json_fields=runtime.config.json_fields)
        if table.has_column(UPDATED_AT):
            values[UPDATED_AT] = utcnow()
        conditions = [
            self._id_condition(runtime, row_id),
            *self._scope(runtime, tenant_id, soft_delete=False),
        ]
        columns = list(table.table.c)
        stmt = (
            sa.update(table.table)
            .where(sa.and_(*conditions))
            .values(values)
            .returning(*columns)
        )

        async with SQLAlchemyUnitOfWork(session_factory=self._session_factory) as uow:
            row = (await uow.session.execute(stmt)).first()
            if row is None:
                raise NotFoundError("Not found")
            updated = self._serialize(runtime, self._row_dict(columns, row))
            await self._finish(
                uow,
                ctx,
                AuditEvent(
                    AuditEventKind.UPDATE,
                    runtime.name,
                    {
                        "id": coerce_id(row_id, runtime.id_column.kind),
                        "data": updated,
                    },
                ),
                lambda: hooks.after_update(update_ctx, updated),
            )
        return CrudResponse(200, updated)

    async def _delete(
        self, runtime: _TableRuntime, ctx: RequestContext, row_id: str
    ) -> CrudResponse:
        table = runtime.table
        soft = runtime.soft_delete
        delete_ctx = DeleteContext(
            table=runtime.name, request=ctx, id=row_id, soft=soft is not None
        )
        await self._authorize(runtime.config.acl.can_delete(delete_ctx), Operation.DELETE)
        tenant_id = await self._tenant_id(runtime, ctx)
        hooks = runtime.config.hooks
        await self._run_before(hooks.before_delete, delete_ctx)

        conditions = [
            self._id_condition(runtime, row_id),
            *self._scope(runtime, tenant_id, soft_delete=False),
        ]
        columns = list(table.table.c)
        stmt: Any
        if soft is not None:
            values: dict[str, Any] = {soft.column: soft.value_factory()}
            if table.has_column(UPDATED_AT):
                values[UPDATED_AT] = utcnow()
            stmt = sa.update(table.table).where(sa.and_(*conditions)).values(values)
        else:
            stmt = sa.delete(table.table).where(sa.and_(*conditions))
        stmt = stmt.returning(*columns)

        async with SQLAlchemyUnitOfWork(session_factory=self._session_factory) as uow:
            row = (await uow.session.execute(stmt)).first()
            if row is None:
                raise NotFoundError("Not found")
            deleted = self._serialize(runtime, self._row_dict(columns, row))
            await self._finish(
                uow,
                ctx,
                AuditEvent(
                    AuditEventKind.DELETE,
                    runtime.name,
                    {
                        "id": coerce_id(row_id, runtime.id_column.kind),
                        "soft": soft is not None,
                    },
                ),
                lambda: hooks.after_delete(delete_ctx, deleted),
            )
        return CrudResponse(200, {"ok": True, "soft": soft is not None})
