"""FastAPI router exposing a :class:`CrudEngine` over HTTP.

Routes (relative to ``prefix``)::

    GET    /{table}        list
    POST   /{table}        create
    GET    /{table}/{id}   read
    PATCH  /{table}/{id}   update
    DELETE /{table}/{id}   delete
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ...crud.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from ...crud.engine import CrudEngine
    from ...crud.response import CrudResponse

    StateFactory = Callable[[Request], "Mapping[str, Any] | Awaitable[Mapping[str, Any]]"]


async def _state(request: Request, factory: StateFactory | None) -> Mapping[str, Any]:
    if factory is None:
        return dict(getattr(request.state, "_state", {}))
    value = factory(request)
    if hasattr(value, "__await__"):
        value = await value  # type: ignore[misc]
    return value  # type: ignore[return-value]


def _to_response(result: CrudResponse) -> JSONResponse:
    return JSONResponse(
        status_code=result.status_code, content=jsonable_encoder(result.body)
    )


def create_crud_router(
    engine: CrudEngine,
    *,
    prefix: str = "",
    state_factory: StateFactory | None = None,
) -> APIRouter:
    """Build an ``APIRouter`` that delegates every route to *engine*.

    Args:
        engine: The CRUD engine serving the routes.
        prefix: Mount prefix, e.g. ``"/api"``.
        state_factory: Extracts the request state (principal, tenant
            claims) that ACLs and tenant providers read. Defaults to the
            attributes set on ``request.state``.

    Example:
        ```python
        app = FastAPI()
        app.include_router(create_crud_router(engine, prefix="/api"))
        ```
    """
    router = APIRouter(prefix=prefix)

    async def context(request: Request, *, with_body: bool) -> RequestContext:
        return RequestContext(
            query=request.query_params.multi_items(),
            body=await request.body() if with_body else None,
            state=await _state(request, state_factory),
            request_id=request.headers.get("x-request-id"),
            method=request.method,
            path=request.url.path,
        )

    @router.get("/{table}")
    async def list_rows(table: str, request: Request) -> JSONResponse:
        ctx = await context(request, with_body=False)
        return _to_response(await engine.list_rows(table, ctx))

    @router.post("/{table}")
    async def create_row(table: str, request: Request) -> JSONResponse:
        ctx = await context(request, with_body=True)
        return _to_response(await engine.create_row(table, ctx))

    @router.get("/{table}/{row_id}")
    async def get_row(table: str, row_id: str, request: Request) -> JSONResponse:
        ctx = await context(request, with_body=False)
        return _to_response(await engine.get_row(table, row_id, ctx))

    @router.patch("/{table}/{row_id}")
    async def update_row(table: str, row_id: str, request: Request) -> JSONResponse:
        ctx = await context(request, with_body=True)
        return _to_response(await engine.update_row(table, row_id, ctx))

    @router.delete("/{table}/{row_id}")
    async def delete_row(table: str, row_id: str, request: Request) -> JSONResponse:
        ctx = await context(request, with_body=False)
        return _to_response(await engine.delete_row(table, row_id, ctx))

    return router
