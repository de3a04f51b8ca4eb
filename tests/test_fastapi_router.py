"""Tests for the FastAPI router (optional; requires opaca[fastapi])."""

from __future__ import annotations

import pytest

fastapi = pytest.importorskip("fastapi")

import httpx  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402

from opaca.contrib.fastapi import create_crud_router  # noqa: E402
from opaca.crud import TableConfig, TenantConfig  # noqa: E402


@pytest.fixture
def app(crud) -> FastAPI:
    app = FastAPI()
    app.include_router(create_crud_router(crud, prefix="/api"))
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def test_crud_round_trip(client):
    created = await client.post(
        "/api/products", json={"title": "Lamp", "price": 10, "user": "u1"}
    )
    assert created.status_code == 201
    row_id = created.json()["id"]

    listed = await client.get("/api/products", params={"where.price[gte]": "10"})
    assert listed.status_code == 200
    assert [r["id"] for r in listed.json()["data"]] == [row_id]

    updated = await client.patch(f"/api/products/{row_id}", json={"price": 11})
    assert updated.json()["price"] == 11

    fetched = await client.get(f"/api/products/{row_id}")
    assert fetched.json()["title"] == "Lamp"

    deleted = await client.delete(f"/api/products/{row_id}")
    assert deleted.json() == {"ok": True, "soft": False}
    assert (await client.get(f"/api/products/{row_id}")).status_code == 404


async def test_error_envelope(client):
    response = await client.post(
        "/api/products",
        content=b"{oops",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"

    response = await client.get("/api/widgets")
    assert response.status_code == 404


async def test_state_factory_feeds_tenant(make_engine):
    engine = make_engine(
        tables={
            "products": TableConfig(
                tenant=TenantConfig(
                    column="orgId",
                    get_tenant_id=lambda request: request.state.get("org"),
                )
            )
        }
    )

    def state(request: Request) -> dict[str, str | None]:
        return {"org": request.headers.get("x-org")}

    app = FastAPI()
    app.include_router(create_crud_router(engine, state_factory=state))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        missing = await c.get("/products")
        assert missing.status_code == 400
        assert missing.json()["error"] == "tenant_required"

        created = await c.post(
            "/products",
            json={"title": "Lamp", "price": 1},
            headers={"x-org": "acme"},
        )
        assert created.json()["orgId"] == "acme"
