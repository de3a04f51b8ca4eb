import json
import logging

import pytest

from opaca.crud import (
    AuditEventKind,
    FailurePolicy,
    RateLimitConfig,
    RequestContext,
    SerializeOptions,
    SoftDeleteConfig,
    TableAcl,
    TableConfig,
    TableHooks,
    TenantConfig,
)


def ctx(query=(), body=None, **state):
    if body is not None and not isinstance(body, bytes | str):
        body = json.dumps(body)
    return RequestContext(query=query, body=body, state=state)


LAMP = {"title": "Lamp", "price": 10, "user": "u1"}


async def _create(engine, table="products", **fields):
    payload = {**LAMP, **fields} if table == "products" else fields
    response = await engine.create_row(table, ctx(body=payload))
    assert response.status_code == 201, response.body
    return response.body


class TestCreate:
    async def test_products_end_to_end(self, crud, audit_sink):
        response = await crud.create_row("products", ctx(body=LAMP))

        assert response.status_code == 201
        row = response.body
        assert row["title"] == "Lamp"
        assert row["price"] == 10
        assert row["inStock"] is True
        assert row["tags"] == {}
        assert len(row["id"]) == 32
        assert isinstance(row["createdAt"], int)

        [event] = audit_sink.of_kind(AuditEventKind.CREATE)
        assert event.table == "products"
        assert event.payload == {"data": row}

    async def test_omitted_default_is_returned(self, crud):
        response = await crud.create_row("products", ctx(body={"title": "Pen", "price": 1.5}))
        assert response.status_code == 201
        assert response.body["inStock"] is True
        assert response.body["price"] == 1.5

    async def test_resolves_table_by_name_or_slug(self, crud):
        assert (await crud.create_row("Products", ctx(body=LAMP))).status_code == 201

    async def test_malformed_json(self, crud):
        response = await crud.create_row("products", ctx(body=b"{not json"))
        assert response.status_code == 400
        assert response.body["error"] == "bad_request"

    async def test_empty_body(self, crud):
        response = await crud.create_row("products", ctx(body=b""))
        assert response.status_code == 400

    async def test_validation_lists_every_field(self, crud):
        response = await crud.create_row("products", ctx(body={}))
        assert response.status_code == 422
        assert response.body["error"] == "validation_error"
        assert set(response.body["details"]) == {"title", "price"}

    async def test_read_only_columns_are_stripped(self, make_engine):
        engine = make_engine(tables={"products": TableConfig(read_only=("inStock",))})
        row = await _create(engine, inStock=False)
        assert row["inStock"] is True

    async def test_unique_violation_is_a_storage_error(self, crud):
        await _create(crud, "users", email="a@example.com")
        response = await crud.create_row(
            "users", ctx(body={"email": "a@example.com"})
        )
        assert response.status_code == 500
        assert response.body["error"] == "storage_error"

    async def test_iso_dates(self, make_engine):
        engine = make_engine(serialize=SerializeOptions(dates="iso"))
        row = await _create(engine, releaseDate="2024-05-01T00:00:00Z")
        assert row["releaseDate"] == "2024-05-01T00:00:00+00:00"


class TestList:
    async def test_envelope(self, crud):
        await _create(crud)
        response = await crud.list_rows("products", ctx())
        assert response.status_code == 200
        body = response.body
        assert len(body["data"]) == 1
        assert body["limit"] == 20
        assert body["offset"] == 0
        assert body["orderBy"] is None
        assert body["order"] == "desc"
        assert body["selected"] is None

    async def test_filters_ordering_and_pagination(self, crud):
        for title, price in [("A", 5), ("B", 15), ("C", 25), ("D", 35)]:
            await _create(crud, title=title, price=price)

        response = await crud.list_rows(
            "products",
            ctx("where.price[gt]=10&orderBy=price&order=asc&limit=2&offset=1"),
        )
        assert [r["title"] for r in response.body["data"]] == ["C", "D"]

        response = await crud.list_rows(
            "products", ctx("or.1.where.title=A&or.1.where.price[gte]=35")
        )
        assert sorted(r["title"] for r in response.body["data"]) == ["A", "D"]

    async def test_like_and_in(self, crud):
        await _create(crud, title="Desk lamp")
        await _create(crud, title="Chair", price=40)
        like = await crud.list_rows("products", ctx("where.title[like]=lamp"))
        assert [r["title"] for r in like.body["data"]] == ["Desk lamp"]
        in_ = await crud.list_rows("products", ctx("where.price[in]=40,41"))
        assert [r["title"] for r in in_.body["data"]] == ["Chair"]

    async def test_boolean_filter_accepts_digits(self, crud):
        await _create(crud, title="On")
        await _create(crud, title="Off", inStock=False)
        off = await crud.list_rows("products", ctx("where.inStock=0"))
        assert [r["title"] for r in off.body["data"]] == ["Off"]
        on = await crud.list_rows("products", ctx("where.inStock=1"))
        assert [r["title"] for r in on.body["data"]] == ["On"]

    async def test_date_filters(self, crud):
        await _create(crud, title="Old", releaseDate="2020-01-01T00:00:00Z")
        await _create(crud, title="New", releaseDate="2024-05-01T00:00:00Z")
        response = await crud.list_rows(
            "products", ctx("where.releaseDate[gt]=2022-01-01T00:00:00Z")
        )
        assert [r["title"] for r in response.body["data"]] == ["New"]

    async def test_unparseable_date_filter_is_a_bad_request(self, crud):
        response = await crud.list_rows(
            "products", ctx("where.releaseDate[gt]=yesterday")
        )
        assert response.status_code == 400
        assert response.body["error"] == "bad_request"

    async def test_projection(self, crud):
        await _create(crud)
        response = await crud.list_rows("products", ctx("select=title,bogus"))
        assert response.body["selected"] == ["title"]
        assert response.body["data"] == [{"title": "Lamp"}]

    async def test_audit_carries_query_only_when_present(self, crud, audit_sink):
        await crud.list_rows("products", ctx())
        await crud.list_rows("products", ctx("limit=5"))
        first, second = audit_sink.of_kind(AuditEventKind.READ)
        assert dict(first.payload) == {}
        assert second.payload == {"query": {"limit": "5"}}

    async def test_unknown_table(self, crud):
        response = await crud.list_rows("widgets", ctx())
        assert response.status_code == 404
        assert response.body == {"error": "not_found", "message": "Unknown table 'widgets'"}


class TestGetUpdateDelete:
    async def test_get_and_select(self, crud, audit_sink):
        row = await _create(crud)
        response = await crud.get_row("products", row["id"], ctx())
        assert response.body == row

        partial = await crud.get_row("products", row["id"], ctx("select=price"))
        assert partial.body == {"price": 10}
        assert audit_sink.of_kind(AuditEventKind.READ)[0].payload == {"id": row["id"]}

    async def test_get_missing(self, crud):
        response = await crud.get_row("products", "nope", ctx())
        assert response.status_code == 404

    async def test_update(self, crud, audit_sink):
        row = await _create(crud)
        response = await crud.update_row("products", row["id"], ctx(body={"price": 12}))
        assert response.status_code == 200
        assert response.body["price"] == 12
        assert response.body["title"] == "Lamp"
        assert response.body["updatedAt"] >= row["updatedAt"]
        [event] = audit_sink.of_kind(AuditEventKind.UPDATE)
        assert event.payload["id"] == row["id"]

    async def test_update_validation(self, crud):
        row = await _create(crud)
        response = await crud.update_row(
            "products", row["id"], ctx(body={"price": "cheap"})
        )
        assert response.status_code == 422
        assert "price" in response.body["details"]

    async def test_update_missing(self, crud):
        response = await crud.update_row("products", "nope", ctx(body={"price": 1}))
        assert response.status_code == 404

    async def test_hard_delete(self, crud, audit_sink):
        row = await _create(crud)
        response = await crud.delete_row("products", row["id"], ctx())
        assert response.body == {"ok": True, "soft": False}
        assert (await crud.get_row("products", row["id"], ctx())).status_code == 404
        assert (await crud.delete_row("products", row["id"], ctx())).status_code == 404
        [event] = audit_sink.of_kind(AuditEventKind.DELETE)
        assert event.payload == {"id": row["id"], "soft": False}


class TestSoftDelete:
    async def test_soft_deleted_rows_are_hidden(self, make_engine):
        engine = make_engine(tables={"products": TableConfig(soft_delete=SoftDeleteConfig())})
        kept = await _create(engine, title="Kept")
        gone = await _create(engine, title="Gone")

        response = await engine.delete_row("products", gone["id"], ctx())
        assert response.body == {"ok": True, "soft": True}

        listed = await engine.list_rows("products", ctx())
        assert [r["id"] for r in listed.body["data"]] == [kept["id"]]
        assert (await engine.get_row("products", gone["id"], ctx())).status_code == 404

    async def test_soft_deleted_rows_can_stay_visible(self, make_engine):
        engine = make_engine(
            tables={
                "products": TableConfig(
                    soft_delete=SoftDeleteConfig(exclude_by_default=False)
                )
            }
        )
        row = await _create(engine)
        await engine.delete_row("products", row["id"], ctx())
        response = await engine.get_row("products", row["id"], ctx())
        assert response.status_code == 200
        assert response.body["deletedAt"] is not None

    async def test_missing_column_is_a_configuration_error(self, make_engine):
        engine = make_engine(soft_delete=SoftDeleteConfig())
        response = await engine.list_rows("users", ctx())
        assert response.status_code == 500
        assert response.body["error"] == "configuration_error"

    async def test_per_table_override_disables_default(self, make_engine):
        engine = make_engine(
            soft_delete=SoftDeleteConfig(),
            tables={"users": TableConfig(soft_delete=None)},
        )
        assert (await engine.list_rows("users", ctx())).status_code == 200


def _tenant(required=True):
    return TenantConfig(
        column="orgId",
        get_tenant_id=lambda request: request.state.get("org"),
        required=required,
    )


class TestTenancy:
    @pytest.fixture
    def engine(self, make_engine):
        return make_engine(tables={"products": TableConfig(tenant=_tenant())})

    async def test_create_injects_tenant(self, engine):
        response = await engine.create_row("products", ctx(body=LAMP, org="acme"))
        assert response.body["orgId"] == "acme"

    async def test_rows_are_scoped(self, engine):
        created = await engine.create_row("products", ctx(body=LAMP, org="acme"))
        row_id = created.body["id"]

        other = await engine.list_rows("products", ctx(org="globex"))
        assert other.body["data"] == []
        assert (await engine.get_row("products", row_id, ctx(org="globex"))).status_code == 404
        assert (
            await engine.delete_row("products", row_id, ctx(org="globex"))
        ).status_code == 404
        own = await engine.list_rows("products", ctx(org="acme"))
        assert len(own.body["data"]) == 1

    async def test_update_never_moves_rows(self, engine):
        created = await engine.create_row("products", ctx(body=LAMP, org="acme"))
        response = await engine.update_row(
            "products",
            created.body["id"],
            ctx(body={"orgId": "globex", "title": "Moved"}, org="acme"),
        )
        assert response.status_code == 200
        assert response.body["orgId"] == "acme"
        assert response.body["title"] == "Moved"

    async def test_missing_tenant(self, engine):
        response = await engine.list_rows("products", ctx())
        assert response.status_code == 400
        assert response.body["error"] == "tenant_required"

    async def test_optional_tenant_skips_scoping(self, make_engine):
        engine = make_engine(tables={"products": TableConfig(tenant=_tenant(False))})
        await engine.create_row("products", ctx(body=LAMP, org="acme"))
        response = await engine.list_rows("products", ctx())
        assert len(response.body["data"]) == 1


class TestAcl:
    async def test_denied_create(self, make_engine):
        class ReadOnly(TableAcl):
            def can_create(self, ctx):
                return False

        engine = make_engine(tables={"products": TableConfig(acl=ReadOnly())})
        response = await engine.create_row("products", ctx(body=LAMP))
        assert response.status_code == 403
        assert response.body["error"] == "forbidden"

    async def test_async_gate_reads_request_state(self, make_engine):
        class AdminsOnly(TableAcl):
            async def can_list(self, ctx):
                return "admin" in ctx.state.get("roles", ())

        engine = make_engine(tables={"products": TableConfig(acl=AdminsOnly())})
        assert (await engine.list_rows("products", ctx())).status_code == 403
        assert (
            await engine.list_rows("products", ctx(roles=("admin",)))
        ).status_code == 200

    async def test_delete_is_checked_before_touching_rows(self, make_engine):
        class NoDelete(TableAcl):
            def can_delete(self, ctx):
                return False

        engine = make_engine(tables={"products": TableConfig(acl=NoDelete())})
        row = await _create(engine)
        assert (await engine.delete_row("products", row["id"], ctx())).status_code == 403
        assert (await engine.get_row("products", row["id"], ctx())).status_code == 200


class TestRateLimit:
    async def test_denied_requests(self, make_engine):
        calls = []

        def allow(request, table, operation):
            calls.append((table, operation.value))
            return False

        engine = make_engine(rate_limit=RateLimitConfig(allow=allow))
        response = await engine.list_rows("products", ctx())
        assert response.status_code == 429
        assert response.body["error"] == "rate_limited"
        assert calls == [("products", "list")]

    async def test_unknown_table_is_resolved_first(self, make_engine):
        engine = make_engine(rate_limit=RateLimitConfig(allow=lambda *args: False))
        assert (await engine.list_rows("widgets", ctx())).status_code == 404


class Uppercase(TableHooks):
    def __init__(self):
        self.seen = []

    def before_create(self, ctx, data):
        return {**data, "title": data["title"].upper()}

    async def after_create(self, ctx, row):
        self.seen.append(row["id"])


class Exploding(TableHooks):
    def after_create(self, ctx, row):
        raise RuntimeError("boom")


class TestHooks:
    async def test_before_and_after_create(self, make_engine):
        hooks = Uppercase()
        engine = make_engine(tables={"products": TableConfig(hooks=hooks)})
        row = await _create(engine)
        assert row["title"] == "LAMP"
        assert hooks.seen == [row["id"]]

    async def test_before_hook_failure_aborts(self, make_engine):
        class Rejecting(TableHooks):
            def before_update(self, ctx, data):
                raise RuntimeError("nope")

        engine = make_engine(tables={"products": TableConfig(hooks=Rejecting())})
        row = await _create(engine)
        response = await engine.update_row("products", row["id"], ctx(body={"price": 1}))
        assert response.status_code == 500
        assert response.body["error"] == "hook_error"
        assert (await engine.get_row("products", row["id"], ctx())).body["price"] == 10

    async def test_after_hook_failure_rolls_back_when_strict(self, make_engine):
        engine = make_engine(tables={"products": TableConfig(hooks=Exploding())})
        response = await engine.create_row("products", ctx(body=LAMP))
        assert response.status_code == 500
        assert response.body["error"] == "hook_error"
        listed = await engine.list_rows("products", ctx())
        assert listed.body["data"] == []

    async def test_after_hook_failure_is_logged_when_lenient(self, make_engine, caplog):
        engine = make_engine(
            tables={"products": TableConfig(hooks=Exploding())},
            hook_failure=FailurePolicy.LOG,
        )
        with caplog.at_level(logging.ERROR, logger="opaca.uow"):
            response = await engine.create_row("products", ctx(body=LAMP))
        assert response.status_code == 201
        assert "Error in on_commit hook" in caplog.text
        listed = await engine.list_rows("products", ctx())
        assert len(listed.body["data"]) == 1


class BrokenSink:
    def on_event(self, event, ctx):
        raise ConnectionError("audit store down")


class TestAuditFailure:
    async def test_strict_policy_fails_the_request(self, make_engine):
        engine = make_engine(audit=BrokenSink())
        response = await engine.create_row("products", ctx(body=LAMP))
        assert response.status_code == 500
        assert response.body["error"] == "audit_error"

    async def test_lenient_policy_keeps_the_write(self, make_engine):
        engine = make_engine(audit=BrokenSink(), audit_failure=FailurePolicy.LOG)
        assert (await engine.create_row("products", ctx(body=LAMP))).status_code == 201
        plain = make_engine(audit=None)
        listed = await plain.list_rows("products", ctx())
        assert len(listed.body["data"]) == 1
