from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from opaca.config import sanitize
from opaca.crud import CrudEngine, InMemoryAuditSink
from opaca.schema import Dialect, compile_schema


def collection_declarations() -> dict[str, Any]:
    return {
        "collections": [
            {
                "name": "Users",
                "fields": [
                    {
                        "name": "email",
                        "type": "email",
                        "required": True,
                        "unique": True,
                        "indexed": True,
                    },
                    {"name": "name", "type": "text"},
                ],
            },
            {
                "name": "Products",
                "fields": [
                    {
                        "name": "title",
                        "type": "textarea",
                        "required": True,
                        "indexed": True,
                    },
                    {
                        "name": "price",
                        "type": "number",
                        "required": True,
                        "indexed": True,
                    },
                    {"name": "inStock", "type": "switcher", "default": True},
                    {"name": "tags", "type": "json"},
                    {"name": "releaseDate", "type": "date"},
                    {"name": "user", "type": {"relationship": {"to": "users"}}},
                    {"name": "orgId", "type": "text"},
                    {"name": "deletedAt", "type": "date"},
                ],
            },
            {
                "name": "Posts",
                "fields": [
                    {
                        "type": {
                            "row": [
                                {"name": "title", "type": "text", "required": True},
                                {"name": "content", "type": "rich-text"},
                            ]
                        }
                    },
                    {"name": "published", "type": "checkbox", "default": False},
                    {
                        "name": "status",
                        "type": {"enum": ["draft", "published", "archived"]},
                    },
                    {
                        "name": "author",
                        "type": {"relationship": {"to": "users"}},
                    },
                ],
            },
        ]
    }


@pytest.fixture
def declarations() -> dict[str, Any]:
    return collection_declarations()


@pytest.fixture
def built_config(declarations):
    return sanitize(declarations)


@pytest.fixture
def sqlite_schema(built_config):
    return compile_schema(built_config, Dialect.SQLITE)


@pytest.fixture
async def db_engine(sqlite_schema):
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await sqlite_schema.create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def make_engine(built_config, sqlite_schema, session_factory, audit_sink):
    def factory(**kwargs: Any) -> CrudEngine:
        kwargs.setdefault("audit", audit_sink)
        return CrudEngine(
            built_config,
            sqlite_schema,
            session_factory=session_factory,
            **kwargs,
        )

    return factory


@pytest.fixture
def crud(make_engine) -> CrudEngine:
    return make_engine()
