"""Column mapper for SQLite and other embedded stores (D1, libSQL)."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.types import TypeEngine

from .columns import ColumnMapper
from .dialects import Dialect
from .types import EpochMillis, IntegerBoolean, JSONType

# Current time as epoch milliseconds, matching EpochMillis storage.
CURRENT_EPOCH_MS = sa.text(
    "(CAST((julianday('now') - 2440587.5) * 86400000 AS INTEGER))"
)


class SQLiteColumnMapper(ColumnMapper):
    @property
    def dialect(self) -> Dialect:
        return Dialect.SQLITE

    def text_type(self) -> TypeEngine[Any]:
        return sa.Text()

    def integer_type(self) -> TypeEngine[Any]:
        return sa.Integer()

    def float_type(self) -> TypeEngine[Any]:
        return sa.REAL()

    def boolean_type(self) -> TypeEngine[Any]:
        return IntegerBoolean()

    def date_type(self) -> TypeEngine[Any]:
        return EpochMillis()

    def json_type(self) -> TypeEngine[Any]:
        return JSONType()

    def current_timestamp(self) -> Any:
        return CURRENT_EPOCH_MS
