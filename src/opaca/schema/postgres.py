"""Column mapper for the Postgres family."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.types import TypeEngine

from .columns import ColumnMapper
from .dialects import Dialect
from .types import JSONType


class PostgresColumnMapper(ColumnMapper):
    @property
    def dialect(self) -> Dialect:
        return Dialect.POSTGRES

    def text_type(self) -> TypeEngine[Any]:
        return sa.Text()

    def integer_type(self) -> TypeEngine[Any]:
        return sa.Integer()

    def float_type(self) -> TypeEngine[Any]:
        return sa.Double()

    def boolean_type(self) -> TypeEngine[Any]:
        return sa.Boolean()

    def date_type(self) -> TypeEngine[Any]:
        return sa.DateTime(timezone=True)

    def json_type(self) -> TypeEngine[Any]:
        return JSONType()

    def current_timestamp(self) -> Any:
        return sa.func.now()
