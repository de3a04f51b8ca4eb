"""Storage types for values the embedded dialect has no native column for."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import Integer, Text, TypeDecorator


class JSONType(TypeDecorator[Any]):
    """
    Dialect-agnostic JSON type.
    Uses JSONB on PostgreSQL and a serialized TEXT column everywhere else.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None or dialect.name == "postgresql":
            return value
        return json.dumps(value, separators=(",", ":"), default=str)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if isinstance(value, str | bytes) and dialect.name != "postgresql":
            return json.loads(value)
        return value


class EpochMillis(TypeDecorator[datetime]):
    """Timezone-aware datetime stored as epoch milliseconds in an INTEGER."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> int | None:
        if value is None:
            return None
        if isinstance(value, bool):
            raise TypeError("Cannot store a boolean as a timestamp")
        if isinstance(value, int | float):
            return int(value)
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return int(value.timestamp() * 1000)
        if isinstance(value, date):
            return int(
                datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
                .timestamp()
                * 1000
            )
        if isinstance(value, str):
            return self.process_bind_param(
                datetime.fromisoformat(value.replace("Z", "+00:00")), dialect
            )
        raise TypeError(f"Cannot store {type(value).__name__} as a timestamp")

    def process_result_value(self, value: Any, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class IntegerBoolean(TypeDecorator[bool]):
    """Boolean stored as 0/1 on dialects without a native boolean."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> int | None:
        if value is None:
            return None
        if isinstance(value, str):
            return 1 if value.strip().lower() in ("1", "true") else 0
        return 1 if value else 0

    def process_result_value(self, value: Any, dialect: Any) -> bool | None:
        if value is None:
            return None
        return bool(value)
