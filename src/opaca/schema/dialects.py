"""SQL dialect selection, decided once by the hosting application."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy.dialects import postgresql, sqlite

from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect as SADialect

_ALIASES: dict[str, str] = {
    "pg": "postgresql",
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "neon": "postgresql",
    "sqlite": "sqlite",
    "d1": "sqlite",
    "libsql": "sqlite",
    "turso": "sqlite",
}


class Dialect(str, Enum):
    """Physical dialect families a collection can be compiled for."""

    POSTGRES = "postgresql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: str | Dialect) -> Dialect:
        """Resolve a host-supplied name such as ``"pg"`` or ``"d1"``."""
        if isinstance(value, Dialect):
            return value
        key = str(value).strip().lower()
        if key not in _ALIASES:
            raise ConfigurationError(f"Unsupported dialect: {value!r}")
        return cls(_ALIASES[key])

    @classmethod
    def from_engine(cls, bind: Any) -> Dialect:
        """Pick the dialect of a SQLAlchemy engine or connection."""
        return cls.parse(bind.dialect.name)

    def sa_dialect(self) -> SADialect:
        if self is Dialect.POSTGRES:
            return postgresql.dialect()  # type: ignore[no-untyped-call,no-any-return]
        return sqlite.dialect()  # type: ignore[no-untyped-call,no-any-return]
