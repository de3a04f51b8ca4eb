"""Registry of column mappers keyed by :class:`Dialect`."""

from __future__ import annotations

from ..exceptions import ConfigurationError
from .columns import ColumnMapper
from .dialects import Dialect
from .postgres import PostgresColumnMapper
from .sqlite import SQLiteColumnMapper


class ColumnMapperRegistry:
    def __init__(self) -> None:
        self._mappers: dict[Dialect, ColumnMapper] = {}

    def register(self, mapper: ColumnMapper) -> None:
        self._mappers[mapper.dialect] = mapper

    def register_all(self, *mappers: ColumnMapper) -> None:
        for mapper in mappers:
            self.register(mapper)

    def get(self, dialect: Dialect | str) -> ColumnMapper:
        """
        Look up the mapper for *dialect*.

        Raises:
            ConfigurationError: If the dialect is unknown or has no mapper.
        """
        resolved = Dialect.parse(dialect)
        mapper = self._mappers.get(resolved)
        if mapper is None:
            raise ConfigurationError(f"No column mapper registered for {resolved.value}")
        return mapper


def build_default_mapper_registry() -> ColumnMapperRegistry:
    """Create a registry with the built-in Postgres and SQLite mappers."""
    registry = ColumnMapperRegistry()
    registry.register_all(PostgresColumnMapper(), SQLiteColumnMapper())
    return registry


DEFAULT_MAPPER_REGISTRY: ColumnMapperRegistry = build_default_mapper_registry()


def get_column_mapper(dialect: Dialect | str) -> ColumnMapper:
    return DEFAULT_MAPPER_REGISTRY.get(dialect)
