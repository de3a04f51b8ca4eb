"""
Table compiler.

Orchestrates the flattener and a dialect column mapper to turn one
:class:`BuiltCollection` into a :class:`PhysicalTable`: implicit primary
key and timestamp columns first, then one column per storable leaf field,
then deterministic index specifications.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy.schema import CreateIndex, CreateTable

from ..config.types import BuiltCollection
from ..exceptions import ConfigurationError
from ..fields import build_fields
from ..ids import DEFAULT_ID_GENERATOR
from ..utils import utcnow
from .columns import ColumnKind, ColumnSpec, IndexSpec
from .dialects import Dialect
from .registry import get_column_mapper

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from ..config.types import BuiltConfig
    from ..fields import BuiltField
    from ..ids import IdGenerator
    from .columns import ColumnMapper

logger = logging.getLogger("opaca.schema")

CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
TIMESTAMP_KEYS = frozenset({CREATED_AT, UPDATED_AT})


@dataclass(frozen=True)
class PhysicalTable:
    """A compiled, dialect-specific table for one collection."""

    name: str
    slug: str
    collection_name: str
    dialect: Dialect
    table: sa.Table
    columns: tuple[ColumnSpec, ...]
    indexes: tuple[IndexSpec, ...]
    primary_key: ColumnSpec
    _by_key: Mapping[str, ColumnSpec] = field(repr=False, compare=False)

    @property
    def kinds(self) -> Mapping[str, ColumnKind]:
        return MappingProxyType({c.key: c.kind for c in self.columns})

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(c.key for c in self.columns)

    def column(self, key: str) -> ColumnSpec | None:
        return self._by_key.get(key)

    def has_column(self, key: str) -> bool:
        return key in self._by_key

    def sa_column(self, key: str) -> sa.Column[Any]:
        return self.table.c[key]

    def to_ddl(self) -> list[str]:
        """CREATE TABLE followed by CREATE INDEX statements for the dialect."""
        sa_dialect = self.dialect.sa_dialect()
        statements = [str(CreateTable(self.table).compile(dialect=sa_dialect)).strip()]
        for index in sorted(self.table.indexes, key=lambda i: str(i.name)):
            ddl = CreateIndex(index).compile(dialect=sa_dialect)
            statements.append(str(ddl).strip())
        return statements


def _implicit_columns(
    collection: BuiltCollection,
    mapper: ColumnMapper,
    id_generator: IdGenerator,
    declared: set[str],
) -> list[ColumnSpec]:
    columns: list[ColumnSpec] = []
    pk = collection.primary_key
    if pk not in declared:
        columns.append(
            ColumnSpec(
                key=pk,
                name=pk,
                type_=mapper.text_type(),
                kind=ColumnKind.STRING,
                nullable=False,
                primary_key=True,
                default=id_generator.next_id,
                implicit=True,
            )
        )
    columns.append(
        ColumnSpec(
            key=CREATED_AT,
            name="created_at",
            type_=mapper.date_type(),
            kind=ColumnKind.DATE,
            nullable=False,
            default=utcnow,
            server_default=mapper.current_timestamp(),
            implicit=True,
        )
    )
    columns.append(
        ColumnSpec(
            key=UPDATED_AT,
            name="updated_at",
            type_=mapper.date_type(),
            kind=ColumnKind.DATE,
            nullable=False,
            default=utcnow,
            server_default=mapper.current_timestamp(),
            onupdate=utcnow,
            implicit=True,
        )
    )
    return columns


def _reference_column(
    config: BuiltConfig | None,
    built: BuiltField,
    mapper: ColumnMapper,
) -> ColumnSpec | None:
    """Storage column of the target a single-valued relation points at."""
    relation = built.relation
    if config is None or relation is None or built.many:
        return None
    target = config.get(relation.to)
    if target is None:
        return None
    key = (
        target.primary_key
        if relation.kind == "relationship"
        else relation.value_field
    )
    target_field = target.field(key)
    if target_field is None:
        # Implicit primary keys are text.
        return None
    return mapper.base_column(target_field.column_name, target_field)


def compile_table(
    collection: BuiltCollection,
    dialect: Dialect | str,
    *,
    metadata: sa.MetaData | None = None,
    id_generator: IdGenerator | None = None,
    config: BuiltConfig | None = None,
) -> PhysicalTable:
    """
    Compile one collection into a physical table.

    Args:
        collection: A collection from a :class:`BuiltConfig`.
        dialect: Target dialect family.
        metadata: MetaData to attach the table to; a fresh one by default,
            so compiling twice yields two independent, identical tables.
        id_generator: Strategy for the implicit primary key.
        config: The build *collection* belongs to. Single-valued relations
            take the storage type of their target column when given, and
            are stored as text otherwise.

    Raises:
        ConfigurationError: If *collection* is missing or malformed, or two
            fields map to the same physical column.
    """
    if not isinstance(collection, BuiltCollection):
        raise ConfigurationError(
            f"Expected a BuiltCollection, got {type(collection).__name__}"
        )
    if not collection.name or not collection.slug:
        raise ConfigurationError("Collection is missing its name or slug")

    dialect = Dialect.parse(dialect)
    mapper = get_column_mapper(dialect)
    name = collection.table_name
    if not name:
        raise ConfigurationError(
            f"Collection '{collection.name}' produced an empty table name"
        )

    built_fields = build_fields(collection.slug, collection.declared_fields)
    declared = {f.name for f in built_fields}
    columns = _implicit_columns(
        collection, mapper, id_generator or DEFAULT_ID_GENERATOR, declared
    )
    column_owners = {c.name: c.key for c in columns}
    indexes: list[IndexSpec] = []
    index_names: set[str] = set()

    def add_index(spec: IndexSpec) -> None:
        if spec.name not in index_names:
            index_names.add(spec.name)
            indexes.append(spec)

    for built in built_fields:
        if built.name in TIMESTAMP_KEYS:
            logger.warning(
                "Field '%s' collides with an implicit timestamp column; skipped",
                built.path,
            )
            continue

        spec = mapper.map_column(
            built.column_name,
            built,
            reference=_reference_column(config, built, mapper),
        )
        if spec is None:
            continue
        owner = column_owners.get(spec.name)
        if owner is not None:
            raise ConfigurationError(
                f"Field '{built.path}' maps to column '{spec.name}' of table "
                f"'{name}', which is already used by '{owner}'"
            )
        column_owners[spec.name] = spec.key
        if built.name == collection.primary_key:
            spec = replace(spec, primary_key=True, nullable=False)
        columns.append(spec)

        decl = built.declaration
        if decl.references is not None:
            add_index(
                IndexSpec(f"{name}_{spec.name}_ref_idx", spec.key, spec.name)
            )
        if decl.indexed:
            add_index(IndexSpec(f"{name}_{spec.name}_idx", spec.key, spec.name))
        if built.relation is not None and not built.many:
            add_index(IndexSpec(f"{name}_{spec.name}_fk_idx", spec.key, spec.name))

    primary = next((c for c in columns if c.primary_key), None)
    if primary is None:
        raise ConfigurationError(
            f"Primary key '{collection.primary_key}' of collection "
            f"'{collection.name}' is not a storable field"
        )
    target = metadata if metadata is not None else sa.MetaData()
    if name in target.tables:
        raise ConfigurationError(
            f"Table '{name}' is already defined; collection names must not "
            "collide after pluralization"
        )
    table = sa.Table(name, target, *(c.to_column() for c in columns))
    for index in indexes:
        sa.Index(index.name, table.c[index.column_key])

    return PhysicalTable(
        name=name,
        slug=collection.slug,
        collection_name=collection.name,
        dialect=dialect,
        table=table,
        columns=tuple(columns),
        indexes=tuple(indexes),
        primary_key=primary,
        _by_key=MappingProxyType({c.key: c for c in columns}),
    )


@dataclass(frozen=True)
class PhysicalSchema:
    """Every collection of a build compiled into one shared MetaData."""

    dialect: Dialect
    metadata: sa.MetaData
    tables: Mapping[str, PhysicalTable]
    by_slug: Mapping[str, PhysicalTable]

    def get(self, key: str) -> PhysicalTable | None:
        """Resolve a table by table name, collection slug or collection name."""
        table = self.tables.get(key) or self.by_slug.get(key)
        if table is not None:
            return table
        for candidate in self.tables.values():
            if candidate.collection_name == key:
                return candidate
        return None

    def to_ddl(self) -> list[str]:
        statements: list[str] = []
        for table in self.tables.values():
            statements.extend(table.to_ddl())
        return statements

    async def create_all(self, engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(self.metadata.create_all)

    async def drop_all(self, engine: AsyncEngine) -> None:
        async with engine.begin() as conn:
            await conn.run_sync(self.metadata.drop_all)


def compile_schema(
    config: BuiltConfig,
    dialect: Dialect | str,
    *,
    id_generator: IdGenerator | None = None,
) -> PhysicalSchema:
    """Compile every collection of *config*, in declaration order."""
    dialect = Dialect.parse(dialect)
    metadata = sa.MetaData()
    tables: dict[str, PhysicalTable] = {}
    by_slug: dict[str, PhysicalTable] = {}
    for collection in config:
        table = compile_table(
            collection,
            dialect,
            metadata=metadata,
            id_generator=id_generator,
            config=config,
        )
        tables[table.name] = table
        by_slug[table.slug] = table
    logger.debug("Compiled %d tables for %s", len(tables), dialect.value)
    return PhysicalSchema(
        dialect=dialect,
        metadata=metadata,
        tables=MappingProxyType(tables),
        by_slug=MappingProxyType(by_slug),
    )
