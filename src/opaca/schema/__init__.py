"""Dialect column mapping and table compilation."""

from ..utils import table_name_for
from .columns import ColumnKind, ColumnMapper, ColumnSpec, IndexSpec
from .compiler import (
    CREATED_AT,
    UPDATED_AT,
    PhysicalSchema,
    PhysicalTable,
    compile_schema,
    compile_table,
)
from .dialects import Dialect
from .postgres import PostgresColumnMapper
from .registry import ColumnMapperRegistry, get_column_mapper
from .sqlite import SQLiteColumnMapper
from .types import EpochMillis, IntegerBoolean, JSONType

__all__ = [
    "CREATED_AT",
    "UPDATED_AT",
    "ColumnKind",
    "ColumnMapper",
    "ColumnMapperRegistry",
    "ColumnSpec",
    "Dialect",
    "EpochMillis",
    "IndexSpec",
    "IntegerBoolean",
    "JSONType",
    "PhysicalSchema",
    "PhysicalTable",
    "PostgresColumnMapper",
    "SQLiteColumnMapper",
    "compile_schema",
    "compile_table",
    "get_column_mapper",
    "table_name_for",
]
