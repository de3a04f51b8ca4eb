"""
opaca: declarative collections compiled into SQL tables and served
through a generic, policy-driven CRUD engine.
"""

from .config import BuiltCollection, BuiltConfig, CollectionConfig, OpacaConfig, sanitize
from .crud import (
    CrudEngine,
    CrudResponse,
    FailurePolicy,
    RequestContext,
    SoftDeleteConfig,
    TableAcl,
    TableConfig,
    TableHooks,
    TenantConfig,
)
from .exceptions import (
    AuthorizationError,
    BadRequestError,
    ConfigurationError,
    NotFoundError,
    OpacaError,
    RateLimitError,
    TenantError,
    ValidationError,
)
from .fields import FieldDeclaration, PrimitiveFieldType, flatten_fields
from .query import build_filter, parse_filters
from .schema import Dialect, PhysicalSchema, PhysicalTable, compile_schema, compile_table
from .validation import TableSchemas, build_table_schemas

__version__ = "0.1.0"

__all__ = [
    "AuthorizationError",
    "BadRequestError",
    "BuiltCollection",
    "BuiltConfig",
    "CollectionConfig",
    "ConfigurationError",
    "CrudEngine",
    "CrudResponse",
    "Dialect",
    "FailurePolicy",
    "FieldDeclaration",
    "NotFoundError",
    "OpacaConfig",
    "OpacaError",
    "PhysicalSchema",
    "PhysicalTable",
    "PrimitiveFieldType",
    "RateLimitError",
    "RequestContext",
    "SoftDeleteConfig",
    "TableAcl",
    "TableConfig",
    "TableHooks",
    "TableSchemas",
    "TenantConfig",
    "TenantError",
    "ValidationError",
    "build_filter",
    "build_table_schemas",
    "compile_schema",
    "compile_table",
    "parse_filters",
    "sanitize",
]
