"""
Pydantic payload schemas derived from a compiled table.

Each table gets three models: ``insert`` (required columns without a
default must be present), ``select`` (every column, all optional) and
``update`` (partial insert). Parsing reports every violation at once as
``{field: [messages]}``.
"""

from __future__ import annotations

import keyword
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, create_model
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .schema.columns import ColumnKind

if TYPE_CHECKING:
    from collections.abc import Collection

    from .schema.columns import ColumnSpec
    from .schema.compiler import PhysicalTable

_MODEL_CONFIG = ConfigDict(
    extra="ignore",
    populate_by_name=True,
    protected_namespaces=(),
)


def _python_type(spec: ColumnSpec, json_fields: Collection[str]) -> Any:
    if spec.key in json_fields:
        return Any
    if spec.kind is ColumnKind.STRING:
        return str
    if spec.kind is ColumnKind.NUMBER:
        return int if spec.integer else float
    if spec.kind is ColumnKind.BOOLEAN:
        return bool
    if spec.kind is ColumnKind.DATE:
        return datetime
    if spec.kind is ColumnKind.ENUM and spec.enum_values:
        return Literal[spec.enum_values]  # type: ignore[valid-type]
    if spec.kind is ColumnKind.JSON and spec.many:
        return list[Any]
    return Any


def _attribute_name(key: str, position: int) -> str:
    if key.isidentifier() and not keyword.iskeyword(key) and not key.startswith("_"):
        return key
    return f"field_{position}"


def _build_model(
    name: str,
    columns: tuple[ColumnSpec, ...],
    json_fields: Collection[str],
    *,
    partial: bool,
) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for position, spec in enumerate(columns):
        annotation = _python_type(spec, json_fields)
        required = not partial and not spec.nullable and not spec.has_default
        if required:
            definitions[_attribute_name(spec.key, position)] = (
                annotation,
                Field(alias=spec.key),
            )
        elif spec.nullable:
            definitions[_attribute_name(spec.key, position)] = (
                annotation | None if annotation is not Any else Any,
                Field(default=None, alias=spec.key),
            )
        else:
            # Omittable but not nullable: an explicit null is still rejected.
            definitions[_attribute_name(spec.key, position)] = (
                annotation,
                Field(default=None, alias=spec.key),
            )
    return create_model(name, __config__=_MODEL_CONFIG, **definitions)


def errors_from_pydantic(exc: PydanticValidationError) -> dict[str, list[str]]:
    """Convert pydantic errors into ``{loc: [messages]}``."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ())) or "__root__"
        msg = error.get("msg", "validation error")
        errors.setdefault(loc, []).append(msg)
    return errors


@dataclass(frozen=True)
class TableSchemas:
    """Insert, select and update models for one compiled table."""

    insert: type[BaseModel]
    select: type[BaseModel]
    update: type[BaseModel]

    def parse_insert(self, data: Any) -> dict[str, Any]:
        return self._parse(self.insert, data)

    def parse_update(self, data: Any) -> dict[str, Any]:
        return self._parse(self.update, data)

    def parse_row(self, data: Any) -> dict[str, Any]:
        return self._parse(self.select, data)

    @staticmethod
    def _parse(model: type[BaseModel], data: Any) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ValidationError("Expected a JSON object")
        try:
            parsed = model.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(errors_from_pydantic(exc)) from exc
        return parsed.model_dump(by_alias=True, exclude_unset=True)


def _model_prefix(table: PhysicalTable) -> str:
    return "".join(part.capitalize() for part in table.name.replace("-", "_").split("_"))


def build_table_schemas(
    table: PhysicalTable,
    *,
    json_fields: Collection[str] = (),
) -> TableSchemas:
    """
    Derive the three payload models for *table*.

    Implicit columns (generated id and timestamps) are never accepted from
    callers; a primary key declared as a field is.
    """
    prefix = _model_prefix(table)
    writable = tuple(c for c in table.columns if not c.implicit)
    return TableSchemas(
        insert=_build_model(f"{prefix}Insert", writable, json_fields, partial=False),
        select=_build_model(f"{prefix}Select", table.columns, json_fields, partial=True),
        update=_build_model(f"{prefix}Update", writable, json_fields, partial=True),
    )
