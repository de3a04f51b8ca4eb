"""
Dialect column mapping strategy.

A :class:`ColumnMapper` maps one leaf field to one :class:`ColumnSpec` for
its dialect. The dispatch on field type is shared; subclasses only supply
the native SQLAlchemy types and the dialect's current-timestamp default.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from ..fields import (
    BOOLEAN_TYPES,
    JSON_TYPES,
    STRUCTURAL_TYPES,
    TEXT_TYPES,
    EnumFieldType,
    PrimitiveFieldType,
    RelationshipFieldType,
    SelectFieldType,
)
from ..utils import freeze, thaw

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.types import TypeEngine

    from ..fields import BuiltField, SelectOption
    from .dialects import Dialect


class ColumnKind(str, Enum):
    """Logical value kind of a column, used for coercion and serialization."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"
    ENUM = "enum"


@dataclass(frozen=True)
class ColumnSpec:
    """A dialect-specific physical column derived from one field."""

    key: str
    name: str
    type_: TypeEngine[Any]
    kind: ColumnKind
    nullable: bool = True
    unique: bool = False
    primary_key: bool = False
    default: Any = None
    server_default: Any = None
    onupdate: Any = None
    integer: bool = False
    many: bool = False
    enum_values: tuple[str, ...] | None = None
    implicit: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.server_default is not None

    def to_column(self) -> sa.Column[Any]:
        return sa.Column(
            self.name,
            self.type_,
            key=self.key,
            primary_key=self.primary_key,
            nullable=self.nullable,
            unique=self.unique or None,
            default=self.default,
            server_default=self.server_default,
            onupdate=self.onupdate,
        )


@dataclass(frozen=True)
class IndexSpec:
    name: str
    column_key: str
    column_name: str


def _copying_factory(value: Any) -> Callable[[], Any]:
    frozen = freeze(value)

    def factory() -> Any:
        return thaw(frozen)

    return factory


def peek_option_value_type(options: tuple[SelectOption, ...] | None) -> type | None:
    """Type of the first option's value; select columns are typed from it."""
    if not options:
        return None
    value = options[0].value
    if isinstance(value, bool):
        return str
    return type(value)


class ColumnMapper(ABC):
    """Strategy interface mapping a leaf field to a column for one dialect."""

    @property
    @abstractmethod
    def dialect(self) -> Dialect:
        """The dialect this mapper emits columns for."""
        ...

    @abstractmethod
    def text_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def integer_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def float_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def boolean_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def date_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def json_type(self) -> TypeEngine[Any]: ...

    @abstractmethod
    def current_timestamp(self) -> Any:
        """Server default clause producing the current time."""
        ...

    def enum_type(self, values: tuple[str, ...]) -> TypeEngine[Any]:
        return sa.Enum(
            *values,
            native_enum=False,
            create_constraint=False,
            length=max(len(v) for v in values),
        )

    def map_column(
        self,
        column_name: str,
        field: BuiltField,
        *,
        reference: ColumnSpec | None = None,
    ) -> ColumnSpec | None:
        """
        Map *field* to a column named *column_name*.

        Args:
            column_name: Physical column name.
            field: The leaf field to map.
            reference: Column a single-valued relation points at; its
                storage type is reused. Text when not given.

        Returns:
            The column, or ``None`` for types this dialect does not store.
        """
        base = self.base_column(column_name, field, reference=reference)
        if base is None:
            return None
        return self.apply_common_modifiers(base, field)

    def base_column(
        self,
        column_name: str,
        field: BuiltField,
        *,
        reference: ColumnSpec | None = None,
    ) -> ColumnSpec | None:
        ftype = field.type
        if isinstance(ftype, PrimitiveFieldType):
            return self._primitive_column(column_name, field, ftype)
        if isinstance(ftype, EnumFieldType):
            return self._spec(
                column_name,
                field,
                self.enum_type(ftype.enum),
                ColumnKind.ENUM,
                enum_values=ftype.enum,
            )
        if isinstance(ftype, RelationshipFieldType):
            if ftype.relationship.many:
                return self._spec(
                    column_name, field, self.json_type(), ColumnKind.JSON, many=True
                )
            if reference is not None:
                return self._reference_column(column_name, field, reference)
            return self._spec(column_name, field, self.text_type(), ColumnKind.STRING)
        if isinstance(ftype, SelectFieldType):
            if not ftype.select.multiple and reference is not None:
                return self._reference_column(column_name, field, reference)
            return self._select_column(column_name, field, ftype)
        return None

    def _reference_column(
        self, column_name: str, field: BuiltField, reference: ColumnSpec
    ) -> ColumnSpec:
        return self._spec(
            column_name,
            field,
            reference.type_,
            reference.kind,
            integer=reference.integer,
            enum_values=reference.enum_values,
        )

    def _primitive_column(
        self,
        column_name: str,
        field: BuiltField,
        ftype: PrimitiveFieldType,
    ) -> ColumnSpec | None:
        if ftype in TEXT_TYPES:
            return self._spec(column_name, field, self.text_type(), ColumnKind.STRING)
        if ftype is PrimitiveFieldType.NUMBER:
            if field.declaration.mode == "integer":
                return self._spec(
                    column_name,
                    field,
                    self.integer_type(),
                    ColumnKind.NUMBER,
                    integer=True,
                )
            return self._spec(column_name, field, self.float_type(), ColumnKind.NUMBER)
        if ftype in BOOLEAN_TYPES:
            return self._spec(
                column_name, field, self.boolean_type(), ColumnKind.BOOLEAN
            )
        if ftype is PrimitiveFieldType.DATE:
            return self._spec(column_name, field, self.date_type(), ColumnKind.DATE)
        if ftype in JSON_TYPES:
            return self._spec(
                column_name,
                field,
                self.json_type(),
                ColumnKind.JSON,
                many=ftype is PrimitiveFieldType.ARRAY,
            )
        if ftype in STRUCTURAL_TYPES:
            return None
        return None

    def _select_column(
        self,
        column_name: str,
        field: BuiltField,
        ftype: SelectFieldType,
    ) -> ColumnSpec:
        if ftype.select.multiple:
            return self._spec(
                column_name, field, self.json_type(), ColumnKind.JSON, many=True
            )
        value_type = peek_option_value_type(ftype.select.options)
        if value_type is int:
            return self._spec(
                column_name,
                field,
                self.integer_type(),
                ColumnKind.NUMBER,
                integer=True,
            )
        if value_type is float:
            return self._spec(column_name, field, self.float_type(), ColumnKind.NUMBER)
        return self._spec(column_name, field, self.text_type(), ColumnKind.STRING)

    def _spec(
        self,
        column_name: str,
        field: BuiltField,
        type_: TypeEngine[Any],
        kind: ColumnKind,
        **extra: Any,
    ) -> ColumnSpec:
        return ColumnSpec(
            key=field.name, name=column_name, type_=type_, kind=kind, **extra
        )

    def apply_common_modifiers(self, spec: ColumnSpec, field: BuiltField) -> ColumnSpec:
        """Apply ``required``, ``unique`` and ``default`` uniformly."""
        decl = field.declaration
        changes: dict[str, Any] = {}
        if decl.required:
            changes["nullable"] = False
        if decl.unique:
            changes["unique"] = True

        if decl.has_default:
            value = decl.default
            if spec.kind is ColumnKind.DATE and value == "now":
                changes["server_default"] = self.current_timestamp()
            elif spec.kind is ColumnKind.DATE and isinstance(value, str):
                changes["default"] = datetime.fromisoformat(value)
            elif isinstance(value, Mapping | tuple):
                changes["default"] = _copying_factory(value)
            else:
                changes["default"] = value
        elif spec.kind is ColumnKind.JSON:
            changes["default"] = _copying_factory([] if spec.many else {})

        return replace(spec, **changes) if changes else spec
