"""
Field model and flattener.

Authors declare collection fields as a tree: leaves are primitive, enum,
relationship or select fields, and ``row`` containers group leaves for
presentation. Flattening splices every row's children into its position,
recursively, and yields the resolved :class:`BuiltField` form consumed by
the sanitizer and the table compiler.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .exceptions import ConfigurationError
from .utils import freeze, slugify


class PrimitiveFieldType(str, Enum):
    """Built-in field types addressable by plain string."""

    ARRAY = "array"
    BLOCKS = "blocks"
    CHECKBOX = "checkbox"
    SWITCHER = "switcher"
    JSON = "json"
    CODE = "code"
    COLLAPSIBLE = "collapsible"
    DATE = "date"
    EMAIL = "email"
    GROUP = "group"
    NUMBER = "number"
    POINT = "point"
    RADIO_GROUP = "radio-group"
    RICH_TEXT = "rich-text"
    JOIN = "join"
    TABS = "tabs"
    TEXT = "text"
    TEXTAREA = "textarea"
    UI = "ui"
    UPLOAD = "upload"


TEXT_TYPES: frozenset[PrimitiveFieldType] = frozenset(
    {
        PrimitiveFieldType.TEXT,
        PrimitiveFieldType.TEXTAREA,
        PrimitiveFieldType.RICH_TEXT,
        PrimitiveFieldType.CODE,
        PrimitiveFieldType.EMAIL,
        PrimitiveFieldType.UPLOAD,
        PrimitiveFieldType.RADIO_GROUP,
    }
)

BOOLEAN_TYPES: frozenset[PrimitiveFieldType] = frozenset(
    {PrimitiveFieldType.CHECKBOX, PrimitiveFieldType.SWITCHER}
)

JSON_TYPES: frozenset[PrimitiveFieldType] = frozenset(
    {PrimitiveFieldType.JSON, PrimitiveFieldType.POINT, PrimitiveFieldType.ARRAY}
)

# Presentation-only types; they never become columns.
STRUCTURAL_TYPES: frozenset[PrimitiveFieldType] = frozenset(
    {
        PrimitiveFieldType.BLOCKS,
        PrimitiveFieldType.COLLAPSIBLE,
        PrimitiveFieldType.GROUP,
        PrimitiveFieldType.JOIN,
        PrimitiveFieldType.TABS,
        PrimitiveFieldType.UI,
    }
)


class _DeclarationModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class EnumFieldType(_DeclarationModel):
    enum: tuple[str, ...] = Field(min_length=1)


class RelationshipTarget(_DeclarationModel):
    to: str
    many: bool = False
    through: str | None = None


class RelationshipFieldType(_DeclarationModel):
    relationship: RelationshipTarget


class SelectOption(_DeclarationModel):
    label: str
    value: str | int | float | bool


class SelectRelationship(_DeclarationModel):
    to: str
    value_field: str = "id"


class SelectSpec(_DeclarationModel):
    options: tuple[SelectOption, ...] = ()
    multiple: bool = False
    relationship: SelectRelationship | None = None


class SelectFieldType(_DeclarationModel):
    select: SelectSpec


class RowFieldType(_DeclarationModel):
    row: tuple[FieldDeclaration, ...]


class FieldReference(_DeclarationModel):
    table: str
    field: str = "id"


FieldType = Union[
    PrimitiveFieldType,
    EnumFieldType,
    RelationshipFieldType,
    SelectFieldType,
    RowFieldType,
]


class FieldDeclaration(BaseModel):
    """One author-declared field. Row containers carry no ``name``."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str | None = None
    type: FieldType
    label: str | None = None
    required: bool = False
    default: Any = None
    unique: bool = False
    indexed: bool = False
    column_name: str | None = None
    references: FieldReference | None = None
    mode: Literal["integer", "float"] | None = None
    hidden: bool = False

    @field_validator("default")
    @classmethod
    def freeze_default(cls, value: Any) -> Any:
        return freeze(value)

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set and self.default is not None


RowFieldType.model_rebuild()
FieldDeclaration.model_rebuild()


def is_row(field: FieldDeclaration) -> bool:
    return isinstance(field.type, RowFieldType)


def is_enum(field: FieldDeclaration) -> bool:
    return isinstance(field.type, EnumFieldType)


def is_relationship(field: FieldDeclaration) -> bool:
    return isinstance(field.type, RelationshipFieldType)


def is_select(field: FieldDeclaration) -> bool:
    return isinstance(field.type, SelectFieldType)


def coerce_fields(
    fields: Iterable[FieldDeclaration | Mapping[str, Any]],
) -> list[FieldDeclaration]:
    """Validate raw field dictionaries into :class:`FieldDeclaration` models."""
    result: list[FieldDeclaration] = []
    for raw in fields:
        if isinstance(raw, FieldDeclaration):
            result.append(raw)
            continue
        try:
            result.append(FieldDeclaration.model_validate(raw))
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid field declaration: {exc}") from exc
    return result


def _iter_leaves(fields: Iterable[FieldDeclaration]) -> Iterator[FieldDeclaration]:
    for field in fields:
        if isinstance(field.type, RowFieldType):
            yield from _iter_leaves(field.type.row)
        else:
            yield field


def flatten_fields(
    fields: Iterable[FieldDeclaration | Mapping[str, Any]],
) -> list[FieldDeclaration]:
    """
    Expand row containers in place and return the leaf fields in pre-order.

    Raises:
        ConfigurationError: If a leaf has no name or two leaves share one.
    """
    flat: list[FieldDeclaration] = []
    seen: set[str] = set()
    for field in _iter_leaves(coerce_fields(fields)):
        name = (field.name or "").strip()
        if not name:
            raise ConfigurationError(
                f"Field of type {_describe_type(field)!r} is missing a name"
            )
        if name in seen:
            raise ConfigurationError(f"Duplicate field name '{name}'")
        seen.add(name)
        flat.append(field)
    return flat


def resolve_column_name(field: FieldDeclaration) -> str:
    """``column_name`` when declared, otherwise the name slugified with ``_``."""
    if field.column_name:
        return field.column_name.lower()
    if not field.name:
        raise ConfigurationError("Cannot resolve a column name for an unnamed field")
    return slugify(field.name, "_").lower()


@dataclass(frozen=True)
class FieldRelation:
    """Relation metadata attached to relationship and relationship-backed selects."""

    to: str
    many: bool = False
    through: str | None = None
    value_field: str = "id"
    kind: Literal["relationship", "select.relationship"] = "relationship"


@dataclass(frozen=True)
class BuiltField:
    """The flattened, resolved form of a leaf :class:`FieldDeclaration`."""

    declaration: FieldDeclaration
    name: str
    path: str
    column_name: str
    relation: FieldRelation | None = None
    select_options: tuple[SelectOption, ...] | None = None

    @property
    def type(self) -> FieldType:
        return self.declaration.type

    @property
    def is_relation(self) -> bool:
        return self.relation is not None

    @property
    def many(self) -> bool:
        """True when the column stores a list of values."""
        if self.relation is not None and self.relation.kind == "relationship":
            return self.relation.many
        if isinstance(self.type, SelectFieldType):
            return self.type.select.multiple
        return False


def build_field(collection_slug: str, field: FieldDeclaration) -> BuiltField:
    if not field.name:
        raise ConfigurationError(
            f"Field in collection '{collection_slug}' is missing a name"
        )
    relation: FieldRelation | None = None
    options: tuple[SelectOption, ...] | None = None
    if isinstance(field.type, RelationshipFieldType):
        target = field.type.relationship
        relation = FieldRelation(
            to=target.to, many=target.many, through=target.through
        )
    elif isinstance(field.type, SelectFieldType):
        spec = field.type.select
        options = spec.options
        if spec.relationship is not None:
            relation = FieldRelation(
                to=spec.relationship.to,
                many=spec.multiple,
                value_field=spec.relationship.value_field,
                kind="select.relationship",
            )
    return BuiltField(
        declaration=field,
        name=field.name,
        path=f"{collection_slug}.{field.name}",
        column_name=resolve_column_name(field),
        relation=relation,
        select_options=options,
    )


def build_fields(
    collection_slug: str,
    fields: Iterable[FieldDeclaration | Mapping[str, Any]],
) -> list[BuiltField]:
    """Flatten *fields* and resolve each leaf against its owning collection."""
    return [build_field(collection_slug, f) for f in flatten_fields(fields)]


def _describe_type(field: FieldDeclaration) -> str:
    if isinstance(field.type, PrimitiveFieldType):
        return field.type.value
    return type(field.type).__name__
