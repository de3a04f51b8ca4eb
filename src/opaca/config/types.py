"""Raw collection declarations and the immutable build artifact."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..fields import FieldDeclaration
from ..utils import table_name_for

if TYPE_CHECKING:
    from ..fields import BuiltField, SelectOption, SelectRelationship

DEFAULT_ICON = "Folder"
DEFAULT_PRIMARY_KEY = "id"


class CollectionConfig(BaseModel):
    """A collection as declared by the application author."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str
    slug: str | None = None
    icon: str | None = None
    fields: tuple[FieldDeclaration, ...] = ()
    primary_key: str | None = None
    hidden: bool = False


class OpacaConfig(BaseModel):
    """Root of the author-facing declaration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    collections: tuple[CollectionConfig, ...]


@dataclass(frozen=True)
class BuiltCollection:
    """A normalized collection: slug, icon and primary key are always set."""

    name: str
    slug: str
    icon: str
    declared_fields: tuple[FieldDeclaration, ...]
    fields: tuple[BuiltField, ...]
    primary_key: str = DEFAULT_PRIMARY_KEY
    hidden: bool = False

    @property
    def table_name(self) -> str:
        return table_name_for(self.name)

    def field(self, name: str) -> BuiltField | None:
        for built in self.fields:
            if built.name == name:
                return built
        return None


@dataclass(frozen=True)
class RelationSource:
    collection: str
    field: str
    path: str


@dataclass(frozen=True)
class RelationTarget:
    collection: str
    via: str | None = None
    many: bool | None = None


@dataclass(frozen=True)
class BuiltRelation:
    """One entry of the relationship registry."""

    source: RelationSource
    target: RelationTarget
    kind: Literal["relationship", "select.relationship"]


@dataclass(frozen=True)
class CollectionIndex:
    by_slug: Mapping[str, int]
    by_name: Mapping[str, str]
    order: tuple[str, ...]


@dataclass(frozen=True)
class FieldIndex:
    by_collection: Mapping[str, tuple[BuiltField, ...]]
    by_path: Mapping[str, BuiltField]


@dataclass(frozen=True)
class RelationshipRegistry:
    items: tuple[BuiltRelation, ...]
    by_target: Mapping[str, tuple[BuiltRelation, ...]]

    def __iter__(self) -> Iterator[BuiltRelation]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class SelectIndex:
    options_by_path: Mapping[str, tuple[SelectOption, ...]]
    relationship_by_path: Mapping[str, SelectRelationship]


@dataclass(frozen=True)
class BuiltConfig:
    """
    The single immutable, validated and indexed representation of every
    collection. Produced once by :func:`opaca.config.sanitize` and shared
    read-only by the table compiler and the CRUD engine.
    """

    collections: Mapping[str, BuiltCollection]
    index: CollectionIndex
    fields: FieldIndex
    relationships: RelationshipRegistry
    selects: SelectIndex

    def __iter__(self) -> Iterator[BuiltCollection]:
        for slug in self.index.order:
            yield self.collections[slug]

    def __len__(self) -> int:
        return len(self.index.order)

    def get(self, key: str) -> BuiltCollection | None:
        """Look a collection up by slug, then by declared name."""
        if key in self.collections:
            return self.collections[key]
        slug = self.index.by_name.get(key)
        if slug is not None:
            return self.collections[slug]
        return None
