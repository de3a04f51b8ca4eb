"""
Config sanitizer/builder.

Turns raw collection declarations into a :class:`BuiltConfig`. Every
collection is normalized, checked for duplicate names and slugs, flattened
and resolved against the other collections of the same build. Any failure
raises :class:`ConfigurationError` and no partial artifact is returned.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError
from ..fields import SelectFieldType, build_fields
from ..utils import slugify
from .types import (
    DEFAULT_ICON,
    DEFAULT_PRIMARY_KEY,
    BuiltCollection,
    BuiltConfig,
    BuiltRelation,
    CollectionConfig,
    CollectionIndex,
    FieldIndex,
    OpacaConfig,
    RelationshipRegistry,
    RelationSource,
    RelationTarget,
    SelectIndex,
)

if TYPE_CHECKING:
    from ..fields import BuiltField, SelectOption, SelectRelationship

logger = logging.getLogger("opaca.config")

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:[-_][a-z0-9]+)*$")


def _coerce_config(raw: Any) -> OpacaConfig:
    if isinstance(raw, OpacaConfig):
        collections: Any = raw.collections
    elif isinstance(raw, Mapping):
        collections = raw.get("collections")
    else:
        collections = getattr(raw, "collections", None)

    if not isinstance(collections, list | tuple):
        raise ConfigurationError(
            "`collections` must be a list of collection declarations"
        )
    if not collections:
        raise ConfigurationError("`collections` must declare at least one collection")
    try:
        return OpacaConfig.model_validate({"collections": collections})
    except PydanticValidationError as exc:
        raise ConfigurationError(f"Invalid collection declaration: {exc}") from exc


def _normalize(idx: int, raw: CollectionConfig) -> CollectionConfig:
    name = raw.name.strip()
    if not name:
        raise ConfigurationError(f"Collection[{idx}] is missing 'name'")

    slug = (raw.slug or slugify(name)).strip()
    if not slug:
        raise ConfigurationError(f"Collection[{idx}] produced an empty 'slug'")
    if not SLUG_PATTERN.match(slug):
        raise ConfigurationError(
            f"Collection[{idx}] slug '{slug}' is invalid. Use lowercase letters, "
            "digits and single hyphens or underscores."
        )
    if not raw.fields:
        raise ConfigurationError(f"Collection '{name}' must declare at least one field")

    return raw.model_copy(
        update={
            "name": name,
            "slug": slug,
            "icon": raw.icon or DEFAULT_ICON,
            "primary_key": raw.primary_key or DEFAULT_PRIMARY_KEY,
        }
    )


def _require_slug(col: CollectionConfig) -> str:
    if not col.slug:
        raise ConfigurationError(f"Collection '{col.name}' has no slug")
    return col.slug


def _check_duplicates(collections: list[CollectionConfig]) -> None:
    seen_names: set[str] = set()
    seen_slugs: set[str] = set()
    for col in collections:
        name_key = col.name.lower()
        if name_key in seen_names:
            raise ConfigurationError(f"Duplicate collection name '{col.name}'")
        seen_names.add(name_key)

        slug = _require_slug(col)
        if slug in seen_slugs:
            raise ConfigurationError(f"Duplicate collection slug '{slug}'")
        seen_slugs.add(slug)


class _Builder:
    """Accumulates the lookup indices while collections are resolved."""

    def __init__(self, known_slugs: set[str]) -> None:
        self.known_slugs = known_slugs
        self.fields_by_collection: dict[str, tuple[BuiltField, ...]] = {}
        self.field_by_path: dict[str, BuiltField] = {}
        self.relations: list[BuiltRelation] = []
        self.relations_by_target: dict[str, list[BuiltRelation]] = {}
        self.options_by_path: dict[str, tuple[SelectOption, ...]] = {}
        self.relationship_by_path: dict[str, SelectRelationship] = {}

    def resolve(self, col: CollectionConfig) -> tuple[BuiltField, ...]:
        slug = _require_slug(col)
        try:
            built = tuple(build_fields(slug, col.fields))
        except ConfigurationError as exc:
            raise ConfigurationError(f"Collection '{col.name}': {exc}") from exc

        for field in built:
            self.field_by_path[field.path] = field
            if isinstance(field.type, SelectFieldType):
                spec = field.type.select
                if spec.options:
                    self.options_by_path[field.path] = spec.options
                if spec.relationship is not None:
                    self._require_target(field.path, spec.relationship.to, "Select")
                    self.relationship_by_path[field.path] = spec.relationship
                    self._register(
                        slug,
                        field,
                        RelationTarget(collection=spec.relationship.to),
                        "select.relationship",
                    )
            elif field.relation is not None:
                self._require_target(field.path, field.relation.to, "Field")
                self._register(
                    slug,
                    field,
                    RelationTarget(
                        collection=field.relation.to,
                        via=field.relation.through,
                        many=field.relation.many,
                    ),
                    field.relation.kind,
                )

        self.fields_by_collection[slug] = built
        return built

    def _require_target(self, path: str, target: str, label: str) -> None:
        if target not in self.known_slugs:
            raise ConfigurationError(
                f"{label} '{path}' references unknown collection '{target}'"
            )

    def _register(
        self,
        slug: str,
        field: BuiltField,
        target: RelationTarget,
        kind: Literal["relationship", "select.relationship"],
    ) -> None:
        item = BuiltRelation(
            source=RelationSource(collection=slug, field=field.name, path=field.path),
            target=target,
            kind=kind,
        )
        self.relations.append(item)
        self.relations_by_target.setdefault(target.collection, []).append(item)


def sanitize(raw: OpacaConfig | Mapping[str, Any] | Any) -> BuiltConfig:
    """
    Validate, normalize and index raw collection declarations.

    Args:
        raw: An :class:`OpacaConfig`, a mapping with a ``collections`` list,
            or any object exposing a ``collections`` attribute.

    Returns:
        A deep-immutable :class:`BuiltConfig`.

    Raises:
        ConfigurationError: On the first invalid declaration.
    """
    config = _coerce_config(raw)
    normalized = [_normalize(idx, col) for idx, col in enumerate(config.collections)]
    _check_duplicates(normalized)

    builder = _Builder({col.slug for col in normalized if col.slug})
    collections: dict[str, BuiltCollection] = {}
    by_slug: dict[str, int] = {}
    by_name: dict[str, str] = {}
    order: list[str] = []

    for idx, col in enumerate(normalized):
        slug = _require_slug(col)
        built_fields = builder.resolve(col)
        collections[slug] = BuiltCollection(
            name=col.name,
            slug=slug,
            icon=col.icon or DEFAULT_ICON,
            declared_fields=col.fields,
            fields=built_fields,
            primary_key=col.primary_key or DEFAULT_PRIMARY_KEY,
            hidden=col.hidden,
        )
        by_slug[slug] = idx
        by_name[col.name] = slug
        order.append(slug)

    logger.debug(
        "Built config with %d collections and %d relations",
        len(order),
        len(builder.relations),
    )

    return BuiltConfig(
        collections=MappingProxyType(collections),
        index=CollectionIndex(
            by_slug=MappingProxyType(by_slug),
            by_name=MappingProxyType(by_name),
            order=tuple(order),
        ),
        fields=FieldIndex(
            by_collection=MappingProxyType(builder.fields_by_collection),
            by_path=MappingProxyType(builder.field_by_path),
        ),
        relationships=RelationshipRegistry(
            items=tuple(builder.relations),
            by_target=MappingProxyType(
                {k: tuple(v) for k, v in builder.relations_by_target.items()}
            ),
        ),
        selects=SelectIndex(
            options_by_path=MappingProxyType(builder.options_by_path),
            relationship_by_path=MappingProxyType(builder.relationship_by_path),
        ),
    )
