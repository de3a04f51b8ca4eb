"""Collection declarations and the sanitizer that builds them."""

from .sanitize import SLUG_PATTERN, sanitize
from .types import (
    BuiltCollection,
    BuiltConfig,
    BuiltRelation,
    CollectionConfig,
    OpacaConfig,
)

__all__ = [
    "SLUG_PATTERN",
    "BuiltCollection",
    "BuiltConfig",
    "BuiltRelation",
    "CollectionConfig",
    "OpacaConfig",
    "sanitize",
]
