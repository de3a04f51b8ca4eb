"""
Filter operator implementations and default registry.

Usage::

    from opaca.query.operators import DEFAULT_FILTER_REGISTRY

    expr = DEFAULT_FILTER_REGISTRY.apply(FilterOperator.EQ, column, value)
"""

from __future__ import annotations

from ..strategy import FilterOperatorRegistry
from .set import InOperator
from .standard import (
    EqualOperator,
    GreaterEqualOperator,
    GreaterThanOperator,
    LessEqualOperator,
    LessThanOperator,
    NotEqualOperator,
)
from .string import LikeOperator


def build_default_filter_registry() -> FilterOperatorRegistry:
    """Create a registry with all built-in filter operators."""
    registry = FilterOperatorRegistry()
    registry.register_all(
        EqualOperator(),
        NotEqualOperator(),
        GreaterThanOperator(),
        GreaterEqualOperator(),
        LessThanOperator(),
        LessEqualOperator(),
        InOperator(),
        LikeOperator(),
    )
    return registry


DEFAULT_FILTER_REGISTRY: FilterOperatorRegistry = build_default_filter_registry()

__all__ = [
    "DEFAULT_FILTER_REGISTRY",
    "FilterOperatorRegistry",
    "build_default_filter_registry",
]
