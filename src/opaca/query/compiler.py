"""
Compile a predicate tree into a SQLAlchemy filter expression.

Uses the strategy pattern: each operator is an isolated class in
``operators/``, registered in a ``FilterOperatorRegistry``.
``build_filter`` walks the tree and delegates leaf compilation to the
registry; ``compile_predicate`` parses a query string first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import ColumnElement, and_, or_

from .operators import DEFAULT_FILTER_REGISTRY
from .strategy import FilterOperator
from .syntax import parse_filters

if TYPE_CHECKING:
    from collections.abc import Mapping

    import sqlalchemy as sa

    from ..schema.columns import ColumnKind
    from ..schema.compiler import PhysicalTable
    from .strategy import FilterOperatorRegistry
    from .syntax import QueryParams


def _columns(table: PhysicalTable | sa.Table) -> Any:
    return table.table.c if hasattr(table, "table") else table.c


def build_filter(
    table: PhysicalTable | sa.Table,
    data: dict[str, Any],
    *,
    registry: FilterOperatorRegistry | None = None,
) -> ColumnElement[bool]:
    """
    Build a SQLAlchemy filter expression from a predicate tree.

    Args:
        table: Compiled table (or bare SQLAlchemy table) the tree refers to.
        data: Predicate tree as produced by :func:`parse_filters`.
        registry: Optional custom operator registry. Falls back to
            ``DEFAULT_FILTER_REGISTRY``.

    Raises:
        ValueError: On unknown operators or fields.
    """
    return _compile_node(_columns(table), data, registry or DEFAULT_FILTER_REGISTRY)


def _compile_node(
    columns: Any, data: dict[str, Any], registry: FilterOperatorRegistry
) -> ColumnElement[bool]:
    op = data.get("op")
    if op in (FilterOperator.AND.value, FilterOperator.OR.value):
        return _compile_logical_operator(columns, op, data, registry)
    return _compile_leaf_node(columns, data, registry)


def _compile_logical_operator(
    columns: Any,
    op: str,
    data: dict[str, Any],
    registry: FilterOperatorRegistry,
) -> ColumnElement[bool]:
    conditions = data.get("conditions", [])
    if not conditions:
        raise ValueError(f"Logical operator '{op}' requires conditions")
    compiled = [_compile_node(columns, c, registry) for c in conditions]
    if len(compiled) == 1:
        return compiled[0]
    if op == FilterOperator.AND.value:
        return and_(*compiled)
    return or_(*compiled)


def _compile_leaf_node(
    columns: Any, data: dict[str, Any], registry: FilterOperatorRegistry
) -> ColumnElement[bool]:
    attr = data.get("attr")
    if attr is None or attr not in columns:
        raise ValueError(f"Unknown filter field: {attr!r}")
    try:
        op = FilterOperator(data.get("op"))
    except ValueError as exc:
        raise ValueError(f"Unknown filter operator: {data.get('op')!r}") from exc
    return registry.apply(op, columns[attr], data.get("val"))


def compile_predicate(
    table: PhysicalTable | sa.Table,
    kinds: Mapping[str, ColumnKind],
    params: QueryParams | None,
    *,
    registry: FilterOperatorRegistry | None = None,
) -> ColumnElement[bool] | None:
    """
    Parse *params* and compile the recognized filters over *table*.

    Returns:
        A WHERE-ready expression, or ``None`` when no filter applied.
    """
    tree = parse_filters(kinds, params)
    if tree is None:
        return None
    return build_filter(table, tree, registry=registry)
