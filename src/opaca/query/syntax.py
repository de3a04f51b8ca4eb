"""
Query-string filter grammar.

Recognized keys::

    where.<field>[<op>]=<value>            AND-ed top-level condition
    or.<group>.where.<field>[<op>]=<value> OR-ed within <group>

Groups are AND-ed with each other and with the top-level conditions. The
result is a predicate tree in the ``{"op", "attr", "val"}`` /
``{"op": "and"|"or", "conditions": [...]}`` dictionary form.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Union
from urllib.parse import parse_qsl

from ..exceptions import BadRequestError
from ..schema.columns import ColumnKind
from .coercion import coerce_value, split_list
from .strategy import FilterOperator

logger = logging.getLogger("opaca.query")

QueryParams = Union[str, Mapping[str, Any], Iterable[tuple[str, str]]]

_FIELD_OP = re.compile(r"^(.+?)(?:\[(.+)\])?$")
_COMPARISON_OPS: dict[str, FilterOperator] = {
    op.value: op
    for op in FilterOperator
    if op not in (FilterOperator.AND, FilterOperator.OR)
}


def normalize_params(params: QueryParams | None) -> list[tuple[str, str]]:
    """Flatten any supported query representation into ordered pairs."""
    if params is None:
        return []
    if isinstance(params, str):
        return parse_qsl(params.lstrip("?"), keep_blank_values=True)
    if isinstance(params, Mapping):
        pairs: list[tuple[str, str]] = []
        for key, value in params.items():
            if isinstance(value, list | tuple):
                pairs.extend((str(key), str(v)) for v in value)
            elif value is not None:
                pairs.append((str(key), str(value)))
        return pairs
    return [(str(k), str(v)) for k, v in params]


def _split_key(key: str) -> tuple[str | None, str] | None:
    """Return ``(group, remainder)`` for filter keys, ``None`` otherwise."""
    if key.startswith("where."):
        return None, key[len("where.") :]
    if key.startswith("or."):
        parts = key.split(".", 3)
        if len(parts) == 4 and parts[2] == "where" and parts[1]:
            return parts[1], parts[3]
    return None


def _require_dates(attr: str, kind: ColumnKind | None, values: list[Any]) -> None:
    if kind is not ColumnKind.DATE:
        return
    for value in values:
        if value is not None and not isinstance(value, datetime):
            raise BadRequestError(f"Invalid date in filter on '{attr}': {value!r}")


def _leaf(
    attr: str, op: FilterOperator, raw: str, kind: ColumnKind | None
) -> dict[str, Any] | None:
    if op is FilterOperator.IN:
        values = [coerce_value(v, kind) for v in split_list(raw)]
        # An empty list yields no condition rather than a match-nothing one.
        if not values:
            return None
        _require_dates(attr, kind, values)
        return {"op": op.value, "attr": attr, "val": values}
    if op is FilterOperator.LIKE:
        if kind is ColumnKind.DATE:
            raise BadRequestError(f"Operator 'like' does not apply to date field '{attr}'")
        return {"op": op.value, "attr": attr, "val": raw}
    value = coerce_value(raw, kind)
    _require_dates(attr, kind, [value])
    return {"op": op.value, "attr": attr, "val": value}


def _group_order(group: str) -> tuple[int, int | str]:
    return (0, int(group)) if group.isdigit() else (1, group)


def parse_filters(
    kinds: Mapping[str, ColumnKind],
    params: QueryParams | None,
) -> dict[str, Any] | None:
    """
    Parse filter keys into a predicate tree.

    Args:
        kinds: Column kind per known field key.
        params: Raw query string, mapping or ``(key, value)`` pairs.

    Returns:
        The tree, or ``None`` when no recognized filter was present.

    Raises:
        BadRequestError: When a filter on a date field carries a value that
            is not a date.
    """
    and_parts: list[dict[str, Any]] = []
    or_groups: dict[str, list[dict[str, Any]]] = {}

    for key, raw in normalize_params(params):
        split = _split_key(key)
        if split is None:
            continue
        group, remainder = split
        match = _FIELD_OP.match(remainder)
        if match is None:
            continue
        attr, op_name = match.group(1), (match.group(2) or "eq").lower()
        if attr not in kinds:
            logger.debug("Ignoring filter on unknown field %r", attr)
            continue
        op = _COMPARISON_OPS.get(op_name)
        if op is None:
            logger.debug("Ignoring unknown filter operator %r on %r", op_name, attr)
            continue
        leaf = _leaf(attr, op, raw, kinds[attr])
        if leaf is None:
            continue
        if group is None:
            and_parts.append(leaf)
        else:
            or_groups.setdefault(group, []).append(leaf)

    conditions = list(and_parts)
    for group in sorted(or_groups, key=_group_order):
        members = or_groups[group]
        if len(members) == 1:
            conditions.append(members[0])
        else:
            conditions.append({"op": FilterOperator.OR.value, "conditions": members})

    if not conditions:
        return None
    return {"op": FilterOperator.AND.value, "conditions": conditions}
