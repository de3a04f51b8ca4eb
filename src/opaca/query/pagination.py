"""List parameters: limit/offset, ordering and projection."""

from __future__ import annotations

from collections.abc import Collection
from typing import Literal, NamedTuple

from .coercion import split_list
from .syntax import QueryParams, normalize_params

DEFAULT_LIMIT = 20
DEFAULT_MAX_LIMIT = 100


class ListParams(NamedTuple):
    limit: int
    offset: int
    order_by: str | None
    order: Literal["asc", "desc"]
    select: tuple[str, ...]


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(float(raw.strip()))
    except (TypeError, ValueError, OverflowError):
        return None


def parse_list_params(
    params: QueryParams | None,
    columns: Collection[str],
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = DEFAULT_MAX_LIMIT,
) -> ListParams:
    """
    Parse list query parameters against the known column keys.

    Non-numeric or non-positive limits fall back to *default_limit*
    (``limit=0`` does not mean zero rows); larger ones are clamped to
    *max_limit*. Unknown ``orderBy`` and ``select`` entries are ignored.
    """
    query: dict[str, str] = {}
    for key, value in normalize_params(params):
        query.setdefault(key, value)

    limit = _parse_int(query.get("limit"))
    if limit is None or limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)

    offset = _parse_int(query.get("offset"))
    offset = max(0, offset) if offset is not None else 0

    order_by = query.get("orderBy")
    if order_by not in columns:
        order_by = None

    order: Literal["asc", "desc"] = (
        "asc" if query.get("order", "").lower() == "asc" else "desc"
    )

    select = tuple(c for c in split_list(query.get("select")) if c in columns)
    return ListParams(
        limit=limit, offset=offset, order_by=order_by, order=order, select=select
    )
