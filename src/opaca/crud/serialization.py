"""Row serialization for responses and payload normalization for storage."""

from __future__ import annotations

import contextlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from ..schema.columns import ColumnKind

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

    from ..schema.compiler import PhysicalTable


@dataclass(frozen=True)
class SerializeOptions:
    """How values leave the engine.

    ``dates``: ``"ms"`` epoch milliseconds, ``"iso"`` ISO-8601 strings, or
    ``"native"`` to hand ``datetime`` objects to the transport unchanged.
    """

    dates: Literal["ms", "iso", "native"] = "ms"


def _serialize_date(value: datetime, mode: str) -> Any:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if mode == "ms":
        return int(value.timestamp() * 1000)
    if mode == "iso":
        return value.isoformat()
    return value


def serialize_row(
    table: PhysicalTable,
    row: Mapping[str, Any],
    *,
    json_fields: Collection[str] = (),
    options: SerializeOptions | None = None,
) -> dict[str, Any]:
    """Convert a storage row into its response representation."""
    mode = (options or SerializeOptions()).dates
    out: dict[str, Any] = {}
    for key, value in row.items():
        spec = table.column(key)
        is_json = key in json_fields or (
            spec is not None and spec.kind is ColumnKind.JSON
        )
        if isinstance(value, datetime):
            value = _serialize_date(value, mode)
        elif is_json and isinstance(value, str):
            with contextlib.suppress(ValueError):
                value = json.loads(value)
        out[key] = value
    return out


def normalize_for_db(
    table: PhysicalTable,
    data: Mapping[str, Any],
    *,
    json_fields: Collection[str] = (),
) -> dict[str, Any]:
    """Keep known columns and serialize JSON held in text columns."""
    out: dict[str, Any] = {}
    for key, value in data.items():
        spec = table.column(key)
        if spec is None:
            continue
        if (
            key in json_fields
            and spec.kind is not ColumnKind.JSON
            and value is not None
            and not isinstance(value, str)
        ):
            value = json.dumps(value, separators=(",", ":"), default=str)
        out[key] = value
    return out
