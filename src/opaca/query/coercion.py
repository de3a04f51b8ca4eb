"""Query-string value coercion driven by the declared column kind."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

from ..schema.columns import ColumnKind

_INTEGER = re.compile(r"^[+-]?\d+$")
_DIGITS = re.compile(r"^\d+$")


def _to_number(raw: str) -> int | float | None:
    text = raw.strip()
    if not text:
        return None
    if _INTEGER.match(text):
        return int(text)
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _to_datetime(raw: str) -> datetime | None:
    text = raw.strip()
    if _DIGITS.match(text):
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_value(raw: str, kind: ColumnKind | None) -> Any:
    """
    Interpret one query-string value.

    ``"null"`` and the boolean literals win for every kind; numbers and
    dates are parsed only for columns of that kind, and boolean columns
    also accept ``"1"`` and ``"0"``. Anything that does not parse is
    passed through unchanged.
    """
    if raw == "null":
        return None
    if raw == "true":
        return True
    if raw == "false":
        return False
    if kind is ColumnKind.NUMBER:
        number = _to_number(raw)
        if number is not None:
            return number
    elif kind is ColumnKind.BOOLEAN:
        if raw in ("1", "0"):
            return raw == "1"
    elif kind is ColumnKind.DATE:
        moment = _to_datetime(raw)
        if moment is not None:
            return moment
    return raw


def split_list(raw: str | None) -> list[str]:
    """Comma-split, trim and drop empty items."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def coerce_id(raw: str, kind: ColumnKind | None) -> Any:
    """Path ids arrive as strings; numeric primary keys compare as numbers."""
    if kind is ColumnKind.NUMBER:
        number = _to_number(raw)
        if number is not None:
            return number
    return raw
