"""Small string, time, data and async helpers shared across opaca."""

from __future__ import annotations

import inspect
import re
import unicodedata
from collections.abc import Mapping
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")

_SEPARATOR_RUN = re.compile(r"[\s_\-]+")


def slugify(value: str, separator: str = "-") -> str:
    """Turn a human-readable name into a lowercase identifier.

    Whitespace, hyphens and underscores collapse into ``separator``; any
    other character that is neither a letter nor a digit is dropped.

    >>> slugify("  Blog Posts ")
    'blog-posts'
    >>> slugify("Created At", "_")
    'created_at'
    """
    text = unicodedata.normalize("NFKC", value).lower().strip()
    text = _SEPARATOR_RUN.sub(separator, text)
    text = "".join(ch for ch in text if ch.isalnum() or ch == separator)
    if separator:
        text = re.sub(f"{re.escape(separator)}+", separator, text)
        text = text.strip(separator)
    return text


def pluralize(name: str) -> str:
    """Naive English plural: names already ending in ``s`` are kept."""
    if name.lower().endswith("s"):
        return name
    return f"{name}s"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Resolve *value* if a policy callback returned an awaitable."""
    if inspect.isawaitable(value):
        return await value  # type: ignore[no-any-return]
    return value  # type: ignore[return-value]


def table_name_for(collection_name: str) -> str:
    """Table naming convention: pluralized, slugified, lower-cased."""
    return slugify(pluralize(collection_name)).lower()


def freeze(value: Any) -> Any:
    """Read-only view of JSON-like data: dicts become mapping proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, list | tuple):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Fresh mutable copy of a value produced by :func:`freeze`."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value
