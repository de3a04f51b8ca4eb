"""Primary-key generation strategies for the implicit id column."""

from __future__ import annotations

import uuid
from typing import Protocol


class IdGenerator(Protocol):
    """
    Protocol for ID generation strategies.
    Lets hosts swap the default for UUIDv7, ULID or snowflake ids.
    """

    def next_id(self) -> str:
        """Generates the next unique identifier."""
        ...


class UUID4Generator:
    """Default ID generator using UUIDv4, rendered as 32 hex characters."""

    def next_id(self) -> str:
        return uuid.uuid4().hex


DEFAULT_ID_GENERATOR: IdGenerator = UUID4Generator()
