"""Status-coded response envelope returned by every CRUD operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..exceptions import OpacaError


@dataclass(frozen=True)
class CrudResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def from_error(cls, exc: OpacaError) -> CrudResponse:
        return cls(status_code=exc.status_code, body=exc.to_dict())
