"""String matching operator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ..strategy import FilterOperator, FilterOperatorStrategy

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class LikeOperator(FilterOperatorStrategy):
    """Substring match: the raw value is wrapped as ``%value%``."""

    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LIKE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.like(f"%{value}%"))
