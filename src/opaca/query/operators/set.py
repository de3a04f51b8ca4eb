"""Set membership operator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ..strategy import FilterOperator, FilterOperatorStrategy

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class InOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IN

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.in_(value))
