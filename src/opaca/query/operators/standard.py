"""Standard comparison operators."""

from __future__ import annotations

import operator as op_module
from typing import TYPE_CHECKING, Any, cast

from ..strategy import FilterOperator, FilterOperatorStrategy

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class EqualOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.EQ

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.eq(column, value))


class NotEqualOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.ne(column, value))


class GreaterThanOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GT

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.gt(column, value))


class GreaterEqualOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GTE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.ge(column, value))


class LessThanOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LT

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.lt(column, value))


class LessEqualOperator(FilterOperatorStrategy):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LTE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", op_module.le(column, value))
