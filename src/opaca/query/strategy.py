"""
Filter operator compilation strategy.

Provides the ``FilterOperatorStrategy`` interface and a registry keyed by
:class:`FilterOperator`, so hosts can add or override operators without
touching the predicate compiler.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement


class FilterOperator(str, Enum):
    """Operators accepted inside ``where.<field>[<op>]`` keys."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    LIKE = "like"

    # Logical nodes of the predicate tree
    AND = "and"
    OR = "or"


class FilterOperatorStrategy(ABC):
    """
    Strategy interface for compiling one filter operator
    into a SQLAlchemy ``ColumnElement[bool]``.
    """

    @property
    @abstractmethod
    def name(self) -> FilterOperator:
        """The operator this strategy handles."""
        ...

    @abstractmethod
    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        """
        Build a SQLAlchemy filter clause.

        Args:
            column: A SQLAlchemy column.
            value: The coerced condition value.

        Returns:
            A SQLAlchemy boolean expression.
        """
        ...


class FilterOperatorRegistry:
    """Registry of ``FilterOperatorStrategy`` instances keyed by operator."""

    def __init__(self) -> None:
        self._operators: dict[FilterOperator, FilterOperatorStrategy] = {}

    def register(self, operator: FilterOperatorStrategy) -> None:
        self._operators[operator.name] = operator

    def register_all(self, *operators: FilterOperatorStrategy) -> None:
        for op in operators:
            self.register(op)

    def get(self, name: FilterOperator) -> FilterOperatorStrategy | None:
        return self._operators.get(name)

    def has(self, name: FilterOperator) -> bool:
        return name in self._operators

    def apply(
        self,
        name: FilterOperator,
        column: Any,
        value: Any,
    ) -> ColumnElement[bool]:
        """
        Look up the operator and apply.

        Raises:
            ValueError: If the operator is not registered.
        """
        op = self.get(name)
        if op is None:
            raise ValueError(f"Unsupported filter operator: {name}")
        return op.apply(column, value)
