# File: ormgen/predicates.py
"""
ORMGen - Predicate & Ordering Model
====================================
Plain data describing the WHERE / ORDER BY / GROUP BY parts of a select.
The only behaviour is the operator-to-SQL mapping used by the renderer in
:mod:`ormgen.query`.

``Between`` does not check that ``low <= high``; the bounds are rendered
and bound in the order given.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Tuple

from ormgen.dialects import Dialect, ParameterBinder

logger: logging.Logger = logging.getLogger("ormgen.predicates")


class Operator(str, Enum):
    """Comparison operators; the value is the SQL fragment."""

    EQUAL = "="
    NOT_EQUAL = "<>"
    LESS_THAN = "<"
    LESS_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_OR_EQUAL = ">="
    BETWEEN = "BETWEEN"

    @property
    def method_prefix(self) -> str:
        """Name used in generated methods, e.g. ``where_not_equal_email``."""
        return self.name.lower()

    @classmethod
    def comparisons(cls) -> Tuple["Operator", ...]:
        """Single-value operators (everything except BETWEEN)."""
        return tuple(op for op in cls if op is not cls.BETWEEN)

    @classmethod
    def parse(cls, value: Any) -> "Operator":
        """Accept an Operator, its SQL fragment or its method prefix."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for op in cls:
                if value == op.value or value.lower() == op.method_prefix:
                    return op
        raise ValueError(f"Unknown operator: {value!r}")


class Direction(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.upper() in cls.__members__:
            return cls[value.upper()]
        raise ValueError(f"Unknown sort direction: {value!r}")


# Short aliases for call sites: ``where_email(Where.EQUAL, ...)``
Where = Operator
OrderBy = Direction


@dataclass(frozen=True, slots=True)
class Predicate:
    """One WHERE condition: ``column <op> value`` or ``column BETWEEN low AND high``."""

    column: str
    operator: Operator
    value: Any
    upper: Any = None

    @classmethod
    def between(cls, column: str, low: Any, high: Any) -> "Predicate":
        return cls(column, Operator.BETWEEN, low, high)

    def render(self, dialect: Dialect, binder: ParameterBinder) -> str:
        target: str = dialect.format_identifier(self.column)
        if self.operator is Operator.BETWEEN:
            low: str = binder.bind(self.value)
            high: str = binder.bind(self.upper)
            return f"{target} BETWEEN {low} AND {high}"
        return f"{target} {self.operator.value} {binder.bind(self.value)}"


@dataclass(frozen=True, slots=True)
class OrderSpec:
    column: str
    direction: Direction = Direction.ASC

    def render(self, dialect: Dialect) -> str:
        return f"{dialect.format_identifier(self.column)} {self.direction.value}"


@dataclass(frozen=True, slots=True)
class GroupSpec:
    column: str

    def render(self, dialect: Dialect) -> str:
        return dialect.format_identifier(self.column)


__all__: List[str] = [
    "Direction",
    "GroupSpec",
    "Operator",
    "OrderBy",
    "OrderSpec",
    "Predicate",
    "Where",
]
