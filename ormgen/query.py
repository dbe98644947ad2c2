# File: ormgen/query.py
"""
ORMGen - Query Builder Engine
==============================
A select builder accumulates predicates, grouping, ordering and pagination
into a :class:`QueryPlan`, then renders it for a :class:`~ormgen.dialects.Dialect`.

Builder lifecycle::

    EMPTY --(where/order/group/limit/offset)--> ACCUMULATING
    EMPTY | ACCUMULATING --(build / fetch_*)--> RENDERED

Rendering is a pure function of the accumulated plan: building a rendered
builder again returns the same statement, but any further mutation raises
:class:`~ormgen.exceptions.QueryPreparationError`.

Render order::

    SELECT * FROM <table>
      [WHERE p1 AND p2 ...]
      [GROUP BY c1, c2 ...]
      [ORDER BY c1 ASC, c2 DESC ...]
      [LIMIT n] [OFFSET n]

``LIMIT``/``OFFSET`` are validated non-negative integers and are inlined,
so the bound parameters are exactly the predicate values in call order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ormgen.dialects import Dialect, ParameterBinder, get_dialect
from ormgen.exceptions import QueryPreparationError, UnknownFieldError
from ormgen.models import Entity, FieldSpec
from ormgen.predicates import Direction, GroupSpec, Operator, OrderSpec, Predicate

if TYPE_CHECKING:
    from ormgen.executors import Executor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.query")


class BuilderState(str, Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    RENDERED = "rendered"


@dataclass(frozen=True, slots=True)
class Statement:
    """A rendered statement and its positional parameters."""

    sql: str
    params: Tuple[Any, ...] = ()

    def __str__(self) -> str:
        return self.sql


@dataclass(slots=True)
class QueryPlan:
    """Accumulated state of a select; see the module docstring for render order."""

    table: str
    columns: str = "*"
    predicates: List[Predicate] = field(default_factory=list)
    group_by: List[GroupSpec] = field(default_factory=list)
    order_by: List[OrderSpec] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def render(self, dialect: Dialect) -> Statement:
        binder: ParameterBinder = ParameterBinder(dialect)
        parts: List[str] = [
            f"SELECT {self.columns} FROM {dialect.format_identifier(self.table)}"
        ]
        if self.predicates:
            parts.append(
                "WHERE " + " AND ".join(p.render(dialect, binder) for p in self.predicates)
            )
        if self.group_by:
            parts.append("GROUP BY " + ", ".join(g.render(dialect) for g in self.group_by))
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(o.render(dialect) for o in self.order_by))
        pagination: str = dialect.limit_clause(self.limit, self.offset)
        if pagination:
            parts.append(pagination)
        return Statement(" ".join(parts), binder.params)


# ---------------------------------------------------------------------------
# Row hydration
# ---------------------------------------------------------------------------


def hydrate(
    model: Any,
    entity: Entity,
    row: Mapping[str, Any],
    source: Any = None,
) -> Any:
    """
    Build a *model* instance from a result row.

    Columns are matched by column name.  Transient fields never come from
    the store: they are copied from *source* when given, otherwise the model
    default applies.  Without a model the row is returned as a plain dict.
    """
    if model is None:
        return dict(row)
    values: Dict[str, Any] = {}
    for spec in entity.columns:
        if spec.column in row:
            values[spec.name] = row[spec.column]
    if source is not None:
        for spec in entity.transient_fields:
            values[spec.name] = getattr(source, spec.name)
    return model.model_validate(values)


# ---------------------------------------------------------------------------
# Select builder
# ---------------------------------------------------------------------------


def _check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise QueryPreparationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise QueryPreparationError(f"{name} must be >= 0, got {value}")
    return value


class SelectBuilder:
    """
    Generic select builder over one entity.

    Per-entity subclasses (generated at runtime by
    :func:`ormgen.crud.generate_select_builder` or emitted ahead of time)
    add ``where_<op>_<field>``, ``where_between_<field>``,
    ``order_by_<field>`` and ``group_by_<field>`` shortcuts on top of the
    generic methods defined here.
    """

    model: ClassVar[Any] = None

    def __init__(
        self,
        executor: Optional["Executor"] = None,
        *,
        entity: Optional[Entity] = None,
    ) -> None:
        if entity is None:
            if self.model is None:
                raise QueryPreparationError(
                    f"{type(self).__name__} has no model; pass entity= explicitly"
                )
            entity = self.model.__entity__
        self._entity: Entity = entity
        self._executor: Optional["Executor"] = executor
        self._plan: QueryPlan = QueryPlan(table=entity.table_name)
        self._state: BuilderState = BuilderState.EMPTY

    # -- Introspection ------------------------------------------------------

    @property
    def state(self) -> BuilderState:
        return self._state

    @property
    def plan(self) -> QueryPlan:
        return self._plan

    @property
    def entity(self) -> Entity:
        return self._entity

    # -- Internal -----------------------------------------------------------

    def _field(self, name: str) -> FieldSpec:
        spec: Optional[FieldSpec] = self._entity.queryable(name)
        if spec is None:
            raise UnknownFieldError(
                name,
                self._entity.name,
                [f.name for f in self._entity.queryable_fields],
            )
        return spec

    def _mutate(self) -> None:
        if self._state is BuilderState.RENDERED:
            raise QueryPreparationError(
                "Select builder was already rendered; start a new select()"
            )
        self._state = BuilderState.ACCUMULATING

    # -- Accumulation -------------------------------------------------------

    def where(
        self,
        field_name: str,
        operator: Union[Operator, str],
        value: Any,
    ) -> "SelectBuilder":
        """
        ``WHERE <column> <operator> ?``; BETWEEN takes a ``(low, high)`` pair.

        ``None`` is rejected for every comparison operator: SQL compares
        NULL as unknown, so such a predicate would never match a row.
        """
        try:
            op: Operator = Operator.parse(operator)
        except ValueError as exc:
            raise QueryPreparationError(str(exc)) from exc
        if op is Operator.BETWEEN:
            if not isinstance(value, Sequence) or isinstance(value, (str, bytes)) or len(value) != 2:
                raise QueryPreparationError(
                    f"BETWEEN on '{field_name}' needs a (low, high) pair, got {value!r}"
                )
            return SelectBuilder.where_between(self, field_name, value[0], value[1])
        if value is None:
            raise QueryPreparationError(
                f"cannot compare '{field_name}' {op.value} None; comparisons with NULL never match"
            )
        spec: FieldSpec = self._field(field_name)
        self._mutate()
        self._plan.predicates.append(Predicate(spec.column, op, value))
        return self

    def where_between(self, field_name: str, low: Any, high: Any) -> "SelectBuilder":
        spec: FieldSpec = self._field(field_name)
        self._mutate()
        self._plan.predicates.append(Predicate.between(spec.column, low, high))
        return self

    def order_by(
        self,
        field_name: str,
        direction: Union[Direction, str] = Direction.ASC,
    ) -> "SelectBuilder":
        spec: FieldSpec = self._field(field_name)
        try:
            resolved: Direction = Direction.parse(direction)
        except ValueError as exc:
            raise QueryPreparationError(str(exc)) from exc
        self._mutate()
        self._plan.order_by.append(OrderSpec(spec.column, resolved))
        return self

    def _set_last_direction(self, direction: Direction) -> "SelectBuilder":
        if not self._plan.order_by:
            raise QueryPreparationError(
                f"{direction.value.lower()}() must follow an order_by call"
            )
        self._mutate()
        last: OrderSpec = self._plan.order_by[-1]
        self._plan.order_by[-1] = OrderSpec(last.column, direction)
        return self

    def asc(self) -> "SelectBuilder":
        """Sort the most recent ``order_by`` column ascending."""
        return self._set_last_direction(Direction.ASC)

    def desc(self) -> "SelectBuilder":
        """Sort the most recent ``order_by`` column descending."""
        return self._set_last_direction(Direction.DESC)

    def group_by(self, field_name: str) -> "SelectBuilder":
        spec: FieldSpec = self._field(field_name)
        self._mutate()
        self._plan.group_by.append(GroupSpec(spec.column))
        return self

    def limit(self, n: int) -> "SelectBuilder":
        value: int = _check_count("limit", n)
        self._mutate()
        self._plan.limit = value
        return self

    def offset(self, n: int) -> "SelectBuilder":
        value: int = _check_count("offset", n)
        self._mutate()
        self._plan.offset = value
        return self

    # -- Terminal calls -----------------------------------------------------

    def _resolve_dialect(self, dialect: Union[Dialect, str, None]) -> Dialect:
        if isinstance(dialect, Dialect):
            return dialect
        if isinstance(dialect, str):
            return get_dialect(dialect)
        if self._executor is not None:
            return self._executor.dialect
        raise QueryPreparationError("No dialect given and no executor bound")

    def build(self, dialect: Union[Dialect, str, None] = None) -> Statement:
        """Render the accumulated plan.  Repeated calls return equal statements."""
        statement: Statement = self._plan.render(self._resolve_dialect(dialect))
        self._state = BuilderState.RENDERED
        logger.debug("Rendered select on %s: %s", self._entity.table_name, statement.sql)
        return statement

    def _executor_for(self, executor: Optional["Executor"]) -> "Executor":
        chosen: Optional["Executor"] = executor or self._executor
        if chosen is None:
            raise QueryPreparationError("No executor bound to this select")
        return chosen

    async def fetch_all(self, executor: Optional["Executor"] = None) -> List[Any]:
        """Run the select and hydrate every row."""
        runner: "Executor" = self._executor_for(executor)
        statement: Statement = self.build(runner.dialect)
        rows: List[Mapping[str, Any]] = await runner.fetch_all(statement.sql, statement.params)
        return [hydrate(self.model, self._entity, row) for row in rows]

    async def fetch_one(self, executor: Optional["Executor"] = None) -> Optional[Any]:
        """Run the select and return the first row, or None."""
        rows: List[Any] = await self.fetch_all(executor)
        return rows[0] if rows else None

    async def execute(self, executor: Optional["Executor"] = None) -> List[Any]:
        return await self.fetch_all(executor)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._entity.table_name} state={self._state.value}>"


__all__: List[str] = [
    "BuilderState",
    "QueryPlan",
    "SelectBuilder",
    "Statement",
    "hydrate",
]

logger.debug("ormgen.query loaded.")
