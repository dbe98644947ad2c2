# File: ormgen/crud.py
"""
ORMGen - CRUD Generator
========================
Turns a validated :class:`~ormgen.models.Entity` into data-access
operations.

* :func:`compile_statements` renders every CRUD statement of an entity for
  one dialect.  The result is a plain, immutable :class:`CrudStatements`
  that can be cached per dialect or embedded into generated source code.
* :class:`Repository` binds those statements to an executor and implements
  ``insert`` / ``update`` / ``save`` / ``delete`` plus the field-scoped
  helpers used by generated ``find_by_<field>``, ``find_all_by_<field>`` and
  ``delete_by_<field>`` methods.
* :func:`repository_for` returns the repository class of a model, building
  (once) a subclass with one concrete method per queryable field when no
  ahead-of-time generated class has been registered.

Insert-vs-update is decided in exactly one place, :meth:`Repository.save`,
from the primary key's is-set check at call time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from ormgen.dialects import Dialect
from ormgen.exceptions import NoRowAffectedError, QueryPreparationError
from ormgen.models import Entity, FieldSpec
from ormgen.predicates import Direction, Operator, Predicate
from ormgen.query import QueryPlan, SelectBuilder, hydrate

if TYPE_CHECKING:
    from ormgen.executors import ExecutionResult, Executor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.crud")


# ---------------------------------------------------------------------------
# Statement compilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrudStatements:
    """
    Every CRUD statement of one entity, rendered for one dialect.

    Parameter order:
        insert_sql          values of ``insert_fields``
        update_sql          values of ``update_fields``, then the primary key
        delete_sql          primary key
        find_by_sql[f]      value of field ``f``
        delete_by_sql[f]    value of field ``f``
    """

    dialect: Dialect
    table: str
    insert_sql: str
    insert_fields: Tuple[str, ...]
    update_sql: Optional[str]
    update_fields: Tuple[str, ...]
    delete_sql: str
    find_by_sql: Mapping[str, str] = field(default_factory=dict)
    delete_by_sql: Mapping[str, str] = field(default_factory=dict)

    @property
    def returning(self) -> bool:
        return self.dialect.supports_returning

    def matches(self, dialect: Dialect) -> bool:
        """Usable for *dialect*: same engine family and placeholder style."""
        return (
            self.dialect.name == dialect.name
            and self.dialect.placeholder_style == dialect.placeholder_style
        )


def _equality_select(entity_table: str, column: str, dialect: Dialect) -> str:
    plan: QueryPlan = QueryPlan(
        table=entity_table,
        predicates=[Predicate(column, Operator.EQUAL, None)],
    )
    return plan.render(dialect).sql


def compile_statements(entity: Entity, dialect: Dialect) -> CrudStatements:
    """Render the insert/update/delete/lookup statements of *entity*."""
    ident: Callable[[str], str] = dialect.format_identifier
    table: str = ident(entity.table_name)
    pk: FieldSpec = entity.primary_key
    returning: str = dialect.returning_clause([ident(f.column) for f in entity.columns])

    insert_fields: Tuple[FieldSpec, ...] = entity.insert_fields
    if insert_fields:
        columns: str = ", ".join(ident(f.column) for f in insert_fields)
        markers: str = ", ".join(
            dialect.placeholder(i) for i in range(1, len(insert_fields) + 1)
        )
        insert_sql: str = f"INSERT INTO {table} ({columns}) VALUES ({markers}){returning}"
    else:
        insert_sql = f"INSERT INTO {table} {dialect.empty_insert_clause}{returning}"

    update_fields: Tuple[FieldSpec, ...] = entity.update_fields
    update_sql: Optional[str] = None
    if update_fields:
        assignments: str = ", ".join(
            f"{ident(f.column)} = {dialect.placeholder(i)}"
            for i, f in enumerate(update_fields, start=1)
        )
        key_marker: str = dialect.placeholder(len(update_fields) + 1)
        update_sql = (
            f"UPDATE {table} SET {assignments} "
            f"WHERE {ident(pk.column)} = {key_marker}{returning}"
        )

    delete_sql: str = f"DELETE FROM {table} WHERE {ident(pk.column)} = {dialect.placeholder(1)}"

    find_by_sql: Dict[str, str] = {}
    delete_by_sql: Dict[str, str] = {}
    for spec in entity.queryable_fields:
        find_by_sql[spec.name] = _equality_select(entity.table_name, spec.column, dialect)
        delete_by_sql[spec.name] = (
            f"DELETE FROM {table} WHERE {ident(spec.column)} = {dialect.placeholder(1)}"
        )

    statements: CrudStatements = CrudStatements(
        dialect=dialect,
        table=entity.table_name,
        insert_sql=insert_sql,
        insert_fields=tuple(f.name for f in insert_fields),
        update_sql=update_sql,
        update_fields=tuple(f.name for f in update_fields),
        delete_sql=delete_sql,
        find_by_sql=find_by_sql,
        delete_by_sql=delete_by_sql,
    )
    logger.debug(
        "Compiled CRUD statements for %s (%s): %d lookup field(s).",
        entity.name,
        dialect.name,
        len(find_by_sql),
    )
    return statements


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

_REPOSITORIES: Dict[Any, Type["Repository"]] = {}


class Repository:
    """
    Data access for one model, bound to one executor.

    The executor may wrap a connection pool or a caller-owned transaction;
    the repository only ever asks it to run one statement at a time.
    """

    model: ClassVar[Any] = None
    select_builder_class: ClassVar[Type[SelectBuilder]] = SelectBuilder
    precompiled: ClassVar[Optional[CrudStatements]] = None
    _compiled: ClassVar[Dict[Dialect, CrudStatements]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._compiled = {}
        model: Any = cls.__dict__.get("model")
        if model is not None:
            _REPOSITORIES[model] = cls
            logger.debug("Registered %s for %s", cls.__name__, model.__name__)

    def __init__(self, executor: "Executor") -> None:
        if self.model is None:
            raise QueryPreparationError(f"{type(self).__name__} is not bound to a model")
        self._executor: "Executor" = executor
        self._entity: Entity = self.model.__entity__

    # -- Introspection ------------------------------------------------------

    @property
    def executor(self) -> "Executor":
        return self._executor

    @property
    def entity(self) -> Entity:
        return self._entity

    @classmethod
    def statements_for(cls, dialect: Dialect) -> CrudStatements:
        """Precompiled statements when they fit *dialect*, else compiled once and cached."""
        if cls.precompiled is not None and cls.precompiled.matches(dialect):
            return cls.precompiled
        statements: Optional[CrudStatements] = cls._compiled.get(dialect)
        if statements is None:
            statements = compile_statements(cls.model.__entity__, dialect)
            cls._compiled[dialect] = statements
        return statements

    @property
    def statements(self) -> CrudStatements:
        return self.statements_for(self._executor.dialect)

    def select(self) -> SelectBuilder:
        """A fresh builder bound to this repository's executor."""
        return self.select_builder_class(self._executor)

    # -- Value preparation --------------------------------------------------

    def is_new(self, instance: Any) -> bool:
        """True when the primary key has not been assigned yet."""
        pk: FieldSpec = self._entity.primary_key
        return not pk.is_set(getattr(instance, pk.name))

    def insert_values(self, instance: Any) -> Dict[str, Any]:
        """
        Values for the INSERT column list.

        A field with a generator gets a generated value when its current value
        is not set.  Timestamp fields sharing a generator share one value.
        """
        values: Dict[str, Any] = {}
        stamps: Dict[Any, Any] = {}
        for spec in self._entity.insert_fields:
            value: Any = getattr(instance, spec.name)
            if spec.new_expression is not None and not spec.is_set(value):
                if spec.is_created_at or spec.is_updated_at:
                    if spec.new_expression not in stamps:
                        stamps[spec.new_expression] = spec.generate()
                    value = stamps[spec.new_expression]
                else:
                    value = spec.generate()
            values[spec.name] = value
        return values

    def update_values(self, instance: Any) -> Dict[str, Any]:
        """Values for the UPDATE SET list; ``updated_at`` is always refreshed."""
        values: Dict[str, Any] = {}
        for spec in self._entity.update_fields:
            if spec.is_updated_at and spec.new_expression is not None:
                values[spec.name] = spec.generate()
            else:
                values[spec.name] = getattr(instance, spec.name)
        return values

    # -- Execution helpers --------------------------------------------------

    async def _fetch_rows(self, sql: str, params: Sequence[Any]) -> List[Mapping[str, Any]]:
        logger.debug("Fetching: %s (%d parameter(s))", sql, len(params))
        return await self._executor.fetch_all(sql, tuple(params))

    async def _execute(self, sql: str, params: Sequence[Any]) -> "ExecutionResult":
        logger.debug("Executing: %s (%d parameter(s))", sql, len(params))
        return await self._executor.execute(sql, tuple(params))

    async def _find_first(self, field_name: str, value: Any) -> Optional[Any]:
        rows: List[Mapping[str, Any]] = await self._fetch_rows(
            self.statements.find_by_sql[field_name], (value,)
        )
        if not rows:
            return None
        return hydrate(self.model, self._entity, rows[0])

    async def _find_all(self, field_name: str, value: Any) -> List[Any]:
        rows: List[Mapping[str, Any]] = await self._fetch_rows(
            self.statements.find_by_sql[field_name], (value,)
        )
        return [hydrate(self.model, self._entity, row) for row in rows]

    async def _delete_where(self, field_name: str, value: Any) -> int:
        result: "ExecutionResult" = await self._execute(
            self.statements.delete_by_sql[field_name], (value,)
        )
        return result.rowcount

    async def _reload(self, key: Any, source: Any) -> Optional[Any]:
        pk: FieldSpec = self._entity.primary_key
        rows: List[Mapping[str, Any]] = await self._fetch_rows(
            self.statements.find_by_sql[pk.name], (key,)
        )
        if not rows:
            return None
        return hydrate(self.model, self._entity, rows[0], source)

    # -- Operations ---------------------------------------------------------

    async def save(self, instance: Any) -> Any:
        """Insert when the primary key is not set yet, update otherwise."""
        if self.is_new(instance):
            return await self.insert(instance)
        return await self.update(instance)

    async def insert(self, instance: Any) -> Any:
        """Insert *instance* and return the stored row as a new instance."""
        statements: CrudStatements = self.statements
        values: Dict[str, Any] = self.insert_values(instance)
        params: List[Any] = [values[name] for name in statements.insert_fields]

        if statements.returning:
            rows: List[Mapping[str, Any]] = await self._fetch_rows(statements.insert_sql, params)
            if not rows:
                raise NoRowAffectedError(
                    f"INSERT into {statements.table} returned no row",
                    statement=statements.insert_sql,
                )
            return hydrate(self.model, self._entity, rows[0], instance)

        result: "ExecutionResult" = await self._execute(statements.insert_sql, params)
        pk: FieldSpec = self._entity.primary_key
        key: Any = values.get(pk.name, result.last_insert_id)
        stored: Optional[Any] = await self._reload(key, instance) if key is not None else None
        if stored is None:
            return instance.model_copy(update=values)
        return stored

    async def update(self, instance: Any) -> Any:
        """
        Update the row matching the primary key of *instance*.

        Raises:
            NoRowAffectedError: no row has that primary key.
        """
        statements: CrudStatements = self.statements
        pk: FieldSpec = self._entity.primary_key
        key: Any = getattr(instance, pk.name)

        if statements.update_sql is None:
            stored: Optional[Any] = await self._reload(key, instance)
            if stored is None:
                raise NoRowAffectedError(
                    f"No {statements.table} row with {pk.column}={key!r}",
                    statement=statements.find_by_sql[pk.name],
                )
            return stored

        values: Dict[str, Any] = self.update_values(instance)
        params: List[Any] = [values[name] for name in statements.update_fields]
        params.append(key)

        if statements.returning:
            rows: List[Mapping[str, Any]] = await self._fetch_rows(statements.update_sql, params)
            if not rows:
                raise NoRowAffectedError(
                    f"No {statements.table} row with {pk.column}={key!r}",
                    statement=statements.update_sql,
                )
            return hydrate(self.model, self._entity, rows[0], instance)

        result: "ExecutionResult" = await self._execute(statements.update_sql, params)
        if result.rowcount == 0:
            raise NoRowAffectedError(
                f"No {statements.table} row with {pk.column}={key!r}",
                statement=statements.update_sql,
            )
        stored = await self._reload(key, instance)
        return stored if stored is not None else instance.model_copy(update=values)

    async def delete(self, instance: Any) -> None:
        """
        Delete the row matching the primary key of *instance*.

        Raises:
            NoRowAffectedError: no row has that primary key.
        """
        statements: CrudStatements = self.statements
        pk: FieldSpec = self._entity.primary_key
        key: Any = getattr(instance, pk.name)
        result: "ExecutionResult" = await self._execute(statements.delete_sql, (key,))
        if result.rowcount == 0:
            raise NoRowAffectedError(
                f"No {statements.table} row with {pk.column}={key!r}",
                statement=statements.delete_sql,
            )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._entity.table_name} via {self._executor!r}>"


# ---------------------------------------------------------------------------
# Runtime generation of per-model classes
# ---------------------------------------------------------------------------


def _where_method(field_name: str, operator: Operator) -> Callable[..., SelectBuilder]:
    def method(self: SelectBuilder, value: Any) -> SelectBuilder:
        return self.where(field_name, operator, value)

    method.__doc__ = f"WHERE {field_name} {operator.value} ?"
    return method


def _where_generic_method(field_name: str) -> Callable[..., SelectBuilder]:
    def method(self: SelectBuilder, operator: Operator, value: Any) -> SelectBuilder:
        return self.where(field_name, operator, value)

    method.__doc__ = f"WHERE {field_name} <operator> ?"
    return method


def _between_method(field_name: str) -> Callable[..., SelectBuilder]:
    def method(self: SelectBuilder, low: Any, high: Any) -> SelectBuilder:
        return self.where_between(field_name, low, high)

    method.__doc__ = f"WHERE {field_name} BETWEEN ? AND ?"
    return method


def _order_method(field_name: str) -> Callable[..., SelectBuilder]:
    def method(self: SelectBuilder, direction: Direction = Direction.ASC) -> SelectBuilder:
        return self.order_by(field_name, direction)

    method.__doc__ = f"ORDER BY {field_name} (ascending unless told otherwise)"
    return method


def _group_method(field_name: str) -> Callable[..., SelectBuilder]:
    def method(self: SelectBuilder) -> SelectBuilder:
        return self.group_by(field_name)

    method.__doc__ = f"GROUP BY {field_name}"
    return method


def _named(func: Callable[..., Any], name: str, owner: str) -> Callable[..., Any]:
    func.__name__ = name
    func.__qualname__ = f"{owner}.{name}"
    return func


def generate_select_builder(model: Any) -> Type[SelectBuilder]:
    """Build ``<Model>Select`` with one method per queryable field and operator."""
    entity: Entity = model.__entity__
    class_name: str = f"{model.__name__}Select"
    namespace: Dict[str, Any] = {"model": model, "__module__": model.__module__}

    for spec in entity.queryable_fields:
        name: str = spec.name
        namespace[f"where_{name}"] = _named(_where_generic_method(name), f"where_{name}", class_name)
        for op in Operator.comparisons():
            method_name: str = f"where_{op.method_prefix}_{name}"
            namespace[method_name] = _named(_where_method(name, op), method_name, class_name)
        namespace[f"where_between_{name}"] = _named(
            _between_method(name), f"where_between_{name}", class_name
        )
        namespace[f"order_by_{name}"] = _named(_order_method(name), f"order_by_{name}", class_name)
        namespace[f"group_by_{name}"] = _named(_group_method(name), f"group_by_{name}", class_name)

    return type(class_name, (SelectBuilder,), namespace)


def _find_first_method(field_name: str) -> Callable[..., Any]:
    async def method(self: Repository, value: Any) -> Optional[Any]:
        return await self._find_first(field_name, value)

    method.__doc__ = f"First row whose {field_name} equals *value*, or None."
    return method


def _find_all_method(field_name: str) -> Callable[..., Any]:
    async def method(self: Repository, value: Any) -> List[Any]:
        return await self._find_all(field_name, value)

    method.__doc__ = f"Every row whose {field_name} equals *value*."
    return method


def _delete_by_method(field_name: str) -> Callable[..., Any]:
    async def method(self: Repository, value: Any) -> int:
        return await self._delete_where(field_name, value)

    method.__doc__ = f"Delete every row whose {field_name} equals *value*; returns the count."
    return method


def generate_repository(model: Any) -> Type[Repository]:
    """Build ``<Model>Repository`` with find/find-all/delete methods per queryable field."""
    entity: Entity = model.__entity__
    class_name: str = f"{model.__name__}Repository"
    namespace: Dict[str, Any] = {
        "model": model,
        "select_builder_class": generate_select_builder(model),
        "__module__": model.__module__,
    }
    for spec in entity.queryable_fields:
        name: str = spec.name
        namespace[f"find_by_{name}"] = _named(_find_first_method(name), f"find_by_{name}", class_name)
        namespace[f"find_all_by_{name}"] = _named(
            _find_all_method(name), f"find_all_by_{name}", class_name
        )
        namespace[f"delete_by_{name}"] = _named(
            _delete_by_method(name), f"delete_by_{name}", class_name
        )

    repository: Type[Repository] = type(class_name, (Repository,), namespace)
    logger.debug(
        "Generated %s with %d lookup field(s).",
        class_name,
        len(entity.queryable_fields),
    )
    return repository


def repository_for(model: Any) -> Type[Repository]:
    """
    The repository class of *model*.

    A class declared with ``model = <Model>`` (e.g. by generated code) wins;
    otherwise one is generated on first use and registered.
    """
    repository: Optional[Type[Repository]] = _REPOSITORIES.get(model)
    if repository is None:
        repository = generate_repository(model)
    return repository


__all__: List[str] = [
    "CrudStatements",
    "Repository",
    "compile_statements",
    "generate_repository",
    "generate_select_builder",
    "repository_for",
]

logger.debug("ormgen.crud loaded.")
