# File: ormgen/executors.py
"""
ORMGen - Statement Executors
=============================
The CRUD layer and query builders never talk to a database driver directly.
They hand ``(sql, params)`` pairs to an :class:`Executor`: anything with a
``dialect`` and two coroutines, ``fetch_all`` (rows) and ``execute``
(affected-row count).

:class:`SQLAlchemyExecutor` is the stock implementation on top of
SQLAlchemy's asyncio extension.  It accepts either

* an ``AsyncEngine``: every call borrows a pooled connection and runs in
  its own committed transaction, so independent calls may run concurrently;
* an ``AsyncConnection``: every call runs inside the caller's transaction,
  in call order, and the caller decides when to commit or roll back.

Driver errors are translated into the :class:`~ormgen.exceptions.StoreError`
family with the original exception chained; nothing is retried.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)
from uuid import UUID

from sqlalchemy.exc import IntegrityError, InterfaceError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ormgen.dialects import Dialect, dialect_from_sqlalchemy
from ormgen.exceptions import (
    ConstraintViolationError,
    StoreConnectionError,
    StoreError,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.executors")


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of a statement that returns no rows."""

    rowcount: int
    last_insert_id: Any = None


@runtime_checkable
class Executor(Protocol):
    """Runs one parameterized statement at a time."""

    dialect: Dialect

    async def fetch_all(
        self, sql: str, params: Sequence[Any] = ()
    ) -> List[Mapping[str, Any]]: ...

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutionResult: ...


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def translate_error(exc: BaseException, sql: str) -> StoreError:
    """
    Map a driver / SQLAlchemy exception onto the StoreError family.

    ``OperationalError`` alone is not a connection failure: sqlite3 raises it
    for "no such table" and syntax errors too.  Only an invalidated
    connection, an ``InterfaceError`` or an ``OSError`` counts as one.
    """
    detail: str = str(getattr(exc, "orig", None) or exc)
    if isinstance(exc, IntegrityError):
        return ConstraintViolationError(f"Constraint violated: {detail}", statement=sql)
    if isinstance(exc, (InterfaceError, OSError)) or getattr(exc, "connection_invalidated", False):
        return StoreConnectionError(f"Store unavailable: {detail}", statement=sql)
    return StoreError(f"Statement failed: {detail}", statement=sql)


# ---------------------------------------------------------------------------
# Parameter adaptation
# ---------------------------------------------------------------------------


def adapt_sqlite_parameter(value: Any) -> Any:
    """Convert values the sqlite3 module cannot bind into text or numbers."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# SQLAlchemy executor
# ---------------------------------------------------------------------------


class SQLAlchemyExecutor:
    """
    :class:`Executor` backed by a SQLAlchemy ``AsyncEngine`` or
    ``AsyncConnection``.

    Args:
        bind: Engine (pooled, one transaction per call) or connection
            (caller-owned transaction).
        dialect: Override the descriptor derived from ``bind.dialect``.
        adapt_parameters: Convert UUID/Decimal/Enum/date values to plain
            scalars before binding.  Defaults to True for SQLite only.
    """

    def __init__(
        self,
        bind: Union[AsyncEngine, AsyncConnection],
        *,
        dialect: Optional[Dialect] = None,
        adapt_parameters: Optional[bool] = None,
    ) -> None:
        self._bind: Union[AsyncEngine, AsyncConnection] = bind
        self.dialect: Dialect = dialect or dialect_from_sqlalchemy(bind.dialect)
        self._adapt: bool = (
            adapt_parameters if adapt_parameters is not None else self.dialect.name == "sqlite"
        )
        logger.debug(
            "SQLAlchemyExecutor ready: dialect=%r, pooled=%s.",
            self.dialect,
            self.pooled,
        )

    @property
    def pooled(self) -> bool:
        return isinstance(self._bind, AsyncEngine)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        if isinstance(self._bind, AsyncEngine):
            async with self._bind.begin() as conn:
                yield conn
        else:
            yield self._bind

    def _params(self, params: Sequence[Any]) -> Tuple[Any, ...]:
        if self._adapt:
            return tuple(adapt_sqlite_parameter(v) for v in params)
        return tuple(params)

    async def fetch_all(
        self, sql: str, params: Sequence[Any] = ()
    ) -> List[Mapping[str, Any]]:
        try:
            async with self._connection() as conn:
                result = await conn.exec_driver_sql(sql, self._params(params))
                rows: List[Dict[str, Any]] = [dict(row) for row in result.mappings().all()]
        except (SQLAlchemyError, OSError) as exc:
            logger.debug("fetch_all failed: %s", exc)
            raise translate_error(exc, sql) from exc
        logger.debug("fetch_all returned %d row(s).", len(rows))
        return rows

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutionResult:
        try:
            async with self._connection() as conn:
                result = await conn.exec_driver_sql(sql, self._params(params))
                outcome: ExecutionResult = ExecutionResult(
                    rowcount=result.rowcount,
                    last_insert_id=getattr(result, "lastrowid", None),
                )
        except (SQLAlchemyError, OSError) as exc:
            logger.debug("execute failed: %s", exc)
            raise translate_error(exc, sql) from exc
        logger.debug("execute affected %d row(s).", outcome.rowcount)
        return outcome

    def __repr__(self) -> str:
        mode: str = "pool" if self.pooled else "transaction"
        return f"<SQLAlchemyExecutor {self.dialect.name} ({mode})>"


__all__: List[str] = [
    "ExecutionResult",
    "Executor",
    "SQLAlchemyExecutor",
    "adapt_sqlite_parameter",
    "translate_error",
]

logger.debug("ormgen.executors loaded.")
