# File: ormgen/exceptions.py
"""
ORMGen - Exception Hierarchy
=============================

Two families of failures exist:

* **Schema errors** are raised while an entity is being built (class
  creation or schema-file validation).  They are fatal: no repository or
  query builder is ever produced for an entity that failed validation.
* **Runtime errors** are raised while statements run.  Query-preparation
  problems come from misuse of a builder; store errors wrap whatever the
  execution collaborator reported, split by category so callers can tell a
  constraint violation from a missing row or a dropped connection.

Every exception provides ``to_dict()`` for structured logging and reports.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from ormgen.validators import ValidationError


class ORMGenError(Exception):
    """Base exception for everything raised by ormgen."""

    def __init__(self, message: str, **details: Any) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            **self.details,
        }


# ---------------------------------------------------------------------------
# Build-time
# ---------------------------------------------------------------------------


class SchemaError(ORMGenError):
    """
    An entity definition failed validation.

    ``errors`` holds the individual rule violations; ``str(exc)`` lists them
    one per line.
    """

    def __init__(self, entity: str, errors: Sequence["ValidationError"]) -> None:
        self.entity: str = entity
        self.errors: List["ValidationError"] = list(errors)
        lines: List[str] = [f"Invalid entity '{entity}' ({len(self.errors)} error(s)):"]
        lines.extend(f"  - [{e.code}] {e.message}" for e in self.errors)
        super().__init__("\n".join(lines), entity=entity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "SCHEMA_ERROR",
            "entity": self.entity,
            "errors": [e.to_dict() for e in self.errors],
        }


# ---------------------------------------------------------------------------
# Runtime: query preparation
# ---------------------------------------------------------------------------


class QueryPreparationError(ORMGenError):
    """A statement could not be prepared from the builder's state."""


class UnknownFieldError(QueryPreparationError):
    """
    A builder was asked to filter, order or group by a field that is not
    queryable on the entity.  Close matches are offered as suggestions.
    """

    def __init__(self, field_name: str, entity: str, available: Sequence[str]) -> None:
        self.field_name: str = field_name
        self.available: List[str] = sorted(available)
        self.suggestions: List[str] = get_close_matches(
            field_name, self.available, n=3, cutoff=0.6
        )
        message: str = f"'{field_name}' is not a queryable field of '{entity}'."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        message += f" Queryable fields: {', '.join(self.available)}."
        super().__init__(message, entity=entity, field=field_name)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = super().to_dict()
        data["suggestions"] = self.suggestions
        return data


# ---------------------------------------------------------------------------
# Runtime: store
# ---------------------------------------------------------------------------


class StoreError(ORMGenError):
    """
    The execution collaborator failed to run a statement.

    The driver exception is kept as ``__cause__`` (``raise ... from``).
    """

    def __init__(self, message: str, *, statement: Optional[str] = None) -> None:
        self.statement: Optional[str] = statement
        super().__init__(message, statement=statement)


class ConstraintViolationError(StoreError):
    """A uniqueness, foreign-key, not-null or check constraint rejected the row."""


class NoRowAffectedError(StoreError):
    """An update or delete by primary key matched no row."""


class StoreConnectionError(StoreError):
    """The store could not be reached or the connection failed mid-statement."""


__all__: List[str] = [
    "ConstraintViolationError",
    "NoRowAffectedError",
    "ORMGenError",
    "QueryPreparationError",
    "SchemaError",
    "StoreConnectionError",
    "StoreError",
    "UnknownFieldError",
]
