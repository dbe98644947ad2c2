# File: ormgen/dialects.py
"""
ORMGen - SQL Dialect Descriptors
=================================
Everything that differs between target databases is captured in one frozen
:class:`Dialect` strategy object: placeholder syntax, identifier quoting,
RETURNING support and the handful of clauses each engine spells its own way.
Renderers never branch on a dialect's name; they ask the descriptor.

Three descriptors ship with the package::

    SQLITE      ?        "ident"    RETURNING    LIMIT -1 OFFSET n
    POSTGRESQL  $1, $2   "ident"    RETURNING    OFFSET n
    MYSQL       ?        `ident`    (none)       LIMIT 18446744073709551615 OFFSET n

:class:`ParameterBinder` keeps the running parameter index while a statement
is rendered so that emitted placeholders and bound values stay aligned.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ormgen.utils import is_simple_sql_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.dialects")

# SQL reserved words that are quoted whenever they appear as identifiers
SQL_RESERVED_WORDS: FrozenSet[str] = frozenset(
    {
        "all", "alter", "and", "as", "asc", "between", "by", "case", "check",
        "column", "constraint", "create", "cross", "current_date",
        "current_time", "current_timestamp", "current_user", "default",
        "delete", "desc", "distinct", "drop", "else", "end", "exists",
        "false", "fetch", "for", "foreign", "from", "full", "grant", "group",
        "having", "in", "index", "inner", "insert", "intersect", "into", "is",
        "join", "key", "left", "like", "limit", "natural", "not", "null",
        "offset", "on", "or", "order", "outer", "primary", "references",
        "returning", "right", "select", "set", "table", "then", "to", "true",
        "union", "unique", "update", "user", "using", "values", "when",
        "where", "with",
    }
)

_MYSQL_RESERVED_WORDS: FrozenSet[str] = SQL_RESERVED_WORDS | frozenset(
    {"condition", "div", "interval", "keys", "match", "mod", "range", "rank",
     "read", "regexp", "rlike", "show", "status", "window", "write"}
)


class PlaceholderStyle(str, Enum):
    """Positional parameter markers, named after DB-API ``paramstyle`` values."""

    QMARK = "qmark"                    # ?
    NUMERIC_DOLLAR = "numeric_dollar"  # $1, $2, ...
    NUMERIC = "numeric"                # :1, :2, ...
    FORMAT = "format"                  # %s


@dataclass(frozen=True)
class Dialect:
    """
    Strategy object describing one SQL engine.

    Instances are immutable and hashable, so they can key statement caches.
    Use :meth:`with_placeholder_style` / :meth:`with_quoting` to derive
    variants instead of mutating.
    """

    name: str
    placeholder_style: PlaceholderStyle
    identifier_quote: str = '"'
    supports_returning: bool = True
    empty_insert_clause: str = "DEFAULT VALUES"
    offset_without_limit: Optional[str] = None
    reserved_words: FrozenSet[str] = SQL_RESERVED_WORDS
    always_quote: bool = False

    # -- Parameters ---------------------------------------------------------

    def placeholder(self, position: int) -> str:
        """Marker for the *position*-th (1-based) bound parameter."""
        if position < 1:
            raise ValueError(f"Parameter positions start at 1, got {position}")
        style: PlaceholderStyle = self.placeholder_style
        if style is PlaceholderStyle.NUMERIC_DOLLAR:
            return f"${position}"
        if style is PlaceholderStyle.NUMERIC:
            return f":{position}"
        if style is PlaceholderStyle.FORMAT:
            return "%s"
        return "?"

    # -- Identifiers --------------------------------------------------------

    def quote_identifier(self, identifier: str) -> str:
        """Unconditionally quote *identifier*, doubling embedded quote chars."""
        q: str = self.identifier_quote
        return f"{q}{identifier.replace(q, q + q)}{q}"

    def needs_quoting(self, identifier: str) -> bool:
        return (
            self.always_quote
            or not is_simple_sql_identifier(identifier)
            or identifier.lower() in self.reserved_words
        )

    def format_identifier(self, identifier: str) -> str:
        """Render a table or column name, quoting only when required."""
        if self.needs_quoting(identifier):
            return self.quote_identifier(identifier)
        return identifier

    # -- Clauses ------------------------------------------------------------

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        """``LIMIT``/``OFFSET`` suffix; empty when neither is set."""
        parts: List[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        elif offset is not None and self.offset_without_limit is not None:
            parts.append(f"LIMIT {self.offset_without_limit}")
        if offset is not None:
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def returning_clause(self, columns: Sequence[str]) -> str:
        """`` RETURNING c1, c2`` (already formatted names), or empty when unsupported."""
        if not self.supports_returning:
            return ""
        return " RETURNING " + ", ".join(columns)

    # -- Variants -----------------------------------------------------------

    def with_placeholder_style(self, style: PlaceholderStyle) -> "Dialect":
        return dataclasses.replace(self, placeholder_style=PlaceholderStyle(style))

    def with_quoting(self, always_quote: bool = True) -> "Dialect":
        return dataclasses.replace(self, always_quote=always_quote)

    def __repr__(self) -> str:
        return f"<Dialect {self.name} ({self.placeholder_style.value})>"


SQLITE: Dialect = Dialect(
    name="sqlite",
    placeholder_style=PlaceholderStyle.QMARK,
    offset_without_limit="-1",
)

POSTGRESQL: Dialect = Dialect(
    name="postgresql",
    placeholder_style=PlaceholderStyle.NUMERIC_DOLLAR,
)

MYSQL: Dialect = Dialect(
    name="mysql",
    placeholder_style=PlaceholderStyle.QMARK,
    identifier_quote="`",
    supports_returning=False,
    empty_insert_clause="() VALUES ()",
    offset_without_limit="18446744073709551615",
    reserved_words=_MYSQL_RESERVED_WORDS,
)

_DIALECTS: Dict[str, Dialect] = {
    "sqlite": SQLITE,
    "sqlite3": SQLITE,
    "postgresql": POSTGRESQL,
    "postgres": POSTGRESQL,
    "pg": POSTGRESQL,
    "mysql": MYSQL,
    "mariadb": MYSQL,
}

# DB-API paramstyle -> placeholder style; pyformat drivers also accept %s
_PARAMSTYLES: Dict[str, PlaceholderStyle] = {
    "qmark": PlaceholderStyle.QMARK,
    "numeric_dollar": PlaceholderStyle.NUMERIC_DOLLAR,
    "numeric": PlaceholderStyle.NUMERIC,
    "format": PlaceholderStyle.FORMAT,
    "pyformat": PlaceholderStyle.FORMAT,
}


def get_dialect(name: str, *, quote_identifiers: bool = False) -> Dialect:
    """
    Look up a dialect by name or alias (``sqlite3``, ``postgres``, ``pg``,
    ``mariadb``).  Raises ``ValueError`` for unknown names.
    """
    key: str = str(getattr(name, "value", name)).lower()
    try:
        dialect: Dialect = _DIALECTS[key]
    except KeyError:
        raise ValueError(
            f"Unknown dialect {name!r}; expected one of {sorted(set(_DIALECTS))}"
        ) from None
    return dialect.with_quoting(True) if quote_identifiers else dialect


def dialect_from_sqlalchemy(sa_dialect: Any) -> Dialect:
    """
    Derive the descriptor matching a SQLAlchemy ``Dialect`` instance.

    The engine family comes from ``sa_dialect.name`` and the placeholder
    style from the DB-API driver's ``paramstyle``, so e.g. ``mysql+aiomysql``
    renders ``%s`` while ``postgresql+asyncpg`` renders ``$n``.
    """
    base: Dialect = get_dialect(sa_dialect.name)
    paramstyle: str = getattr(sa_dialect, "paramstyle", None) or base.placeholder_style.value
    style: Optional[PlaceholderStyle] = _PARAMSTYLES.get(paramstyle)
    if style is None:
        raise ValueError(
            f"Driver paramstyle {paramstyle!r} of {sa_dialect.name}+"
            f"{getattr(sa_dialect, 'driver', '?')} is not supported"
        )
    if style is not base.placeholder_style:
        logger.debug("Using %s placeholders for %s", style.value, base.name)
        return base.with_placeholder_style(style)
    return base


# ---------------------------------------------------------------------------
# Parameter binding
# ---------------------------------------------------------------------------


class ParameterBinder:
    """
    Collects bound values while a statement is being rendered.

    ``bind`` appends a value and returns the placeholder for its position, so
    the placeholder sequence in the SQL and the parameter tuple can never
    drift apart.
    """

    __slots__ = ("_dialect", "_values")

    def __init__(self, dialect: Dialect) -> None:
        self._dialect: Dialect = dialect
        self._values: List[Any] = []

    def bind(self, value: Any) -> str:
        self._values.append(value)
        return self._dialect.placeholder(len(self._values))

    @property
    def params(self) -> Tuple[Any, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)


__all__: List[str] = [
    "Dialect",
    "MYSQL",
    "POSTGRESQL",
    "ParameterBinder",
    "PlaceholderStyle",
    "SQLITE",
    "SQL_RESERVED_WORDS",
    "dialect_from_sqlalchemy",
    "get_dialect",
]

logger.debug("ormgen.dialects loaded.")
