# File: ormgen/utils.py
"""
ORMGen - Naming Resolver & Shared Helpers
==========================================
Pure string transformations used to derive table and column names,
reference resolution for ``new`` / ``is_set`` expressions, and the small
code-formatting and file I/O helpers used by the generation pipeline.

Performance strategy:
- Every naming function is decorated with ``@lru_cache(maxsize=None)``.
  Entity classes are declared once per process, but generated builders ask
  for the same names over and over while rendering.
- File output goes through a write-to-temp-then-rename path so a crash never
  leaves a half-written module behind.
"""

from __future__ import annotations

import functools
import hashlib
import keyword
import logging
import os
import pkgutil
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
# Unicode-aware: letters such as "é" or "ß" survive, punctuation does not
_NON_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"\W+")
_SIMPLE_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Suffixes that take "es" in the plural ("boxes", "matches", "addresses")
_ES_SUFFIXES: Tuple[str, ...] = ("s", "x", "ch", "sh")
_VOWELS: str = "aeiou"

Reference = Union[str, Callable[..., Any]]


# ---------------------------------------------------------------------------
# Naming resolver
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert an identifier to snake_case.

    Case boundaries become underscores, existing underscores are kept as
    they are, and any other non-identifier character run collapses to a
    single underscore.  The result contains no upper-case letters, so the
    function is idempotent:
    ``to_snake_case(to_snake_case(x)) == to_snake_case(x)``.

    Examples:
        >>> to_snake_case("UserId")
        'user_id'
        >>> to_snake_case("userId")
        'user_id'
        >>> to_snake_case("already_snake")
        'already_snake'
        >>> to_snake_case("HTTPResponse")
        'http_response'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_IDENTIFIER_RE.sub("_", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def pluralize_table_name(type_name: str) -> str:
    """
    Derive the default table name of an entity type.

    The type name is converted to snake_case and its last word pluralised
    with a handful of English suffix rules:

    * consonant + ``y``       -> ``ies``  (``Category`` -> ``categories``)
    * ``s``/``x``/``ch``/``sh`` -> ``es``   (``Box`` -> ``boxes``)
    * anything else           -> ``s``    (``UserDetail`` -> ``user_details``)

    This is a heuristic.  There is no dictionary of irregular nouns, so
    ``Person`` becomes ``persons``; override ``__tablename__`` (or
    ``table_name`` in a schema file) when the heuristic is wrong.
    """
    snake: str = to_snake_case(type_name)
    if not snake:
        return ""
    if snake.endswith("y") and len(snake) > 1 and snake[-2] not in _VOWELS + "_":
        return snake[:-1] + "ies"
    if snake.endswith(_ES_SUFFIXES):
        return snake + "es"
    return snake + "s"


def is_valid_identifier(name: str) -> bool:
    """Return True when *name* can be used as a Python attribute name."""
    return bool(name) and name.isidentifier() and not keyword.iskeyword(name)


def is_simple_sql_identifier(name: str) -> bool:
    """Return True when *name* needs no quoting for syntactic reasons."""
    return bool(_SIMPLE_IDENTIFIER_RE.match(name))


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------


def resolve_reference(reference: Reference) -> Callable[..., Any]:
    """
    Turn a ``new`` / ``is_set`` reference into a callable.

    Callables are returned as-is.  Strings are import paths in either the
    ``"package.module:qualname"`` or the dotted ``"package.module.attr"``
    form, e.g. ``"uuid:uuid4"``.

    Raises:
        ImportError, AttributeError, ValueError: the path cannot be resolved.
        TypeError: the resolved object is not callable.
    """
    if callable(reference):
        return reference
    if not isinstance(reference, str) or not reference.strip():
        raise ValueError(f"Invalid reference: {reference!r}")

    target: Any = pkgutil.resolve_name(reference.strip())
    if not callable(target):
        raise TypeError(f"Reference {reference!r} resolved to non-callable {target!r}")
    logger.debug("Resolved reference %r to %r", reference, target)
    return target


def reference_path(reference: Optional[Reference]) -> Optional[str]:
    """Return a ``module:qualname`` string describing *reference*."""
    if reference is None:
        return None
    if isinstance(reference, str):
        return reference
    module: str = getattr(reference, "__module__", None) or "?"
    qualname: str = getattr(reference, "__qualname__", None) or repr(reference)
    return f"{module}:{qualname}"


# ---------------------------------------------------------------------------
# Indentation & code formatting helpers
# ---------------------------------------------------------------------------


def indent_lines(lines: Sequence[str], level: int = 1, size: int = 4) -> List[str]:
    """Indent a list of lines, returning a new list.  Blank lines stay blank."""
    prefix: str = " " * (level * size)
    return [prefix + line if line.strip() else "" for line in lines]


def make_docstring(text: str, indent_level: int = 1, size: int = 4) -> str:
    """
    Create a properly formatted Python docstring.

    Single-line docstrings stay on one line; multi-line use triple-quote blocks.
    """
    prefix: str = " " * (indent_level * size)
    stripped: str = text.strip()

    if "\n" not in stripped and len(stripped) + len(prefix) + 6 <= 99:
        return f'{prefix}"""{stripped}"""'

    parts: List[str] = [f'{prefix}"""']
    parts.extend(f"{prefix}{line}" if line.strip() else "" for line in stripped.split("\n"))
    parts.append(f'{prefix}"""')
    return "\n".join(parts)


def build_import_block(imports: Dict[str, Set[str]]) -> str:
    """
    Build a sorted, de-duplicated import block from a mapping of
    module -> set of names.

    Example:
        >>> build_import_block({"typing": {"List", "Optional"}, "uuid": {"UUID"}})
        'from typing import List, Optional\\nfrom uuid import UUID'
    """
    lines: List[str] = []
    for module in sorted(imports.keys()):
        names: List[str] = sorted(imports[module])
        if names:
            lines.append(f"from {module} import {', '.join(names)}")
        else:
            lines.append(f"import {module}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def write_file(path: Path, content: str, atomic: bool = True) -> int:
    """
    Write *content* to *path*, creating parent directories.

    When *atomic* is True the data goes to a temporary file in the same
    directory first and is renamed over the target afterwards.

    Returns the number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    encoded: bytes = content.encode("utf-8")
    if not atomic:
        path.write_bytes(encoded)
        logger.debug("Wrote %d bytes to %s", len(encoded), path)
        return len(encoded)

    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling pipeline steps.

    Usage:
        with Timer("validate") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Reference",
    "Timer",
    "build_import_block",
    "count_lines",
    "indent_lines",
    "is_simple_sql_identifier",
    "is_valid_identifier",
    "make_docstring",
    "pluralize_table_name",
    "reference_path",
    "resolve_reference",
    "sha256_hex",
    "to_snake_case",
    "write_file",
]

logger.debug("ormgen.utils loaded.")
