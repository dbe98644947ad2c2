# File: ormgen/templates.py
"""
ORMGen - Code Template Engine
==============================
Turns validated :class:`~ormgen.models.Entity` objects into Python source
for ahead-of-time generation.  One module is emitted per entity, containing:

    1. the declarative ``Model`` subclass (``Annotated[..., Column(...)]``),
    2. ``<Entity>Select``: select builder with one method per queryable
       field and operator,
    3. ``STATEMENTS``: the CRUD SQL precompiled for the configured dialect
       (optional),
    4. ``<Entity>Repository``: ``find_by_*``, ``find_all_by_*`` and
       ``delete_by_*`` methods on top of :class:`~ormgen.crud.Repository`.

Emitted modules never use ``from __future__ import annotations``: pydantic
resolves the field annotations while the class body runs.

**Performance contract:**
    - All string assembly uses ``List[str]`` + ``"\\n".join()``.
    - Template methods keep no mutable state between calls.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple
from uuid import UUID

from ormgen.crud import CrudStatements, compile_statements
from ormgen.dialects import Dialect, get_dialect
from ormgen.models import Entity, FieldSpec, GenerationConfig, Role, type_info
from ormgen.predicates import Operator
from ormgen.utils import (
    build_import_block,
    indent_lines,
    make_docstring,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.templates")

# Column(...) keyword for each role, in emission order
_ROLE_KEYWORDS: Tuple[Tuple[Role, str], ...] = (
    (Role.PRIMARY_KEY, "pk"),
    (Role.QUERYABLE, "by"),
    (Role.READONLY, "readonly"),
    (Role.TRANSIENT, "transient"),
    (Role.CREATED_AT, "created_at"),
    (Role.UPDATED_AT, "updated_at"),
)

# Runtime names every generated module imports from ormgen
_RUNTIME_IMPORTS: Set[str] = {"Column", "Model", "Operator", "Repository", "SelectBuilder"}


# ---------------------------------------------------------------------------
# Literal rendering
# ---------------------------------------------------------------------------


def string_literal(value: str) -> str:
    """Double-quoted Python string literal for *value*."""
    return json.dumps(value, ensure_ascii=False)


def python_literal(value: Any) -> Tuple[str, Dict[str, Set[str]]]:
    """
    Source text reproducing *value*, plus the imports that text needs.

    Raises:
        ValueError: the value has no literal form (e.g. an arbitrary object).
    """
    if isinstance(value, Enum):
        return python_literal(value.value)
    if value is None or isinstance(value, (bool, int, float, bytes)):
        return repr(value), {}
    if isinstance(value, str):
        return string_literal(value), {}
    if isinstance(value, UUID):
        return f"UUID({string_literal(str(value))})", {"uuid": {"UUID"}}
    if isinstance(value, Decimal):
        return f"Decimal({string_literal(str(value))})", {"decimal": {"Decimal"}}
    if isinstance(value, datetime):
        text: str = f"datetime.fromisoformat({string_literal(value.isoformat())})"
        return text, {"datetime": {"datetime"}}
    if isinstance(value, date):
        return f"date.fromisoformat({string_literal(value.isoformat())})", {"datetime": {"date"}}
    if isinstance(value, time):
        return f"time.fromisoformat({string_literal(value.isoformat())})", {"datetime": {"time"}}
    if isinstance(value, (list, tuple, dict)):
        try:
            json.dumps(value)
        except TypeError as exc:
            raise ValueError(f"Cannot render {value!r} as a Python literal") from exc
        return repr(value), {}
    raise ValueError(f"Cannot render {value!r} as a Python literal")


def _merge_imports(target: Dict[str, Set[str]], extra: Mapping[str, Set[str]]) -> None:
    for module, names in extra.items():
        target.setdefault(module, set()).update(names)


# ---------------------------------------------------------------------------
# Template generator
# ---------------------------------------------------------------------------


class TemplateGenerator:
    """
    Code-generation engine for entity modules.

    Each ``generate_*`` method returns a complete, importable file content
    string.  No mutable instance state.
    """

    def __init__(self, config: GenerationConfig) -> None:
        self._config: GenerationConfig = config
        self._dialect: Dialect = get_dialect(
            config.dialect, quote_identifiers=config.quote_identifiers
        )
        self._size: int = config.indent_size
        logger.debug(
            "TemplateGenerator initialised (dialect=%s, statements=%s).",
            self._dialect.name,
            config.emit_statements,
        )

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    # -- Small helpers ------------------------------------------------------

    def _indent(self, lines: Sequence[str], level: int = 1) -> List[str]:
        return indent_lines(lines, level, self._size)

    def _docstring(self, text: str, level: int) -> List[str]:
        if not self._config.generate_docstrings:
            return []
        return make_docstring(text, level, self._size).split("\n")

    @staticmethod
    def _value_hint(spec: FieldSpec) -> str:
        hint: str = type_info(spec.field_type).hint
        if hint == "Any":
            return hint
        if spec.optional or spec.default is None:
            return f"Optional[{hint}]"
        return hint

    @staticmethod
    def _column_marker(spec: FieldSpec) -> str:
        args: List[str] = [f"{kw}=True" for role, kw in _ROLE_KEYWORDS if role in spec.roles]
        if spec.column_overridden:
            args.append(f"rename={string_literal(spec.column)}")
        if spec.new_reference is not None:
            args.append(f"new={string_literal(spec.new_reference)}")
        if spec.is_set_reference is not None:
            args.append(f"is_set={string_literal(spec.is_set_reference)}")
        return f"Column({', '.join(args)})"

    # ===================================================================
    # 1. Model class
    # ===================================================================

    def _model_lines(
        self,
        entity: Entity,
        description: Optional[str],
        imports: Dict[str, Set[str]],
    ) -> List[str]:
        lines: List[str] = [f"class {entity.name}(Model):"]
        lines.extend(
            self._docstring(description or f"Row of the ``{entity.table_name}`` table.", 1)
        )
        body: List[str] = [f"__tablename__ = {string_literal(entity.table_name)}", ""]

        for spec in entity.fields:
            info_import: Optional[str] = type_info(spec.field_type).import_from
            if info_import is not None:
                imports.setdefault(info_import, set()).add(type_info(spec.field_type).hint)
            hint: str = self._value_hint(spec)
            if hint.startswith("Optional["):
                imports.setdefault("typing", set()).add("Optional")
            default_text, default_imports = python_literal(spec.default)
            _merge_imports(imports, default_imports)
            needs_marker: bool = bool(spec.roles) or spec.column_overridden or (
                spec.new_reference is not None or spec.is_set_reference is not None
            )
            if needs_marker:
                annotation: str = f"Annotated[{hint}, {self._column_marker(spec)}]"
                imports.setdefault("typing", set()).add("Annotated")
            else:
                annotation = hint
            body.append(f"{spec.name}: {annotation} = {default_text}")

        lines.extend(self._indent(body))
        return lines

    # ===================================================================
    # 2. Select builder
    # ===================================================================

    def _select_lines(self, entity: Entity) -> List[str]:
        cls: str = f"{entity.name}Select"
        ret: str = f'"{cls}"'
        lines: List[str] = [f"class {cls}(SelectBuilder):"]
        lines.extend(self._docstring(f"Select builder over ``{entity.table_name}``.", 1))
        body: List[str] = [f"model = {entity.name}"]

        for spec in entity.queryable_fields:
            name: str = spec.name
            hint: str = self._value_hint(spec)
            field_lit: str = string_literal(name)

            body.append("")
            body.append(f"def where_{name}(self, operator: Operator, value: {hint}) -> {ret}:")
            body.extend(self._indent([f"return self.where({field_lit}, operator, value)"]))
            for op in Operator.comparisons():
                body.append("")
                body.append(f"def where_{op.method_prefix}_{name}(self, value: {hint}) -> {ret}:")
                body.extend(
                    self._indent([f"return self.where({field_lit}, Operator.{op.name}, value)"])
                )
            body.append("")
            body.append(f"def where_between_{name}(self, low: {hint}, high: {hint}) -> {ret}:")
            body.extend(self._indent([f"return self.where_between({field_lit}, low, high)"]))
            body.append("")
            body.append(
                f"def order_by_{name}(self, direction: Direction = Direction.ASC) -> {ret}:"
            )
            body.extend(self._indent([f"return self.order_by({field_lit}, direction)"]))
            body.append("")
            body.append(f"def group_by_{name}(self) -> {ret}:")
            body.extend(self._indent([f"return self.group_by({field_lit})"]))

        lines.extend(self._indent(body))
        return lines

    # ===================================================================
    # 3. Precompiled statements
    # ===================================================================

    def _mapping_lines(self, key: str, mapping: Mapping[str, str]) -> List[str]:
        lines: List[str] = [f"{key}={{"]
        lines.extend(
            self._indent(
                [f"{string_literal(k)}: {string_literal(v)}," for k, v in mapping.items()]
            )
        )
        lines.append("},")
        return lines

    def _statements_lines(self, statements: CrudStatements) -> List[str]:
        dialect_call: str = f"get_dialect({string_literal(statements.dialect.name)}"
        if self._config.quote_identifiers:
            dialect_call += ", quote_identifiers=True"
        dialect_call += ")"

        def _names(names: Sequence[str]) -> str:
            inner: str = ", ".join(string_literal(n) for n in names)
            return f"({inner},)" if len(names) == 1 else f"({inner})"

        update_sql: str = (
            string_literal(statements.update_sql) if statements.update_sql is not None else "None"
        )
        args: List[str] = [
            f"dialect={dialect_call},",
            f"table={string_literal(statements.table)},",
            f"insert_sql={string_literal(statements.insert_sql)},",
            f"insert_fields={_names(statements.insert_fields)},",
            f"update_sql={update_sql},",
            f"update_fields={_names(statements.update_fields)},",
            f"delete_sql={string_literal(statements.delete_sql)},",
        ]
        args.extend(self._mapping_lines("find_by_sql", statements.find_by_sql))
        args.extend(self._mapping_lines("delete_by_sql", statements.delete_by_sql))

        lines: List[str] = ["STATEMENTS = CrudStatements("]
        lines.extend(self._indent(args))
        lines.append(")")
        return lines

    # ===================================================================
    # 4. Repository
    # ===================================================================

    def _repository_lines(self, entity: Entity) -> List[str]:
        model: str = entity.name
        lines: List[str] = [f"class {model}Repository(Repository):"]
        lines.extend(self._docstring(f"Data access for :class:`{model}`.", 1))
        body: List[str] = [
            f"model = {model}",
            f"select_builder_class = {model}Select",
        ]
        if self._config.emit_statements:
            body.append("precompiled = STATEMENTS")

        for spec in entity.queryable_fields:
            name: str = spec.name
            hint: str = self._value_hint(spec)
            field_lit: str = string_literal(name)

            body.append("")
            body.append(f"async def find_by_{name}(self, value: {hint}) -> Optional[{model}]:")
            body.extend(self._indent(self._docstring(
                f"First row whose {name} equals *value*, or None.", 0
            )))
            body.extend(self._indent([f"return await self._find_first({field_lit}, value)"]))
            body.append("")
            body.append(f"async def find_all_by_{name}(self, value: {hint}) -> List[{model}]:")
            body.extend(self._indent([f"return await self._find_all({field_lit}, value)"]))
            body.append("")
            body.append(f"async def delete_by_{name}(self, value: {hint}) -> int:")
            body.extend(self._indent(self._docstring(
                "Delete matching rows and return how many were removed.", 0
            )))
            body.extend(self._indent([f"return await self._delete_where({field_lit}, value)"]))

        lines.extend(self._indent(body))
        return lines

    # ===================================================================
    # 5. Whole files
    # ===================================================================

    def generate_entity_module(self, entity: Entity, description: Optional[str] = None) -> str:
        """Generate the complete module for one entity."""
        import ormgen

        imports: Dict[str, Set[str]] = {"typing": {"List", "Optional"}}
        runtime: Set[str] = set(_RUNTIME_IMPORTS) | {"Direction"}

        model_lines: List[str] = self._model_lines(entity, description, imports)

        statement_lines: List[str] = []
        if self._config.emit_statements:
            statements: CrudStatements = compile_statements(entity, self._dialect)
            statement_lines = self._statements_lines(statements)
            runtime |= {"CrudStatements", "get_dialect"}
        imports["ormgen"] = runtime

        stdlib: Dict[str, Set[str]] = {k: v for k, v in imports.items() if k != "ormgen"}

        lines: List[str] = ['"""']
        lines.append(f"Entity {entity.name} mapped to table {entity.table_name}.")
        lines.append(f"Auto-generated by ORMGen {ormgen.__version__}. Do not edit by hand.")
        lines.append('"""')
        lines.append("")
        lines.append(build_import_block(stdlib))
        lines.append("")
        lines.append(build_import_block({"ormgen": runtime}))
        lines.append("")
        lines.append("")
        lines.extend(model_lines)
        lines.append("")
        lines.append("")
        lines.extend(self._select_lines(entity))
        lines.append("")
        lines.append("")
        if statement_lines:
            lines.extend(statement_lines)
            lines.append("")
            lines.append("")
        lines.extend(self._repository_lines(entity))
        lines.append("")
        lines.append("")
        lines.append(
            f'__all__ = ["{entity.name}", "{entity.name}Repository", "{entity.name}Select"]'
        )
        lines.append("")

        content: str = "\n".join(lines)
        logger.debug("Generated module for entity '%s' (%d chars).", entity.name, len(content))
        return content

    def generate_init_file(self, module_name: str, imports: Optional[List[str]] = None) -> str:
        """Generate an __init__.py file with optional re-exports."""
        lines: List[str] = ['"""']
        lines.append(f"{module_name} package.")
        lines.append("Auto-generated by ORMGen.")
        lines.append('"""')
        lines.append("")
        if imports:
            lines.extend(imports)
            lines.append("")
        return "\n".join(lines)

    def generate_all(
        self,
        entities: Sequence[Entity],
        descriptions: Optional[Mapping[str, Optional[str]]] = None,
    ) -> Dict[str, str]:
        """
        Generate every file of the output package.

        Returns a dict of relative_path -> file_content.
        """
        descriptions = descriptions or {}
        package: str = self._config.package_name
        result: Dict[str, str] = {}
        init_imports: List[str] = []

        for entity in entities:
            module: str = to_snake_case(entity.name)
            result[f"{package}/{module}.py"] = self.generate_entity_module(
                entity, descriptions.get(entity.name)
            )
            init_imports.append(
                f"from .{module} import {entity.name}, "
                f"{entity.name}Repository, {entity.name}Select"
            )

        result[f"{package}/__init__.py"] = self.generate_init_file(package, init_imports)

        total_lines: int = sum(content.count("\n") + 1 for content in result.values())
        logger.info(
            "Full generation complete: %d files, ~%d lines.",
            len(result),
            total_lines,
        )
        return result


__all__: List[str] = [
    "TemplateGenerator",
    "python_literal",
    "string_literal",
]

logger.debug("ormgen.templates loaded.")
