# File: ormgen/validators.py
"""
ORMGen - Entity & Schema Validators
====================================
Pydantic checks the *shape* of a definition.  This module adds the
*semantic* rules that decide whether an entity can be turned into CRUD
operations at all: exactly one primary key, no transient field that also
takes part in SQL, no field that is both ``created_at`` and ``updated_at``,
resolvable generator references, non-empty name overrides and so on.

Every rule is a pure function returning a ``ValidationResult``; nothing here
raises for a rule violation.  :func:`build_entity` is the single place that
turns a failing result into a :class:`~ormgen.exceptions.SchemaError`.

Usage by downstream modules:
    from ormgen.validators import build_entity
    entity = build_entity(definition)   # raises SchemaError when invalid
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set

from ormgen.crud import Repository
from ormgen.dialects import SQL_RESERVED_WORDS
from ormgen.exceptions import SchemaError
from ormgen.models import (
    Entity,
    EntityDefinition,
    FieldDefinition,
    FieldSpec,
    FieldType,
    GenerationConfig,
    Role,
    SchemaDefinition,
)
from ormgen.predicates import Operator
from ormgen.query import SelectBuilder
from ormgen.utils import (
    is_valid_identifier,
    pluralize_table_name,
    reference_path,
    resolve_reference,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.validators")

# Roles that make a field a lookup target (see FieldSpec.is_queryable)
_LOOKUP_ROLES: FrozenSet[Role] = frozenset(
    {Role.PRIMARY_KEY, Role.QUERYABLE, Role.CREATED_AT, Role.UPDATED_AT}
)

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationError:
    """Lightweight error descriptor (no pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationError`` instances produced by the rules."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationError] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationError("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationError("warning", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_warning]

    @property
    def codes(self) -> List[str]:
        return [e.code for e in self._items]

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            prefix: str = "ERROR  " if item.is_error else "WARNING"
            lines.append(f"  {prefix} [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"           {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def field_roles(field_def: FieldDefinition) -> FrozenSet[Role]:
    """Normalised role set of a field; ``plain`` is implied by an empty set."""
    return frozenset(Role(r) for r in field_def.roles) - {Role.PLAIN}


def resolved_column_name(field_def: FieldDefinition) -> str:
    if field_def.column_name is not None:
        return field_def.column_name
    return to_snake_case(field_def.name)


def resolved_table_name(definition: EntityDefinition) -> str:
    if definition.table_name is not None:
        return definition.table_name
    return pluralize_table_name(definition.name)


def _ctx(definition: EntityDefinition, field_def: Optional[FieldDefinition] = None) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {"entity": definition.name}
    if field_def is not None:
        ctx["field"] = field_def.name
    return ctx


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------


def validate_names(definition: EntityDefinition) -> ValidationResult:
    """Entity and field names must be usable as Python identifiers."""
    result: ValidationResult = ValidationResult()

    if not is_valid_identifier(definition.name):
        result.add_error(
            "INVALID_IDENTIFIER",
            f"Entity name '{definition.name}' is not a valid Python identifier.",
            _ctx(definition),
        )

    if not definition.fields:
        result.add_error(
            "NO_FIELDS",
            f"Entity '{definition.name}' declares no fields.",
            _ctx(definition),
        )

    counts: Counter = Counter(f.name for f in definition.fields)
    for name, count in counts.items():
        if count > 1:
            result.add_error(
                "DUPLICATE_FIELD",
                f"Field '{name}' is declared {count} times on '{definition.name}'.",
                {"entity": definition.name, "field": name},
            )

    for field_def in definition.fields:
        if not is_valid_identifier(field_def.name) or field_def.name.startswith("_"):
            result.add_error(
                "INVALID_IDENTIFIER",
                f"Field name '{field_def.name}' on '{definition.name}' must be a "
                f"public Python identifier.",
                _ctx(definition, field_def),
            )

    return result


def validate_primary_key(definition: EntityDefinition) -> ValidationResult:
    """Exactly one field carries the primary-key role."""
    result: ValidationResult = ValidationResult()
    pk_fields: List[str] = [
        f.name for f in definition.fields if Role.PRIMARY_KEY in field_roles(f)
    ]

    if not pk_fields:
        result.add_error(
            "MISSING_PRIMARY_KEY",
            f"Entity '{definition.name}' has no primary key field.",
            _ctx(definition),
        )
    elif len(pk_fields) > 1:
        result.add_error(
            "MULTIPLE_PRIMARY_KEYS",
            f"Entity '{definition.name}' declares {len(pk_fields)} primary keys "
            f"({', '.join(pk_fields)}); composite keys are not supported.",
            {"entity": definition.name, "fields": pk_fields},
        )
    return result


def validate_roles(definition: EntityDefinition) -> ValidationResult:
    """
    Per-field role combinations.

    * transient excludes every other role and every SQL-related option;
    * created_at and updated_at are mutually exclusive;
    * readonly wins over ``new``/``is_set`` (warning, expressions dropped);
    * a writable primary key without a generator is suspicious (warning).
    """
    result: ValidationResult = ValidationResult()

    for field_def in definition.fields:
        roles: FrozenSet[Role] = field_roles(field_def)
        ctx: Dict[str, Any] = _ctx(definition, field_def)

        if Role.TRANSIENT in roles:
            others: List[str] = sorted(r.value for r in roles - {Role.TRANSIENT})
            options: List[str] = [
                name
                for name, value in (
                    ("rename", field_def.column_name),
                    ("new", field_def.new),
                    ("is_set", field_def.is_set),
                )
                if value is not None
            ]
            if others or options:
                result.add_error(
                    "TRANSIENT_CONFLICT",
                    f"Field '{field_def.name}' is transient and cannot also use "
                    f"{', '.join(others + options)}.",
                    ctx,
                )
            continue

        if Role.CREATED_AT in roles and Role.UPDATED_AT in roles:
            result.add_error(
                "TIMESTAMP_CONFLICT",
                f"Field '{field_def.name}' cannot be both created_at and updated_at.",
                ctx,
            )

        if Role.READONLY in roles:
            ignored: List[str] = [
                name
                for name, value in (("new", field_def.new), ("is_set", field_def.is_set))
                if value is not None
            ]
            if ignored:
                result.add_warning(
                    "READONLY_IGNORES_EXPRESSION",
                    f"Field '{field_def.name}' is readonly; "
                    f"{' and '.join(ignored)} will be ignored.",
                    ctx,
                )
        elif Role.PRIMARY_KEY in roles and field_def.new is None:
            result.add_warning(
                "PRIMARY_KEY_WITHOUT_GENERATOR",
                f"Primary key '{field_def.name}' has no 'new' generator; "
                f"callers must assign it before the first save.",
                ctx,
            )

    return result


def validate_timestamps(definition: EntityDefinition) -> ValidationResult:
    """At most one created_at and one updated_at field per entity."""
    result: ValidationResult = ValidationResult()

    for role, code in (
        (Role.CREATED_AT, "DUPLICATE_CREATED_AT"),
        (Role.UPDATED_AT, "DUPLICATE_UPDATED_AT"),
    ):
        names: List[str] = [
            f.name for f in definition.fields if role in field_roles(f)
        ]
        if len(names) > 1:
            result.add_error(
                code,
                f"Entity '{definition.name}' has several {role.value} fields: "
                f"{', '.join(names)}.",
                {"entity": definition.name, "fields": names},
            )
    return result


def validate_overrides(definition: EntityDefinition) -> ValidationResult:
    """Name overrides are non-empty, columns are unique, reserved words are flagged."""
    result: ValidationResult = ValidationResult()

    if definition.table_name is not None and not definition.table_name.strip():
        result.add_error(
            "EMPTY_OVERRIDE",
            f"Entity '{definition.name}' has an empty table name override.",
            _ctx(definition),
        )
    else:
        table: str = resolved_table_name(definition)
        if table.lower() in SQL_RESERVED_WORDS:
            result.add_warning(
                "RESERVED_WORD",
                f"Table name '{table}' is an SQL reserved word and will be quoted.",
                {"entity": definition.name, "table": table},
            )

    seen: Dict[str, str] = {}
    for field_def in definition.fields:
        if Role.TRANSIENT in field_roles(field_def):
            continue
        ctx: Dict[str, Any] = _ctx(definition, field_def)

        if field_def.column_name is not None and not field_def.column_name.strip():
            result.add_error(
                "EMPTY_OVERRIDE",
                f"Field '{field_def.name}' has an empty column name override.",
                ctx,
            )
            continue

        column: str = resolved_column_name(field_def)
        if column in seen:
            result.add_error(
                "DUPLICATE_COLUMN",
                f"Fields '{seen[column]}' and '{field_def.name}' both map to "
                f"column '{column}'.",
                {**ctx, "column": column},
            )
        seen[column] = field_def.name

        if column.lower() in SQL_RESERVED_WORDS:
            result.add_warning(
                "RESERVED_WORD",
                f"Column name '{column}' is an SQL reserved word and will be quoted.",
                {**ctx, "column": column},
            )

    return result


def validate_references(definition: EntityDefinition) -> ValidationResult:
    """``new`` and ``is_set`` references must resolve to callables."""
    result: ValidationResult = ValidationResult()

    for field_def in definition.fields:
        roles: FrozenSet[Role] = field_roles(field_def)
        if roles & {Role.READONLY, Role.TRANSIENT}:
            continue
        for option in ("new", "is_set"):
            reference: Any = getattr(field_def, option)
            if reference is None:
                continue
            ctx: Dict[str, Any] = {
                **_ctx(definition, field_def),
                "option": option,
                "reference": reference_path(reference),
            }
            try:
                resolve_reference(reference)
            except TypeError as exc:
                result.add_error("NOT_CALLABLE", str(exc), ctx)
            except (ImportError, AttributeError, ValueError) as exc:
                result.add_error(
                    "UNRESOLVED_REFERENCE",
                    f"Cannot resolve {option}={reference!r} on field "
                    f"'{field_def.name}': {exc}",
                    ctx,
                )
    return result


def generated_method_names(field_name: str) -> Dict[str, List[str]]:
    """Method names generated for one queryable field, keyed by owning class."""
    return {
        "SelectBuilder": [
            f"where_{field_name}",
            *(f"where_{op.method_prefix}_{field_name}" for op in Operator.comparisons()),
            f"where_between_{field_name}",
            f"order_by_{field_name}",
            f"group_by_{field_name}",
        ],
        "Repository": [
            f"find_by_{field_name}",
            f"find_all_by_{field_name}",
            f"delete_by_{field_name}",
        ],
    }


def validate_method_names(definition: EntityDefinition) -> ValidationResult:
    """
    Generated lookup methods must not replace a base-class member or each
    other (a ``between`` field would shadow ``SelectBuilder.where_between``).
    """
    result: ValidationResult = ValidationResult()
    base_members: Dict[str, Set[str]] = {
        "SelectBuilder": set(dir(SelectBuilder)),
        "Repository": set(dir(Repository)),
    }
    owners: Dict[str, str] = {}

    for field_def in definition.fields:
        roles: FrozenSet[Role] = field_roles(field_def)
        if Role.TRANSIENT in roles or not roles & _LOOKUP_ROLES:
            continue
        ctx: Dict[str, Any] = _ctx(definition, field_def)
        for owner, names in generated_method_names(field_def.name).items():
            for method in names:
                if method in base_members[owner]:
                    result.add_error(
                        "METHOD_NAME_CONFLICT",
                        f"Field '{field_def.name}' would generate '{method}', which "
                        f"replaces {owner}.{method}; rename the field.",
                        {**ctx, "method": method},
                    )
                elif owners.setdefault(method, field_def.name) != field_def.name:
                    result.add_error(
                        "METHOD_NAME_CONFLICT",
                        f"Fields '{owners[method]}' and '{field_def.name}' both "
                        f"generate '{method}'.",
                        {**ctx, "method": method},
                    )
    return result


_ENTITY_RULES: List[Callable[[EntityDefinition], ValidationResult]] = [
    validate_names,
    validate_primary_key,
    validate_roles,
    validate_timestamps,
    validate_overrides,
    validate_references,
    validate_method_names,
]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def validate_entity(definition: EntityDefinition) -> ValidationResult:
    """Run every entity-level rule and merge the results."""
    result: ValidationResult = ValidationResult()
    for rule in _ENTITY_RULES:
        result.merge(rule(definition))
    logger.debug("Validated entity '%s': %s", definition.name, result.summary())
    return result


def _build_field(field_def: FieldDefinition) -> FieldSpec:
    roles: FrozenSet[Role] = field_roles(field_def)
    live: bool = not roles & {Role.READONLY, Role.TRANSIENT}

    new_ref: Any = field_def.new if live else None
    is_set_ref: Any = field_def.is_set if live else None

    return FieldSpec(
        name=field_def.name,
        column=resolved_column_name(field_def),
        roles=roles,
        field_type=FieldType(field_def.type),
        optional=field_def.optional,
        default=field_def.effective_default,
        new_expression=resolve_reference(new_ref) if new_ref is not None else None,
        is_set_check=resolve_reference(is_set_ref) if is_set_ref is not None else None,
        new_reference=reference_path(new_ref),
        is_set_reference=reference_path(is_set_ref),
        column_overridden=field_def.column_name is not None,
    )


def build_entity(
    definition: EntityDefinition,
    result: Optional[ValidationResult] = None,
) -> Entity:
    """
    Validate *definition* and build the immutable :class:`Entity`.

    Warnings are logged and kept on ``Entity.warnings``.  Any error raises
    :class:`SchemaError`, so an ``Entity`` only ever exists for a valid
    definition.
    """
    outcome: ValidationResult = result if result is not None else validate_entity(definition)
    if outcome.has_errors:
        raise SchemaError(definition.name, outcome.errors)

    for warning in outcome.warnings:
        logger.warning("%s: [%s] %s", definition.name, warning.code, warning.message)

    entity: Entity = Entity(
        name=definition.name,
        table_name=resolved_table_name(definition),
        fields=tuple(_build_field(f) for f in definition.fields),
        warnings=tuple(w.message for w in outcome.warnings),
    )
    logger.debug("Built %r", entity)
    return entity


def validate_schema(schema: SchemaDefinition) -> ValidationResult:
    """Validate every entity plus the cross-entity uniqueness rules."""
    result: ValidationResult = ValidationResult()

    entity_names: Set[str] = set()
    tables: Dict[str, str] = {}
    for definition in schema.entities:
        if definition.name in entity_names:
            result.add_error(
                "DUPLICATE_ENTITY",
                f"Entity '{definition.name}' is defined more than once.",
                _ctx(definition),
            )
        entity_names.add(definition.name)

        result.merge(validate_entity(definition))

        table: str = resolved_table_name(definition)
        if table and table in tables and tables[table] != definition.name:
            result.add_error(
                "DUPLICATE_TABLE",
                f"Entities '{tables[table]}' and '{definition.name}' both map to "
                f"table '{table}'.",
                {"entity": definition.name, "table": table},
            )
        tables.setdefault(table, definition.name)

    logger.info("Schema validation complete: %s", result.summary())
    return result


def validate_full(
    schema: SchemaDefinition,
    config: GenerationConfig,
) -> ValidationResult:
    """
    **Master validation entry point** used by the generator and the CLI.

    Runs the schema rules, then checks that the configured package name does
    not collide with a generated entity module.
    """
    logger.info(
        "Starting full validation: %d entities, dialect=%s",
        schema.entity_count,
        config.dialect,
    )
    result: ValidationResult = validate_schema(schema)

    modules: Set[str] = {to_snake_case(e.name) for e in schema.entities}
    if config.package_name in modules:
        result.add_error(
            "PACKAGE_NAME_CONFLICT",
            f"package_name '{config.package_name}' collides with a generated "
            f"entity module of the same name.",
            {"package_name": config.package_name},
        )

    if result.has_errors:
        logger.error("Validation FAILED with %d error(s).", result.error_count)
    else:
        logger.info("Validation PASSED. %s", result.summary())
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationError",
    "ValidationResult",
    "build_entity",
    "field_roles",
    "resolved_column_name",
    "resolved_table_name",
    "validate_entity",
    "validate_full",
    "generated_method_names",
    "validate_method_names",
    "validate_names",
    "validate_overrides",
    "validate_primary_key",
    "validate_references",
    "validate_roles",
    "validate_schema",
    "validate_timestamps",
]

logger.debug("ormgen.validators loaded.")
