# File: ormgen/models.py
"""
ORMGen - Core Data Models
==========================
Two layers of models live here:

1. **Configuration surface** (pydantic V2): ``FieldDefinition``,
   ``EntityDefinition``, ``SchemaDefinition`` and ``GenerationConfig``.
   These are what a schema file or a declarative ``Model`` subclass is
   parsed into.  They only check shapes; the semantic rules live in
   :mod:`ormgen.validators`.
2. **Validated schema model** (frozen dataclasses): ``FieldSpec`` and
   ``Entity``.  An ``Entity`` can only be obtained through
   :func:`ormgen.validators.build_entity`, so everything downstream (CRUD
   compilation, query builders, code emission) may assume it is valid.

Pipeline: definition -> validation -> Entity -> {CRUD, query builder, templates}.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("ormgen.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Participation of a field in generated SQL."""

    PRIMARY_KEY = "pk"
    QUERYABLE = "by"
    READONLY = "readonly"
    TRANSIENT = "transient"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    PLAIN = "plain"


class FieldType(str, Enum):
    """Value types a schema file may declare for a field."""

    INT = "int"
    FLOAT = "float"
    STR = "str"
    BOOL = "bool"
    BYTES = "bytes"
    UUID = "uuid"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    JSON = "json"


class DatabaseDialect(str, Enum):
    """Target database dialects."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


# Boolean shorthand keys accepted on a field, mapped to the role they grant
ROLE_FLAGS: Dict[str, Role] = {
    "pk": Role.PRIMARY_KEY,
    "by": Role.QUERYABLE,
    "readonly": Role.READONLY,
    "transient": Role.TRANSIENT,
    "created_at": Role.CREATED_AT,
    "updated_at": Role.UPDATED_AT,
}


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TypeInfo:
    """How a declared field type is spelled in Python and what its zero is."""

    python_type: Any
    hint: str
    import_from: Optional[str]
    zero: Any


_TYPE_INFO: Dict[FieldType, TypeInfo] = {
    FieldType.INT: TypeInfo(int, "int", None, 0),
    FieldType.FLOAT: TypeInfo(float, "float", None, 0.0),
    FieldType.STR: TypeInfo(str, "str", None, ""),
    FieldType.BOOL: TypeInfo(bool, "bool", None, False),
    FieldType.BYTES: TypeInfo(bytes, "bytes", None, b""),
    FieldType.UUID: TypeInfo(UUID, "UUID", "uuid", UUID(int=0)),
    FieldType.DECIMAL: TypeInfo(Decimal, "Decimal", "decimal", Decimal(0)),
    FieldType.DATETIME: TypeInfo(datetime, "datetime", "datetime", None),
    FieldType.DATE: TypeInfo(date, "date", "datetime", None),
    FieldType.TIME: TypeInfo(time, "time", "datetime", None),
    FieldType.JSON: TypeInfo(Any, "Any", "typing", None),
}

_PYTHON_TYPE_TO_FIELD_TYPE: Dict[Any, FieldType] = {
    info.python_type: field_type for field_type, info in _TYPE_INFO.items()
}


def type_info(field_type: Any) -> TypeInfo:
    """Return the :class:`TypeInfo` for a ``FieldType`` or its string value."""
    return _TYPE_INFO[FieldType(field_type)]


def field_type_for(python_type: Any) -> FieldType:
    """Map a Python annotation (already unwrapped from Optional) to a FieldType."""
    if isinstance(python_type, type):
        # The MRO starts with the type itself, so bool wins over int and
        # datetime over date.
        for candidate in python_type.__mro__:
            if candidate in _PYTHON_TYPE_TO_FIELD_TYPE:
                return _PYTHON_TYPE_TO_FIELD_TYPE[candidate]
    return FieldType.JSON


def zero_value_for(field_type: Any, optional: bool = False) -> Any:
    """The value a field holds when the caller never assigned one."""
    if optional:
        return None
    return type_info(field_type).zero


# ---------------------------------------------------------------------------
# Shared pydantic configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
    arbitrary_types_allowed=True,
)


# ---------------------------------------------------------------------------
# Configuration surface
# ---------------------------------------------------------------------------


class FieldDefinition(BaseModel):
    """
    Raw description of one entity field.

    Roles may be given as a list (``roles: [pk, readonly]``) or with the
    boolean shorthands ``pk``, ``by``, ``readonly``, ``transient``,
    ``created_at`` and ``updated_at``; both forms can be mixed.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., description="Attribute name on the entity.")
    type: FieldType = Field(default=FieldType.STR, description="Declared value type.")
    optional: bool = Field(default=False, description="Whether the value may be None.")
    default: Any = Field(
        default=None,
        description="Default value; the type's zero value when omitted.",
    )
    roles: List[Role] = Field(default_factory=list, description="Roles of the field.")
    column_name: Optional[str] = Field(
        default=None,
        alias="rename",
        description="Column name override (defaults to snake_case of the name).",
    )
    new: Optional[Any] = Field(
        default=None,
        description="Generator reference invoked to produce the value on insert.",
    )
    is_set: Optional[Any] = Field(
        default=None,
        description="Predicate reference telling whether the value was assigned.",
    )
    description: Optional[str] = Field(default=None, description="Free text.")

    @model_validator(mode="before")
    @classmethod
    def _fold_role_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        roles: List[Any] = list(data.get("roles") or [])
        for flag, role in ROLE_FLAGS.items():
            if flag in data:
                if data.pop(flag):
                    roles.append(role)
        data["roles"] = roles
        return data

    @field_validator("roles")
    @classmethod
    def _dedupe_roles(cls, v: List[Role]) -> List[Role]:
        seen: List[Role] = []
        for role in v:
            if role not in seen:
                seen.append(role)
        return seen

    @computed_field  # type: ignore[misc]
    @property
    def effective_default(self) -> Any:
        if self.default is not None:
            return self.default
        return zero_value_for(self.type, self.optional)


class EntityDefinition(BaseModel):
    """Raw description of one entity (one table)."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., description="Entity type name, e.g. 'User'.")
    table_name: Optional[str] = Field(
        default=None,
        alias="rename",
        description="Table name override (defaults to the pluralised type name).",
    )
    fields: List[FieldDefinition] = Field(default_factory=list)
    description: Optional[str] = Field(default=None)

    def __repr__(self) -> str:
        return f"<EntityDefinition {self.name} ({len(self.fields)} fields)>"


class SchemaDefinition(BaseModel):
    """The root of a schema file: every entity to generate code for."""

    model_config = _SHARED_CONFIG

    entities: List[EntityDefinition] = Field(
        ..., min_length=1, description="All entities in the schema."
    )
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source_file: Optional[str] = Field(default=None)

    @computed_field  # type: ignore[misc]
    @property
    def entity_count(self) -> int:
        return len(self.entities)

    @computed_field  # type: ignore[misc]
    @property
    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]


class GenerationConfig(BaseModel):
    """
    Settings for ahead-of-time code emission.

    Values come from the model defaults, then the ``config:`` section of
    the schema file, then command-line flags.
    """

    model_config = _SHARED_CONFIG

    project_name: str = Field(default="ormgen_models", min_length=1, max_length=128)
    project_version: str = Field(default="0.1.0")
    package_name: str = Field(
        default="models",
        min_length=1,
        description="Python package the entity modules are written into.",
    )
    dialect: DatabaseDialect = Field(
        default=DatabaseDialect.SQLITE,
        description="Dialect the precompiled statements are rendered for.",
    )
    quote_identifiers: bool = Field(
        default=False,
        description="Quote every table and column name, not only reserved ones.",
    )
    indent_size: int = Field(default=4, ge=2, le=8)
    generate_docstrings: bool = Field(default=True)
    emit_statements: bool = Field(
        default=True,
        description="Embed precompiled CRUD SQL in each generated module.",
    )
    output_dir: str = Field(default="./generated")

    @field_validator("package_name")
    @classmethod
    def _package_is_identifier(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"package_name must be a Python identifier, got {v!r}")
        return v


# ---------------------------------------------------------------------------
# Validated schema model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """A validated field: resolved column name, roles and expressions."""

    name: str
    column: str
    roles: FrozenSet[Role]
    field_type: FieldType = FieldType.JSON
    optional: bool = False
    default: Any = None
    new_expression: Optional[Callable[[], Any]] = None
    is_set_check: Optional[Callable[[Any], bool]] = None
    new_reference: Optional[str] = None
    is_set_reference: Optional[str] = None
    column_overridden: bool = False

    @property
    def is_primary_key(self) -> bool:
        return Role.PRIMARY_KEY in self.roles

    @property
    def is_readonly(self) -> bool:
        return Role.READONLY in self.roles

    @property
    def is_transient(self) -> bool:
        return Role.TRANSIENT in self.roles

    @property
    def is_created_at(self) -> bool:
        return Role.CREATED_AT in self.roles

    @property
    def is_updated_at(self) -> bool:
        return Role.UPDATED_AT in self.roles

    @property
    def is_queryable(self) -> bool:
        """Primary keys and timestamps can be looked up like ``by`` fields."""
        if self.is_transient:
            return False
        return bool(
            self.roles
            & {Role.PRIMARY_KEY, Role.QUERYABLE, Role.CREATED_AT, Role.UPDATED_AT}
        )

    @property
    def has_generator(self) -> bool:
        return self.new_expression is not None

    def is_set(self, value: Any) -> bool:
        """
        Whether *value* counts as assigned by the caller.

        A configured ``is_set`` predicate decides when present; otherwise the
        value is set when it differs from the field's default.
        """
        if self.is_set_check is not None:
            return bool(self.is_set_check(value))
        return value != self.default

    def generate(self) -> Any:
        if self.new_expression is None:
            raise LookupError(f"Field '{self.name}' has no generator")
        return self.new_expression()

    def __repr__(self) -> str:
        roles: str = ",".join(sorted(r.value for r in self.roles)) or "plain"
        return f"<FieldSpec {self.name} -> {self.column} [{roles}]>"


@dataclass(frozen=True, slots=True)
class Entity:
    """
    The validated description of one entity.

    Invariant: exactly one primary key field; transient fields have no other
    role and never reach SQL.
    """

    name: str
    table_name: str
    fields: Tuple[FieldSpec, ...]
    warnings: Tuple[str, ...] = ()

    @property
    def primary_key(self) -> FieldSpec:
        return next(f for f in self.fields if f.is_primary_key)

    @property
    def columns(self) -> Tuple[FieldSpec, ...]:
        """Every field that maps to a column, in declaration order."""
        return tuple(f for f in self.fields if not f.is_transient)

    @property
    def transient_fields(self) -> Tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.is_transient)

    @property
    def insert_fields(self) -> Tuple[FieldSpec, ...]:
        """Columns written by INSERT: readonly ones are computed by the store."""
        return tuple(f for f in self.columns if not f.is_readonly)

    @property
    def update_fields(self) -> Tuple[FieldSpec, ...]:
        """Columns in the UPDATE SET list: never the key, never readonly."""
        return tuple(
            f for f in self.columns if not f.is_readonly and not f.is_primary_key
        )

    @property
    def queryable_fields(self) -> Tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.is_queryable)

    def get_field(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def queryable(self, name: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.name == name and f.is_queryable:
                return f
        return None

    def __repr__(self) -> str:
        return f"<Entity {self.name} -> {self.table_name} ({len(self.fields)} fields)>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DatabaseDialect",
    "Entity",
    "EntityDefinition",
    "FieldDefinition",
    "FieldSpec",
    "FieldType",
    "GenerationConfig",
    "ROLE_FLAGS",
    "Role",
    "SchemaDefinition",
    "TypeInfo",
    "field_type_for",
    "type_info",
    "zero_value_for",
]

logger.debug("ormgen.models loaded.")
