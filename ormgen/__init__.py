# File: ormgen/__init__.py
"""
ORMGen: Declarative Entities to CRUD Repositories
==================================================

Declare an entity once and get parameterized CRUD statements, a fluent
select builder and a repository for SQLite, PostgreSQL and MySQL.

Architecture overview::

    Model subclass / schema file
            |
            v
    validators.build_entity ----> Entity (immutable, always valid)
            |                          |
            v                          v
    crud.compile_statements      query.SelectBuilder
            |                          |
            +------> Repository <------+
                         |
                         v
                 executors.SQLAlchemyExecutor

Usage::

    from typing import Annotated
    from uuid import UUID
    from ormgen import Column, Model, SQLAlchemyExecutor

    class User(Model):
        id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)
        email: Annotated[str, Column(by=True)] = ""

    executor = SQLAlchemyExecutor(engine)
    user = await User(email="a@b.c").save(executor)
    same = await User.repository(executor).find_by_email("a@b.c")
    rows = await User.select(executor).where_equal_email("a@b.c").limit(10).fetch_all()

    # Ahead of time, from the command line
    python -m ormgen --schema schema.yaml --output ./generated
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "Diegoproggramer"
__license__: str = "MIT"

from ormgen.exceptions import (
    ConstraintViolationError,
    NoRowAffectedError,
    ORMGenError,
    QueryPreparationError,
    SchemaError,
    StoreConnectionError,
    StoreError,
    UnknownFieldError,
)
from ormgen.models import (
    DatabaseDialect,
    Entity,
    EntityDefinition,
    FieldDefinition,
    FieldSpec,
    FieldType,
    GenerationConfig,
    Role,
    SchemaDefinition,
)
from ormgen.dialects import (
    MYSQL,
    POSTGRESQL,
    SQLITE,
    Dialect,
    PlaceholderStyle,
    dialect_from_sqlalchemy,
    get_dialect,
)
from ormgen.predicates import Direction, Operator, OrderBy, Where
from ormgen.validators import ValidationResult, build_entity, validate_entity, validate_full
from ormgen.query import SelectBuilder, Statement
from ormgen.crud import CrudStatements, Repository, compile_statements, repository_for
from ormgen.declarative import Column, Model, column
from ormgen.executors import ExecutionResult, Executor, SQLAlchemyExecutor
from ormgen.utils import Timer, pluralize_table_name, to_snake_case
from ormgen.templates import TemplateGenerator
from ormgen.exporters import ExportManifest, ExportResult, ProjectExporter
from ormgen.generator import GenerationReport, ORMGenerator

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Declarative surface
    "Column",
    "Model",
    "column",
    # Query building
    "Direction",
    "Operator",
    "OrderBy",
    "SelectBuilder",
    "Statement",
    "Where",
    # CRUD
    "CrudStatements",
    "Repository",
    "compile_statements",
    "repository_for",
    # Dialects
    "Dialect",
    "MYSQL",
    "POSTGRESQL",
    "PlaceholderStyle",
    "SQLITE",
    "dialect_from_sqlalchemy",
    "get_dialect",
    # Execution
    "ExecutionResult",
    "Executor",
    "SQLAlchemyExecutor",
    # Schema models & validation
    "DatabaseDialect",
    "Entity",
    "EntityDefinition",
    "FieldDefinition",
    "FieldSpec",
    "FieldType",
    "GenerationConfig",
    "Role",
    "SchemaDefinition",
    "ValidationResult",
    "build_entity",
    "validate_entity",
    "validate_full",
    # Errors
    "ConstraintViolationError",
    "NoRowAffectedError",
    "ORMGenError",
    "QueryPreparationError",
    "SchemaError",
    "StoreConnectionError",
    "StoreError",
    "UnknownFieldError",
    # Ahead-of-time generation
    "ExportManifest",
    "ExportResult",
    "GenerationReport",
    "ORMGenerator",
    "ProjectExporter",
    "TemplateGenerator",
    # Utilities
    "Timer",
    "pluralize_table_name",
    "to_snake_case",
]
