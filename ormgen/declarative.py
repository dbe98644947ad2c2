# File: ormgen/declarative.py
"""
ORMGen - Declarative Entities
==============================
Entities are pydantic models whose fields carry a :class:`Column` marker in
``typing.Annotated``::

    class User(Model):
        __tablename__ = "users"          # optional, defaults to "users" anyway

        id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)
        email: Annotated[str, Column(by=True)] = ""
        nickname: Annotated[str, Column(rename="nick")] = ""
        scratch: Annotated[int, Column(transient=True)] = 0
        created_at: Annotated[Optional[datetime], Column(created_at=True, new=utcnow)] = None

The entity is validated while the ``class`` statement runs: an invalid
declaration raises :class:`~ormgen.exceptions.SchemaError` and no class is
bound.  Fields without a marker are plain columns.

Prefer ``new=`` over ``default_factory`` for keys and timestamps: the is-set
check compares against the declared default, so a factory-made key would
always look "already assigned".
"""

from __future__ import annotations

import logging
import types
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, List, Optional, Tuple, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict
from pydantic.fields import FieldInfo

from ormgen.crud import Repository, repository_for
from ormgen.models import (
    Entity,
    EntityDefinition,
    FieldDefinition,
    Role,
    field_type_for,
)
from ormgen.query import SelectBuilder
from ormgen.utils import Reference
from ormgen.validators import build_entity

if TYPE_CHECKING:
    from ormgen.executors import Executor

logger: logging.Logger = logging.getLogger("ormgen.declarative")


@dataclass(frozen=True)
class Column:
    """Per-field options, used as ``Annotated[<type>, Column(...)]``."""

    pk: bool = False
    by: bool = False
    readonly: bool = False
    transient: bool = False
    created_at: bool = False
    updated_at: bool = False
    rename: Optional[str] = None
    new: Optional[Reference] = None
    is_set: Optional[Reference] = None

    def roles(self) -> List[Role]:
        flags: Tuple[Tuple[bool, Role], ...] = (
            (self.pk, Role.PRIMARY_KEY),
            (self.by, Role.QUERYABLE),
            (self.readonly, Role.READONLY),
            (self.transient, Role.TRANSIENT),
            (self.created_at, Role.CREATED_AT),
            (self.updated_at, Role.UPDATED_AT),
        )
        return [role for enabled, role in flags if enabled]


def column(**options: Any) -> Column:
    """Shorthand for :class:`Column`."""
    return Column(**options)


_PLAIN: Column = Column()


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    origin: Any = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args: Tuple[Any, ...] = get_args(annotation)
        if type(None) in args:
            rest: List[Any] = [a for a in args if a is not type(None)]
            return (rest[0] if len(rest) == 1 else Any), True
    return annotation, False


def _field_definition(name: str, info: FieldInfo) -> FieldDefinition:
    marker: Column = next((m for m in info.metadata if isinstance(m, Column)), _PLAIN)
    annotation, optional = _unwrap_optional(info.annotation)
    has_static_default: bool = not info.is_required() and info.default_factory is None
    return FieldDefinition(
        name=name,
        type=field_type_for(annotation),
        optional=optional,
        default=info.default if has_static_default else None,
        roles=marker.roles(),
        column_name=marker.rename,
        new=marker.new,
        is_set=marker.is_set,
        description=info.description,
    )


def entity_definition_from_model(model: type) -> EntityDefinition:
    """
    Read the fields and ``Column`` markers of a pydantic model class.

    Only a ``__tablename__`` set on the class itself counts; an inherited one
    belongs to the parent entity.
    """
    return EntityDefinition(
        name=model.__name__,
        table_name=model.__dict__.get("__tablename__"),
        fields=[
            _field_definition(name, info) for name, info in model.model_fields.items()
        ],
        description=(model.__doc__ or "").strip() or None,
    )


class Model(BaseModel):
    """
    Base class of declarative entities.

    Set ``__abstract__ = True`` on intermediate base classes that should not
    be validated as entities themselves.
    """

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    __tablename__: ClassVar[Optional[str]] = None
    __entity__: ClassVar[Entity]

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        if cls.__dict__.get("__abstract__", False):
            return
        cls.__entity__ = build_entity(entity_definition_from_model(cls))
        logger.debug("Declared entity %r", cls.__entity__)

    # -- Generated operation surface ----------------------------------------

    @classmethod
    def repository(cls, executor: "Executor") -> Repository:
        return repository_for(cls)(executor)

    @classmethod
    def select(cls, executor: Optional["Executor"] = None) -> SelectBuilder:
        return repository_for(cls).select_builder_class(executor)

    async def save(self, executor: "Executor") -> Any:
        return await type(self).repository(executor).save(self)

    async def delete(self, executor: "Executor") -> None:
        await type(self).repository(executor).delete(self)


__all__: List[str] = [
    "Column",
    "Model",
    "column",
    "entity_definition_from_model",
]
