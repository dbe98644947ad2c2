"""
tests/test_declarative.py
Unit tests for declarative entities: Column markers, class-creation
validation and the operation surface attached to every Model.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Dict, Optional
from uuid import UUID

import pytest

from conftest import RecordingExecutor
from ormgen import Column, Model, column
from ormgen.exceptions import SchemaError
from ormgen.models import FieldType, Role


class TestColumnMarker:
    def test_roles_in_declaration_order(self) -> None:
        marker = Column(pk=True, readonly=True)
        assert marker.roles() == [Role.PRIMARY_KEY, Role.READONLY]

    def test_plain(self) -> None:
        assert Column().roles() == []

    def test_shorthand(self) -> None:
        assert column(by=True, rename="x") == Column(by=True, rename="x")


class TestEntityFromModel:
    def test_fields_and_roles(self, user_model: Any) -> None:
        entity = user_model.__entity__
        assert entity.name == "User"
        assert entity.table_name == "users"
        assert entity.primary_key.name == "id"
        assert entity.get_field("nickname").column == "display_name"
        assert entity.get_field("login_attempts").is_transient
        assert entity.get_field("created_at").is_created_at
        assert entity.get_field("karma").roles == frozenset()

    def test_types_and_defaults(self) -> None:
        class Invoice(Model):
            id: Annotated[int, Column(pk=True, readonly=True)] = 0
            amount: Decimal = Decimal("0")
            due: Optional[date] = None
            paid: bool = False
            extra: Dict[str, Any] = {}

        entity = Invoice.__entity__
        assert entity.get_field("amount").field_type is FieldType.DECIMAL
        assert entity.get_field("due").field_type is FieldType.DATE
        assert entity.get_field("due").optional
        assert entity.get_field("paid").field_type is FieldType.BOOL
        assert entity.get_field("extra").field_type is FieldType.JSON
        assert entity.table_name == "invoices"

    def test_tablename_override(self) -> None:
        class Person(Model):
            __tablename__ = "people"

            id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)

        assert Person.__entity__.table_name == "people"
        assert "__tablename__" not in Person.model_fields

    def test_tablename_not_inherited(self) -> None:
        class Base(Model):
            __abstract__ = True
            __tablename__ = "bases"

            id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)

        class Account(Base):
            name: str = ""

        assert Account.__entity__.table_name == "accounts"
        assert [f.name for f in Account.__entity__.fields] == ["id", "name"]

    def test_abstract_base_is_not_validated(self) -> None:
        class Timestamps(Model):
            __abstract__ = True

            note: str = ""

        assert "__entity__" not in Timestamps.__dict__

    def test_invalid_declaration_raises_during_class_creation(self) -> None:
        with pytest.raises(SchemaError) as exc_info:

            class Broken(Model):
                name: str = ""

        assert exc_info.value.entity == "Broken"
        assert "MISSING_PRIMARY_KEY" in str(exc_info.value)

    def test_transient_with_role_rejected(self) -> None:
        with pytest.raises(SchemaError, match="TRANSIENT_CONFLICT"):

            class Draft(Model):
                id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)
                scratch: Annotated[str, Column(transient=True, by=True)] = ""

    def test_unresolvable_generator_rejected(self) -> None:
        with pytest.raises(SchemaError, match="UNRESOLVED_REFERENCE"):

            class Ghost(Model):
                id: Annotated[str, Column(pk=True, new="no_such_module_xyz:make")] = ""

    def test_lookup_field_shadowing_builder_method_rejected(self) -> None:
        with pytest.raises(SchemaError, match="METHOD_NAME_CONFLICT"):

            class Range(Model):
                id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)
                between: Annotated[int, Column(by=True)] = 0

    def test_custom_is_set_check(self) -> None:
        class Ticket(Model):
            code: Annotated[str, Column(pk=True, new="uuid:uuid4", is_set=bool)] = "pending"

        spec = Ticket.__entity__.primary_key
        assert spec.is_set("pending")
        assert not spec.is_set("")


class TestOperationSurface:
    @pytest.mark.asyncio
    async def test_save_and_delete(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        recorder.queue(user_row)
        stored = await user_model(email="ada@example.com").save(recorder)
        assert isinstance(stored, user_model)
        await stored.delete(recorder)
        assert [kind for kind, _, _ in recorder.calls] == ["fetch", "execute"]
        assert recorder.calls[1][1] == "DELETE FROM users WHERE id = ?"

    def test_select_is_entity_specific(self, user_model: Any, order_model: Any) -> None:
        assert type(user_model.select()).__name__ == "UserSelect"
        assert type(order_model.select()).__name__ == "OrderSelect"

    def test_repository_bound_to_executor(self, user_model: Any, recorder: RecordingExecutor) -> None:
        repo = user_model.repository(recorder)
        assert repo.executor is recorder
        assert repo.entity is user_model.__entity__
