"""
tests/test_crud.py
Unit tests for ormgen.crud: statement compilation per dialect and the
repository operations (save/insert/update/delete and the field-scoped
lookups), run against the recording executor.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta
from typing import Annotated, Any, Dict, Optional
from uuid import UUID, uuid4

import pytest

from conftest import FIXED_NOW, USER_COLUMNS, RecordingExecutor
from ormgen import Column, Model
from ormgen.crud import (
    CrudStatements,
    Repository,
    compile_statements,
    generate_repository,
    repository_for,
)
from ormgen.dialects import MYSQL, POSTGRESQL, SQLITE, PlaceholderStyle
from ormgen.exceptions import NoRowAffectedError
from ormgen.models import EntityDefinition
from ormgen.validators import build_entity

_ticks = itertools.count()


def tick() -> datetime:
    return datetime(2024, 1, 1) + timedelta(seconds=next(_ticks))


class Stamped(Model):
    id: Annotated[UUID, Column(pk=True, new=uuid4)] = UUID(int=0)
    created: Annotated[Optional[datetime], Column(created_at=True, new=tick)] = None
    modified: Annotated[Optional[datetime], Column(updated_at=True, new=tick)] = None


_generator_calls: list = []


def tracked_now() -> datetime:
    _generator_calls.append("tracked_now")
    return FIXED_NOW


class Audited(Model):
    id: Annotated[UUID, Column(pk=True, new=uuid4)] = UUID(int=0)
    code: Annotated[str, Column(readonly=True, by=True)] = ""
    opened: Annotated[
        Optional[datetime], Column(readonly=True, created_at=True, new=tracked_now)
    ] = None
    touched: Annotated[
        Optional[datetime], Column(readonly=True, updated_at=True, new=tracked_now)
    ] = None


class Note(Model):
    id: Annotated[int, Column(pk=True, readonly=True)] = 0
    body: str = ""


class NoteRepository(Repository):
    model = Note
    precompiled = compile_statements(Note.__entity__, POSTGRESQL)


STORED_ID: UUID = UUID("12345678-1234-5678-1234-567812345678")


# ===========================================================================
# Statement compilation
# ===========================================================================


class TestCompileStatements:
    def test_user_sqlite(self, user_model: Any) -> None:
        statements = compile_statements(user_model.__entity__, SQLITE)
        assert statements.insert_sql == (
            "INSERT INTO users (id, email, display_name, karma, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?, ?) RETURNING {USER_COLUMNS}"
        )
        assert statements.update_sql == (
            "UPDATE users SET email = ?, display_name = ?, karma = ?, created_at = ?, "
            f"updated_at = ? WHERE id = ? RETURNING {USER_COLUMNS}"
        )
        assert statements.delete_sql == "DELETE FROM users WHERE id = ?"
        assert statements.insert_fields == (
            "id", "email", "nickname", "karma", "created_at", "updated_at",
        )
        assert statements.update_fields == (
            "email", "nickname", "karma", "created_at", "updated_at",
        )

    def test_user_postgresql_numbers_placeholders(self, user_model: Any) -> None:
        statements = compile_statements(user_model.__entity__, POSTGRESQL)
        assert "VALUES ($1, $2, $3, $4, $5, $6) RETURNING" in statements.insert_sql
        assert "updated_at = $5 WHERE id = $6 RETURNING" in statements.update_sql
        assert statements.delete_sql == "DELETE FROM users WHERE id = $1"

    def test_user_mysql_has_no_returning(self, user_model: Any) -> None:
        statements = compile_statements(user_model.__entity__, MYSQL)
        assert "RETURNING" not in statements.insert_sql
        assert statements.update_sql.endswith("WHERE id = ?")
        assert not statements.returning

    def test_transient_never_rendered(self, user_model: Any, order_model: Any) -> None:
        for model, name in ((user_model, "login_attempts"), (order_model, "note")):
            statements = compile_statements(model.__entity__, SQLITE)
            rendered = [
                statements.insert_sql,
                statements.update_sql,
                statements.delete_sql,
                *statements.find_by_sql.values(),
                *statements.delete_by_sql.values(),
            ]
            assert not any(name in sql for sql in rendered)

    def test_readonly_key_excluded_from_insert_and_set(self, order_model: Any) -> None:
        statements = compile_statements(order_model.__entity__, SQLITE)
        assert statements.insert_sql == (
            "INSERT INTO orders (customer, total) VALUES (?, ?) RETURNING id, customer, total"
        )
        assert statements.update_sql == (
            "UPDATE orders SET customer = ?, total = ? WHERE id = ? RETURNING id, customer, total"
        )

    def test_readonly_wins_over_every_other_role(self) -> None:
        statements = compile_statements(Audited.__entity__, SQLITE)
        assert statements.insert_sql == (
            "INSERT INTO auditeds (id) VALUES (?) RETURNING id, code, opened, touched"
        )
        assert statements.insert_fields == ("id",)
        assert statements.update_sql is None
        assert sorted(statements.find_by_sql) == ["code", "id", "opened", "touched"]

    def test_lookup_statements(self, user_model: Any) -> None:
        statements = compile_statements(user_model.__entity__, SQLITE)
        assert sorted(statements.find_by_sql) == ["created_at", "email", "id", "updated_at"]
        assert statements.find_by_sql["email"] == "SELECT * FROM users WHERE email = ?"
        assert statements.delete_by_sql["email"] == "DELETE FROM users WHERE email = ?"

    def test_nothing_to_update(self, tag_model: Any) -> None:
        statements = compile_statements(tag_model.__entity__, SQLITE)
        assert statements.update_sql is None
        assert statements.insert_sql == "INSERT INTO tags (label) VALUES (?) RETURNING label"

    def test_empty_insert(self) -> None:
        entity = build_entity(
            EntityDefinition.model_validate(
                {"name": "Counter", "fields": [{"name": "id", "type": "int", "pk": True, "readonly": True}]}
            )
        )
        assert compile_statements(entity, SQLITE).insert_sql == (
            "INSERT INTO counters DEFAULT VALUES RETURNING id"
        )
        assert compile_statements(entity, MYSQL).insert_sql == "INSERT INTO counters () VALUES ()"

    def test_reserved_names_quoted(self) -> None:
        entity = build_entity(
            EntityDefinition.model_validate(
                {
                    "name": "Slot",
                    "rename": "order",
                    "fields": [
                        {"name": "id", "type": "int", "pk": True, "readonly": True},
                        {"name": "group", "type": "str", "by": True},
                    ],
                }
            )
        )
        statements = compile_statements(entity, MYSQL)
        assert statements.insert_sql == "INSERT INTO `order` (`group`) VALUES (?)"
        assert statements.find_by_sql["group"] == "SELECT * FROM `order` WHERE `group` = ?"

    def test_matches(self, user_model: Any) -> None:
        statements: CrudStatements = compile_statements(user_model.__entity__, MYSQL)
        assert statements.matches(MYSQL)
        assert not statements.matches(MYSQL.with_placeholder_style(PlaceholderStyle.FORMAT))
        assert not statements.matches(SQLITE)


# ===========================================================================
# Value preparation
# ===========================================================================


class TestValues:
    def test_generated_key_and_timestamps(self, user_model: Any, recorder: RecordingExecutor) -> None:
        repo = user_model.repository(recorder)
        values = repo.insert_values(user_model(email="a@x.com"))
        assert isinstance(values["id"], UUID)
        assert values["id"] != UUID(int=0)
        assert values["created_at"] == FIXED_NOW
        assert values["updated_at"] == FIXED_NOW
        assert "login_attempts" not in values

    def test_assigned_values_are_kept(self, user_model: Any, recorder: RecordingExecutor) -> None:
        created = datetime(2020, 5, 5)
        values = user_model.repository(recorder).insert_values(
            user_model(id=STORED_ID, created_at=created)
        )
        assert values["id"] == STORED_ID
        assert values["created_at"] == created

    def test_timestamps_share_one_generated_value(self, recorder: RecordingExecutor) -> None:
        values = Stamped.repository(recorder).insert_values(Stamped())
        assert values["created"] == values["modified"]

    def test_update_refreshes_updated_at_only(self, recorder: RecordingExecutor) -> None:
        repo = Stamped.repository(recorder)
        first = repo.insert_values(Stamped())
        instance = Stamped(id=uuid4(), created=first["created"], modified=first["modified"])
        values = repo.update_values(instance)
        assert values["created"] == first["created"]
        assert values["modified"] > first["modified"]
        assert "id" not in values

    def test_readonly_generators_never_called(self, recorder: RecordingExecutor) -> None:
        _generator_calls.clear()
        repo = Audited.repository(recorder)
        inserted = repo.insert_values(Audited(code="c-1"))
        assert list(inserted) == ["id"]
        assert repo.update_values(Audited(id=uuid4(), code="c-2")) == {}
        assert _generator_calls == []

    def test_is_new(self, user_model: Any, recorder: RecordingExecutor) -> None:
        repo = user_model.repository(recorder)
        assert repo.is_new(user_model())
        assert not repo.is_new(user_model(id=STORED_ID))


# ===========================================================================
# Operations
# ===========================================================================


class TestSave:
    @pytest.mark.asyncio
    async def test_new_instance_is_inserted(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        recorder.queue(user_row)
        instance = user_model(email="ada@example.com", nickname="ada", login_attempts=2)
        stored = await user_model.repository(recorder).save(instance)

        (kind, sql, params), = recorder.calls
        assert kind == "fetch"
        assert sql.startswith("INSERT INTO users")
        assert params[1:] == ("ada@example.com", "ada", 0, FIXED_NOW, FIXED_NOW)
        assert stored.id == STORED_ID
        assert stored.login_attempts == 2

    @pytest.mark.asyncio
    async def test_assigned_key_is_updated(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        recorder.queue(user_row)
        created = datetime(2020, 1, 1)
        instance = user_model(id=STORED_ID, email="ada@example.com", nickname="ada", created_at=created)
        await user_model.repository(recorder).save(instance)

        (kind, sql, params), = recorder.calls
        assert sql.startswith("UPDATE users SET email = ?")
        assert params == ("ada@example.com", "ada", 0, created, FIXED_NOW, STORED_ID)

    @pytest.mark.asyncio
    async def test_readonly_key_never_bound(self, order_model: Any, recorder: RecordingExecutor) -> None:
        recorder.queue({"id": 7, "customer": "c", "total": 5})
        stored = await order_model.repository(recorder).save(order_model(customer="c", total=5, note="n"))
        assert recorder.calls[0][2] == ("c", 5)
        assert stored.id == 7
        assert stored.note == "n"

    @pytest.mark.asyncio
    async def test_update_of_missing_row(self, user_model: Any, recorder: RecordingExecutor) -> None:
        with pytest.raises(NoRowAffectedError) as exc_info:
            await user_model.repository(recorder).update(user_model(id=STORED_ID))
        assert exc_info.value.statement.startswith("UPDATE users")

    @pytest.mark.asyncio
    async def test_insert_without_returned_row(self, order_model: Any, recorder: RecordingExecutor) -> None:
        with pytest.raises(NoRowAffectedError):
            await order_model.repository(recorder).insert(order_model(customer="c"))


class TestWithoutReturning:
    @pytest.mark.asyncio
    async def test_insert_reloads_by_last_insert_id(self, order_model: Any) -> None:
        executor = RecordingExecutor(MYSQL, last_insert_id=42)
        executor.queue({"id": 42, "customer": "c", "total": 5})
        stored = await order_model.repository(executor).save(order_model(customer="c", total=5))
        assert executor.calls == [
            ("execute", "INSERT INTO orders (customer, total) VALUES (?, ?)", ("c", 5)),
            ("fetch", "SELECT * FROM orders WHERE id = ?", (42,)),
        ]
        assert stored.id == 42

    @pytest.mark.asyncio
    async def test_insert_reloads_by_generated_key(self, user_model: Any, user_row: Dict[str, Any]) -> None:
        executor = RecordingExecutor(MYSQL)
        executor.queue(user_row)
        await user_model.repository(executor).save(user_model(email="a@x.com"))
        generated = executor.calls[0][2][0]
        assert executor.calls[1] == ("fetch", "SELECT * FROM users WHERE id = ?", (generated,))

    @pytest.mark.asyncio
    async def test_update_of_missing_row(self, order_model: Any) -> None:
        executor = RecordingExecutor(MYSQL, rowcount=0)
        with pytest.raises(NoRowAffectedError):
            await order_model.repository(executor).save(order_model(id=3, customer="c"))

    @pytest.mark.asyncio
    async def test_update_returns_reloaded_row(self, order_model: Any) -> None:
        executor = RecordingExecutor(MYSQL)
        executor.queue({"id": 3, "customer": "d", "total": 1})
        stored = await order_model.repository(executor).save(order_model(id=3, customer="d", total=1))
        assert executor.statements == [
            "UPDATE orders SET customer = ?, total = ? WHERE id = ?",
            "SELECT * FROM orders WHERE id = ?",
        ]
        assert stored.customer == "d"


class TestNothingToUpdate:
    @pytest.mark.asyncio
    async def test_existing_row_is_reloaded(self, tag_model: Any, recorder: RecordingExecutor) -> None:
        recorder.queue({"label": "x"})
        stored = await tag_model.repository(recorder).save(tag_model(label="x"))
        assert recorder.statements == ["SELECT * FROM tags WHERE label = ?"]
        assert stored.label == "x"

    @pytest.mark.asyncio
    async def test_missing_row(self, tag_model: Any, recorder: RecordingExecutor) -> None:
        with pytest.raises(NoRowAffectedError):
            await tag_model.repository(recorder).save(tag_model(label="x"))


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_key(self, user_model: Any, recorder: RecordingExecutor) -> None:
        await user_model.repository(recorder).delete(user_model(id=STORED_ID))
        assert recorder.calls == [("execute", "DELETE FROM users WHERE id = ?", (STORED_ID,))]

    @pytest.mark.asyncio
    async def test_delete_of_missing_row(self, user_model: Any) -> None:
        executor = RecordingExecutor(rowcount=0)
        with pytest.raises(NoRowAffectedError):
            await user_model.repository(executor).delete(user_model(id=STORED_ID))

    @pytest.mark.asyncio
    async def test_delete_by_field_returns_count(self, user_model: Any) -> None:
        executor = RecordingExecutor(rowcount=3)
        count = await user_model.repository(executor).delete_by_email("a@x.com")
        assert count == 3
        assert executor.statements == ["DELETE FROM users WHERE email = ?"]


class TestLookups:
    @pytest.mark.asyncio
    async def test_find_by_returns_first(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        other = dict(user_row, email="b@x.com")
        recorder.queue(user_row, other)
        found = await user_model.repository(recorder).find_by_email("ada@example.com")
        assert found.email == "ada@example.com"
        assert recorder.calls == [
            ("fetch", "SELECT * FROM users WHERE email = ?", ("ada@example.com",))
        ]

    @pytest.mark.asyncio
    async def test_find_by_none(self, user_model: Any, recorder: RecordingExecutor) -> None:
        assert await user_model.repository(recorder).find_by_id(STORED_ID) is None

    @pytest.mark.asyncio
    async def test_find_all_by(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        recorder.queue(user_row, dict(user_row, id=str(uuid4())))
        found = await user_model.repository(recorder).find_all_by_created_at(FIXED_NOW)
        assert len(found) == 2
        assert recorder.calls[0][2] == (FIXED_NOW,)


# ===========================================================================
# Repository classes
# ===========================================================================


class TestRepositoryClasses:
    def test_generated_once(self, user_model: Any) -> None:
        assert repository_for(user_model) is repository_for(user_model)
        assert repository_for(user_model).__name__ == "UserRepository"

    def test_generated_method_names(self, user_model: Any) -> None:
        repository = repository_for(user_model)
        for prefix in ("find_by_", "find_all_by_", "delete_by_"):
            for name in ("id", "email", "created_at", "updated_at"):
                assert callable(getattr(repository, prefix + name))
        assert not hasattr(repository, "find_by_nickname")
        assert not hasattr(repository, "find_by_login_attempts")

    def test_declared_class_wins(self) -> None:
        assert repository_for(Note) is NoteRepository

    def test_precompiled_used_when_matching(self) -> None:
        assert NoteRepository.statements_for(POSTGRESQL) is NoteRepository.precompiled
        compiled = NoteRepository.statements_for(SQLITE)
        assert compiled is not NoteRepository.precompiled
        assert compiled is NoteRepository.statements_for(SQLITE)
        assert compiled.insert_sql == "INSERT INTO notes (body) VALUES (?) RETURNING id, body"

    def test_generate_repository_builds_select_class(self, order_model: Any) -> None:
        repository = generate_repository(order_model)
        assert repository.select_builder_class.__name__ == "OrderSelect"
        assert repository.model is order_model
