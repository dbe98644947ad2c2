"""
tests/test_query.py
Unit tests for the select builder: rendering order, placeholder styles,
builder lifecycle and execution through an executor.
"""

from __future__ import annotations

from typing import Any, Dict

import pytest

from conftest import RecordingExecutor
from ormgen.dialects import MYSQL, POSTGRESQL, SQLITE
from ormgen.exceptions import QueryPreparationError, UnknownFieldError
from ormgen.predicates import Direction, Operator, OrderBy, Where
from ormgen.query import BuilderState, QueryPlan, SelectBuilder, Statement


class TestRendering:
    def test_reference_example_sqlite(self, user_model: Any) -> None:
        statement = (
            user_model.select()
            .where_equal_email("a@x.com")
            .order_by_created_at(Direction.DESC)
            .limit(10)
            .offset(5)
            .build(SQLITE)
        )
        assert statement.sql == (
            "SELECT * FROM users WHERE email = ? ORDER BY created_at DESC LIMIT 10 OFFSET 5"
        )
        assert statement.params == ("a@x.com",)

    def test_reference_example_postgresql(self, user_model: Any) -> None:
        statement = (
            user_model.select()
            .where_equal_email("a@x.com")
            .order_by_created_at(Direction.DESC)
            .limit(10)
            .offset(5)
            .build(POSTGRESQL)
        )
        assert statement.sql == (
            "SELECT * FROM users WHERE email = $1 ORDER BY created_at DESC LIMIT 10 OFFSET 5"
        )

    def test_empty_select(self, user_model: Any) -> None:
        assert user_model.select().build("sqlite").sql == "SELECT * FROM users"

    def test_predicates_joined_with_and_in_call_order(self, user_model: Any) -> None:
        statement = (
            user_model.select()
            .where_greater_than_created_at("2024-01-01")
            .where_email(Operator.NOT_EQUAL, "b@x.com")
            .build(POSTGRESQL)
        )
        assert statement.sql == (
            "SELECT * FROM users WHERE created_at > $1 AND email <> $2"
        )
        assert statement.params == ("2024-01-01", "b@x.com")

    def test_between_binds_two_values(self, order_model: Any) -> None:
        statement = order_model.select().where_between_id(100, 200).build(POSTGRESQL)
        assert statement.sql == "SELECT * FROM orders WHERE id BETWEEN $1 AND $2"
        assert statement.params == (100, 200)

    def test_between_via_generic_where(self, order_model: Any) -> None:
        statement = order_model.select().where("id", Where.BETWEEN, (1, 9)).build(SQLITE)
        assert statement.sql == "SELECT * FROM orders WHERE id BETWEEN ? AND ?"
        assert statement.params == (1, 9)

    def test_generic_between_uses_base_implementation(self, order_model: Any) -> None:
        class ShadowingSelect(type(order_model.select())):
            def where_between(self, operator: Any, value: Any) -> Any:
                raise AssertionError("subclass where_between must not be used")

        statement = ShadowingSelect().where("id", Operator.BETWEEN, (1, 2)).build(SQLITE)
        assert statement.sql == "SELECT * FROM orders WHERE id BETWEEN ? AND ?"
        assert statement.params == (1, 2)

    def test_group_by_before_order_by(self, user_model: Any) -> None:
        statement = (
            user_model.select()
            .order_by_email()
            .group_by_email()
            .build(SQLITE)
        )
        assert statement.sql == "SELECT * FROM users GROUP BY email ORDER BY email ASC"

    def test_asc_and_desc_modify_last_order(self, user_model: Any) -> None:
        statement = user_model.select().order_by("email").desc().build(SQLITE)
        assert statement.sql.endswith("ORDER BY email DESC")
        statement = (
            user_model.select().order_by("email", OrderBy.DESC).asc().build(SQLITE)
        )
        assert statement.sql.endswith("ORDER BY email ASC")

    def test_desc_without_order_by(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().desc()

    def test_reserved_table_name_quoted(self) -> None:
        plan = QueryPlan(table="order")
        assert plan.render(MYSQL).sql == "SELECT * FROM `order`"

    def test_offset_without_limit(self, user_model: Any) -> None:
        assert user_model.select().offset(3).build(SQLITE).sql == (
            "SELECT * FROM users LIMIT -1 OFFSET 3"
        )

    def test_operator_strings_accepted(self, user_model: Any) -> None:
        statement = user_model.select().where("email", "<=", "m").build(SQLITE)
        assert statement.sql == "SELECT * FROM users WHERE email <= ?"
        statement = user_model.select().where("email", "less_than", "m").build(SQLITE)
        assert statement.sql == "SELECT * FROM users WHERE email < ?"


class TestLifecycle:
    def test_state_transitions(self, user_model: Any) -> None:
        builder = user_model.select()
        assert builder.state is BuilderState.EMPTY
        builder.where_equal_email("x")
        assert builder.state is BuilderState.ACCUMULATING
        builder.build(SQLITE)
        assert builder.state is BuilderState.RENDERED

    def test_render_is_deterministic(self, user_model: Any) -> None:
        builder = user_model.select().where_equal_email("x").limit(2)
        first: Statement = builder.build(SQLITE)
        second: Statement = builder.build(SQLITE)
        assert first == second

    def test_mutation_after_render(self, user_model: Any) -> None:
        builder = user_model.select().where_equal_email("x")
        builder.build(SQLITE)
        with pytest.raises(QueryPreparationError, match="already rendered"):
            builder.limit(1)

    def test_builders_are_independent(self, user_model: Any) -> None:
        first = user_model.select().where_equal_email("x")
        second = user_model.select()
        assert second.build(SQLITE).sql == "SELECT * FROM users"
        assert first.build(SQLITE).params == ("x",)


class TestPreparationErrors:
    def test_unknown_field_suggests_close_match(self, user_model: Any) -> None:
        with pytest.raises(UnknownFieldError) as exc_info:
            user_model.select().where("emial", Operator.EQUAL, "x")
        assert exc_info.value.suggestions == ["email"]
        assert exc_info.value.to_dict()["suggestions"] == ["email"]

    def test_non_queryable_field(self, user_model: Any) -> None:
        with pytest.raises(UnknownFieldError):
            user_model.select().order_by("nickname")

    def test_transient_field(self, user_model: Any) -> None:
        with pytest.raises(UnknownFieldError):
            user_model.select().group_by("login_attempts")

    @pytest.mark.parametrize("value", [-1, 1.5, "3", True])
    def test_invalid_limit(self, user_model: Any, value: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().limit(value)

    def test_negative_offset(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().offset(-5)

    def test_bad_between_value(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().where("email", Operator.BETWEEN, "ab")

    @pytest.mark.parametrize("operator", Operator.comparisons())
    def test_none_comparison_rejected(self, user_model: Any, operator: Operator) -> None:
        with pytest.raises(QueryPreparationError, match="never match"):
            user_model.select().where("email", operator, None)

    def test_generated_method_rejects_none(self, user_model: Any) -> None:
        builder = user_model.select()
        with pytest.raises(QueryPreparationError):
            builder.where_equal_email(None)
        assert builder.state is BuilderState.EMPTY

    def test_unknown_operator(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().where("email", "LIKE", "x%")

    def test_no_dialect_and_no_executor(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            user_model.select().build()

    def test_builder_without_model(self) -> None:
        with pytest.raises(QueryPreparationError):
            SelectBuilder()


class TestGeneratedMethods:
    def test_method_names(self, user_model: Any) -> None:
        builder_class = type(user_model.select())
        assert builder_class.__name__ == "UserSelect"
        for name in (
            "where_email",
            "where_equal_email",
            "where_not_equal_email",
            "where_less_than_id",
            "where_less_or_equal_id",
            "where_greater_than_updated_at",
            "where_greater_or_equal_updated_at",
            "where_between_created_at",
            "order_by_id",
            "group_by_updated_at",
        ):
            assert callable(getattr(builder_class, name)), name

    def test_no_methods_for_plain_or_transient_fields(self, user_model: Any) -> None:
        builder_class = type(user_model.select())
        assert not hasattr(builder_class, "where_equal_nickname")
        assert not hasattr(builder_class, "order_by_login_attempts")


class TestExecution:
    @pytest.mark.asyncio
    async def test_fetch_all_hydrates_rows(
        self, user_model: Any, recorder: RecordingExecutor, user_row: Dict[str, Any]
    ) -> None:
        recorder.queue(user_row)
        users = await user_model.select(recorder).where_equal_email("ada@example.com").fetch_all()
        assert recorder.calls == [
            ("fetch", "SELECT * FROM users WHERE email = ?", ("ada@example.com",))
        ]
        assert len(users) == 1
        assert isinstance(users[0], user_model)
        assert users[0].nickname == "ada"
        assert str(users[0].id) == user_row["id"]
        assert users[0].login_attempts == 0

    @pytest.mark.asyncio
    async def test_fetch_one_empty(self, user_model: Any, recorder: RecordingExecutor) -> None:
        assert await user_model.select(recorder).fetch_one() is None

    @pytest.mark.asyncio
    async def test_executor_dialect_used(self, user_model: Any) -> None:
        executor = RecordingExecutor(POSTGRESQL)
        await user_model.select().where_equal_email("x").fetch_all(executor)
        assert executor.statements == ["SELECT * FROM users WHERE email = $1"]

    @pytest.mark.asyncio
    async def test_fetch_without_executor(self, user_model: Any) -> None:
        with pytest.raises(QueryPreparationError):
            await user_model.select().fetch_all()
