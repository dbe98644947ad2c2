"""
tests/conftest.py
Shared fixtures for the ormgen test suite.

No mocking libraries are used: store-free tests run against a recording
executor defined here, store tests against a real SQLite file inside
pytest's tmp_path.
"""

import copy
import pathlib
from datetime import datetime
from typing import Annotated, Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

import pytest
import yaml

from ormgen import Column, Model
from ormgen.dialects import SQLITE, Dialect
from ormgen.executors import ExecutionResult


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"

FIXED_NOW: datetime = datetime(2024, 1, 2, 3, 4, 5)


def fixed_now() -> datetime:
    return FIXED_NOW


# ---------------------------------------------------------------------------
# Sample entities
# ---------------------------------------------------------------------------


class User(Model):
    """Registered account."""

    id: Annotated[UUID, Column(pk=True, new="uuid:uuid4")] = UUID(int=0)
    email: Annotated[str, Column(by=True)] = ""
    nickname: Annotated[str, Column(rename="display_name")] = ""
    karma: int = 0
    login_attempts: Annotated[int, Column(transient=True)] = 0
    created_at: Annotated[Optional[datetime], Column(created_at=True, new=fixed_now)] = None
    updated_at: Annotated[Optional[datetime], Column(updated_at=True, new=fixed_now)] = None


class Order(Model):
    id: Annotated[int, Column(pk=True, readonly=True)] = 0
    customer: Annotated[str, Column(by=True)] = ""
    total: int = 0
    note: Annotated[str, Column(transient=True)] = ""


class Tag(Model):
    """Entity with nothing to update besides its key."""

    label: Annotated[str, Column(pk=True)] = ""


USER_COLUMNS: str = "id, email, display_name, karma, created_at, updated_at"


# ---------------------------------------------------------------------------
# Recording executor
# ---------------------------------------------------------------------------


class RecordingExecutor:
    """
    Executor double: records every statement and answers ``fetch_all`` from
    a queue of canned row lists.
    """

    def __init__(
        self,
        dialect: Dialect = SQLITE,
        *,
        rowcount: int = 1,
        last_insert_id: Any = None,
    ) -> None:
        self.dialect: Dialect = dialect
        self.rowcount: int = rowcount
        self.last_insert_id: Any = last_insert_id
        self.calls: List[Tuple[str, str, Tuple[Any, ...]]] = []
        self._rows: List[List[Dict[str, Any]]] = []

    def queue(self, *rows: Dict[str, Any]) -> "RecordingExecutor":
        self._rows.append(list(rows))
        return self

    @property
    def statements(self) -> List[str]:
        return [sql for _, sql, _ in self.calls]

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Mapping[str, Any]]:
        self.calls.append(("fetch", sql, tuple(params)))
        return self._rows.pop(0) if self._rows else []

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecutionResult:
        self.calls.append(("execute", sql, tuple(params)))
        return ExecutionResult(rowcount=self.rowcount, last_insert_id=self.last_insert_id)


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_model() -> type:
    return User


@pytest.fixture()
def order_model() -> type:
    return Order


@pytest.fixture()
def tag_model() -> type:
    return Tag


@pytest.fixture()
def recorder() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture()
def user_row() -> Dict[str, Any]:
    """A users row as SQLite returns it."""
    return {
        "id": "12345678-1234-5678-1234-567812345678",
        "email": "ada@example.com",
        "display_name": "ada",
        "karma": 3,
        "created_at": "2024-01-02 03:04:05",
        "updated_at": "2024-01-02 03:04:05",
    }


# ---------------------------------------------------------------------------
# Raw schema data fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_schema_dict() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def schema_dict(raw_schema_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_schema_dict)


@pytest.fixture()
def schema_yaml_path(schema_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "schema.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(schema_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def minimal_entity_dict() -> Dict[str, Any]:
    """Smallest valid entity: a generated key and one lookup field."""
    return {
        "name": "Widget",
        "fields": [
            {"name": "id", "type": "uuid", "pk": True, "new": "uuid:uuid4"},
            {"name": "sku", "type": "str", "by": True},
        ],
    }


@pytest.fixture()
def minimal_schema_dict(minimal_entity_dict: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "config": {"project_name": "minimal", "package_name": "widgets_pkg"},
        "entities": [minimal_entity_dict],
    }
