"""
Pytest fixtures and test configuration for gymsync tests.
"""

import copy
import uuid
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from gymsync.config import get_settings
from gymsync.storage.entity_store import EntityStore, FlagStore, KeyValueStore
from gymsync.types import (
    CustomExercise,
    Session,
    SessionExercise,
    StrengthSet,
    StrengthTemplateExercise,
    Template,
    WeightEntry,
)

USER_ID = "11111111-1111-4111-8111-111111111111"


def new_id() -> str:
    return str(uuid.uuid4())


def make_template(template_id: Optional[str] = None, name: str = "Push Day", exercises=None) -> Template:
    if exercises is None:
        exercises = [
            StrengthTemplateExercise(exercise_id="bench-press", target_sets=3, target_reps=8),
            StrengthTemplateExercise(exercise_id="overhead-press", target_sets=3, target_reps=10),
        ]
    return Template(
        id=template_id or new_id(),
        name=name,
        exercises=exercises,
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )


def make_session(
    session_id: Optional[str] = None,
    template_id: Optional[str] = None,
    exercise_ids=("bench-press",),
    completed: bool = True,
) -> Session:
    exercises = [
        SessionExercise(
            id=new_id(),
            exercise_id=exercise_id,
            target_sets=3,
            target_reps=8,
            sets=[StrengthSet(weight=135, reps=8, completed_at="2024-01-01T10:05:00+00:00")],
        )
        for exercise_id in exercise_ids
    ]
    return Session(
        id=session_id or new_id(),
        name="Push Day",
        started_at="2024-01-01T10:00:00+00:00",
        completed_at="2024-01-01T11:00:00+00:00" if completed else None,
        template_id=template_id,
        exercises=exercises,
    )


def make_custom_exercise(exercise_id: Optional[str] = None, name: str = "Landmine Press") -> CustomExercise:
    return CustomExercise(id=exercise_id or new_id(), name=name, muscle_groups=["shoulders"])


# =============================================================================
# Fake RemoteStore
# =============================================================================


class FakeRemote:
    """In-memory RemoteStore that records every call."""

    def __init__(self):
        self.profile: Optional[Dict[str, Any]] = None
        self.templates: List[Template] = []
        self.sessions: List[Session] = []
        self.active_session: Optional[Session] = None
        self.custom_exercises: List[CustomExercise] = []
        self.weight_entries: List[WeightEntry] = []
        self.calls: List[tuple] = []
        self.fetch_errors: Dict[str, Exception] = {}
        self.push_errors: Dict[str, Exception] = {}
        self.dedupe_fixed = 0

    def calls_to(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    def push_calls(self) -> List[tuple]:
        return [c for c in self.calls if not c[0].startswith("fetch_")]

    async def _fetch(self, name: str, value):
        self.calls.append((name,))
        if name in self.fetch_errors:
            raise self.fetch_errors[name]
        return copy.deepcopy(value)

    async def _push(self, name: str, *args) -> bool:
        self.calls.append((name, *args))
        if name in self.push_errors:
            raise self.push_errors[name]
        return True

    async def fetch_profile(self, user_id):
        return await self._fetch("fetch_profile", self.profile)

    async def fetch_templates(self, user_id):
        return await self._fetch("fetch_templates", self.templates)

    async def fetch_sessions(self, user_id):
        return await self._fetch("fetch_sessions", self.sessions)

    async def fetch_active_session(self, user_id):
        return await self._fetch("fetch_active_session", self.active_session)

    async def fetch_custom_exercises(self, user_id):
        return await self._fetch("fetch_custom_exercises", self.custom_exercises)

    async def fetch_weight_entries(self, user_id):
        return await self._fetch("fetch_weight_entries", self.weight_entries)

    async def add_template(self, user_id, template):
        return await self._push("add_template", template)

    async def update_template(self, user_id, template):
        return await self._push("update_template", template)

    async def delete_template(self, user_id, template_id):
        return await self._push("delete_template", template_id)

    async def reorder_templates(self, user_id, template_ids):
        return await self._push("reorder_templates", template_ids)

    async def add_session(self, user_id, session):
        return await self._push("add_session", session)

    async def update_session(self, user_id, session):
        return await self._push("update_session", session)

    async def delete_session(self, user_id, session_id):
        return await self._push("delete_session", session_id)

    async def reorder_sessions(self, user_id, session_ids):
        return await self._push("reorder_sessions", session_ids)

    async def set_active_session(self, user_id, session):
        return await self._push("set_active_session", session)

    async def add_custom_exercise(self, user_id, exercise):
        return await self._push("add_custom_exercise", exercise)

    async def update_custom_exercise(self, user_id, exercise):
        return await self._push("update_custom_exercise", exercise)

    async def delete_custom_exercise(self, user_id, exercise_id):
        return await self._push("delete_custom_exercise", exercise_id)

    async def upsert_weight_entry(self, user_id, entry):
        return await self._push("upsert_weight_entry", entry)

    async def delete_weight_entry(self, user_id, date):
        return await self._push("delete_weight_entry", date)

    async def update_profile(self, user_id, updates):
        return await self._push("update_profile", updates)

    async def dedupe_template_exercises(self, user_id):
        self.calls.append(("dedupe_template_exercises",))
        if "dedupe_template_exercises" in self.push_errors:
            raise self.push_errors["dedupe_template_exercises"]
        return self.dedupe_fixed


# =============================================================================
# Fake Supabase async client
# =============================================================================

# parent table -> (child table, foreign key column)
NESTED = {
    "workout_templates": ("template_exercises", "template_id"),
    "workout_sessions": ("session_exercises", "session_id"),
    "session_exercises": ("completed_sets", "session_exercise_id"),
}


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable query builder mimicking postgrest's async request builder."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self.client = client
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.limit_to: Optional[int] = None

    def select(self, columns="*"):
        self.columns = columns
        return self

    def insert(self, payload):
        self.action, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.action, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.action, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, lambda v, value=value: v == value))
        return self

    def in_(self, column, values):
        self.filters.append((column, lambda v, values=tuple(values): v in values))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_to = n
        return self

    def _matches(self, row) -> bool:
        return all(test(row.get(column)) for column, test in self.filters)

    async def execute(self):
        self.client.queries.append(self)
        error = self.client.errors.get((self.table, self.action))
        if error is not None:
            raise error
        handler = getattr(self, f"_{self.action}")
        return FakeResponse(handler())

    def _with_children(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        if table in NESTED:
            child_table, fk = NESTED[table]
            if child_table in self.columns:
                row[child_table] = [
                    self._with_children(child_table, child)
                    for child in self.client.tables.get(child_table, [])
                    if child.get(fk) == row.get("id")
                ]
        return row

    def _select(self):
        rows = [r for r in self.client.tables.get(self.table, []) if self._matches(r)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda r: r.get(column) or 0, reverse=desc)
        if self.limit_to:
            rows = rows[: self.limit_to]
        return [self._with_children(self.table, r) for r in rows]

    def _insert(self):
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.client.tables.setdefault(self.table, [])
        existing = {r.get("id") for r in table if r.get("id")}
        for row in rows:
            if row.get("id") and row["id"] in existing:
                raise APIError({"message": "duplicate key value", "code": "23505"})
        inserted = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", str(uuid.uuid4()))
            table.append(row)
            inserted.append(row)
        return inserted

    def _update(self):
        updated = []
        for row in self.client.tables.get(self.table, []):
            if self._matches(row):
                row.update(self.payload)
                updated.append(row)
        return updated

    def _upsert(self):
        keys = (self.on_conflict or "id").split(",")
        table = self.client.tables.setdefault(self.table, [])
        for row in table:
            if all(row.get(k) == self.payload.get(k) for k in keys):
                row.update(self.payload)
                return [row]
        table.append(dict(self.payload))
        return [self.payload]

    def _delete(self):
        table = self.client.tables.get(self.table, [])
        removed = [r for r in table if self._matches(r)]
        self.client.tables[self.table] = [r for r in table if not self._matches(r)]
        for row in removed:
            self.client.cascade(self.table, row.get("id"))
        return removed


class FakeSupabaseClient:
    """Stands in for ``supabase.AsyncClient`` in adapter tests."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.queries: List[FakeQuery] = []
        self.errors: Dict[tuple, Exception] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def cascade(self, table: str, parent_id: Optional[str]) -> None:
        if table not in NESTED:
            return
        child_table, fk = NESTED[table]
        children = self.tables.get(child_table, [])
        removed = [c for c in children if c.get(fk) == parent_id]
        self.tables[child_table] = [c for c in children if c.get(fk) != parent_id]
        for child in removed:
            self.cascade(child_table, child.get("id"))

    def queries_for(self, table: str, action: Optional[str] = None) -> List[FakeQuery]:
        return [
            q for q in self.queries if q.table == table and (action is None or q.action == action)
        ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep log files and default stores inside the test's tmp dir."""
    home = tmp_path / "gymsync-home"
    monkeypatch.setenv("GYMSYNC_DATA_DIR", str(home))
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "gymsync.db"


@pytest.fixture
def store(db_path):
    return EntityStore.open(db_path)


@pytest.fixture
def flags(store):
    return FlagStore(store.kv)


@pytest.fixture
def kv(db_path):
    return KeyValueStore(db_path)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def supabase_client():
    return FakeSupabaseClient()
