"""SQLite-backed local entity store.

The whole app state is persisted as a single versioned JSON blob under one
key of a small key/value table, alongside the one-shot flags used by the
identifier migration and the dedup repair. Every mutation persists the new
snapshot and then notifies subscribers with ``(new_state, previous_state)``.
"""

import contextlib
import json
import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from gymsync.protocols import StoreCorruptError
from gymsync.storage.serializers import state_from_dict, state_to_dict
from gymsync.types import (
    AppState,
    CustomExercise,
    Session,
    Template,
    WeightEntry,
    utc_now,
)

logger = logging.getLogger(__name__)

STORE_KEY = "workout-app-storage"
STORE_VERSION = 1

UUID_MIGRATION_FLAG = "workout-app-uuid-migration-complete"
DEDUP_FLAG = "workout-app-dedup-complete"

# Weeks cycle through a five-week progressive overload block
WEEKS_PER_CYCLE = 5

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

StateListener = Callable[[AppState, AppState], None]


class KeyValueStore:
    """Tiny string key/value table in a SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on exception, always close."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utc_now()),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))


class FlagStore:
    """Durable boolean markers for one-shot jobs."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def is_set(self, name: str) -> bool:
        return self._kv.get(name) == "true"

    def set(self, name: str) -> None:
        self._kv.set(name, "true")

    def clear(self, name: str) -> None:
        self._kv.delete(name)


def _replace_by_id(items: List[Any], item: Any) -> List[Any]:
    return [item if existing.id == item.id else existing for existing in items]


class EntityStore:
    """In-memory app state with write-through persistence.

    Mutators never edit entities in place: each one builds a new snapshot,
    so subscribers can diff ``new`` against ``previous`` by identity and
    equality.
    """

    def __init__(self, kv: KeyValueStore, key: str = STORE_KEY):
        self._kv = kv
        self._key = key
        self._state = AppState()
        self._listeners: List[StateListener] = []

    @classmethod
    def open(cls, db_path: Path) -> "EntityStore":
        """Open (or create) a store file and load its snapshot."""
        store = cls(KeyValueStore(db_path))
        store.load()
        return store

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    # === Persistence ===

    def load(self) -> AppState:
        """Load the persisted snapshot, or start empty if none exists.

        Raises:
            StoreCorruptError: if the blob is not valid JSON or has an
                unexpected shape.
        """
        raw = self._kv.get(self._key)
        if raw is None:
            self._state = AppState()
            return self._state
        try:
            blob = json.loads(raw)
            version = blob.get("version", 0)
            if version > STORE_VERSION:
                raise ValueError(f"unsupported store version {version}")
            self._state = state_from_dict(blob.get("state") or {})
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise StoreCorruptError(f"Cannot decode {self._key}: {e}") from e
        logger.debug(
            f"Loaded store: {len(self._state.templates)} templates, "
            f"{len(self._state.sessions)} sessions"
        )
        return self._state

    def _persist(self, state: AppState) -> None:
        blob = {"state": state_to_dict(state), "version": STORE_VERSION}
        self._kv.set(self._key, json.dumps(blob))

    # === Core API ===

    def get_state(self) -> AppState:
        return self._state

    def set_state(
        self, updater: Optional[Callable[[AppState], AppState]] = None, **changes: Any
    ) -> AppState:
        """Apply an updater function or field changes and notify subscribers.

        Subscribers are only notified if the resulting snapshot is a
        different object from the current one.
        """
        prev = self._state
        new = updater(prev) if updater is not None else prev
        if changes:
            new = replace(new, **changes)
        if new is prev:
            return prev
        self._persist(new)
        self._state = new
        for listener in list(self._listeners):
            listener(new, prev)
        return new

    def replace_state(self, state: AppState) -> AppState:
        """Swap in a whole snapshot (used when committing a reconciliation)."""
        return self.set_state(lambda _: state)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> AppState:
        """Drop all local data (sign-out). One-shot flags are kept."""
        prev = self._state
        self._kv.delete(self._key)
        self._state = AppState()
        for listener in list(self._listeners):
            listener(self._state, prev)
        return self._state

    # === Templates ===

    def add_template(self, template: Template) -> AppState:
        return self.set_state(templates=[*self._state.templates, template])

    def update_template(self, template: Template) -> AppState:
        template = replace(template, updated_at=utc_now())
        return self.set_state(templates=_replace_by_id(self._state.templates, template))

    def delete_template(self, template_id: str) -> AppState:
        return self.set_state(
            templates=[t for t in self._state.templates if t.id != template_id]
        )

    def reorder_templates(self, template_ids: List[str]) -> AppState:
        by_id = {t.id: t for t in self._state.templates}
        ordered = [by_id[tid] for tid in template_ids if tid in by_id]
        seen = set(template_ids)
        ordered.extend(t for t in self._state.templates if t.id not in seen)
        return self.set_state(templates=ordered)

    def toggle_template_rotation(self, template_id: str) -> AppState:
        templates = [
            replace(t, in_rotation=not t.in_rotation, updated_at=utc_now())
            if t.id == template_id
            else t
            for t in self._state.templates
        ]
        return self.set_state(templates=templates)

    # === Sessions ===

    def add_session(self, session: Session) -> AppState:
        return self.set_state(sessions=[*self._state.sessions, session])

    def update_session(self, session: Session) -> AppState:
        return self.set_state(sessions=_replace_by_id(self._state.sessions, session))

    def delete_session(self, session_id: str) -> AppState:
        return self.set_state(sessions=[s for s in self._state.sessions if s.id != session_id])

    def set_active_session(self, session: Optional[Session]) -> AppState:
        return self.set_state(active_session=session)

    # === Preferences & profile fields ===

    def update_preferences(self, **fields: Any) -> AppState:
        return self.set_state(preferences=replace(self._state.preferences, **fields))

    def set_workout_goal(self, goal: str) -> AppState:
        return self.set_state(workout_goal=goal)

    def set_current_week(self, week: int) -> AppState:
        return self.set_state(current_week=week, week_started_at=utc_now())

    def advance_week(self) -> AppState:
        return self.set_current_week((self._state.current_week + 1) % WEEKS_PER_CYCLE)

    def set_has_completed_intro(self, completed: bool = True) -> AppState:
        return self.set_state(has_completed_intro=completed)

    # === Custom exercises ===

    def add_custom_exercise(self, exercise: CustomExercise) -> AppState:
        return self.set_state(custom_exercises=[*self._state.custom_exercises, exercise])

    def update_custom_exercise(self, exercise_id: str, **updates: Any) -> AppState:
        exercises = [
            replace(e, **updates) if e.id == exercise_id else e
            for e in self._state.custom_exercises
        ]
        return self.set_state(custom_exercises=exercises)

    def delete_custom_exercise(self, exercise_id: str) -> AppState:
        return self.set_state(
            custom_exercises=[e for e in self._state.custom_exercises if e.id != exercise_id]
        )

    # === Weight ===

    def add_weight_entry(
        self, weight: float, date: Optional[str] = None, unit: Optional[str] = None
    ) -> AppState:
        """Record a weight sample. An existing entry for the same date is replaced."""
        date = date or datetime.now(timezone.utc).date().isoformat()
        entry = WeightEntry(date=date, weight=weight, unit=unit or self._state.preferences.weight_unit)
        entries = [e for e in self._state.weight_entries if e.date != date]
        entries.append(entry)
        return self.set_state(weight_entries=entries)

    def delete_weight_entry(self, date: str) -> AppState:
        return self.set_state(
            weight_entries=[e for e in self._state.weight_entries if e.date != date]
        )

    # === Introspection ===

    def counts(self) -> Dict[str, int]:
        """Entity counts for status reporting."""
        s = self._state
        return {
            "templates": len(s.templates),
            "sessions": len(s.sessions),
            "custom_exercises": len(s.custom_exercises),
            "weight_entries": len(s.weight_entries),
            "active_session": 1 if s.active_session else 0,
        }
