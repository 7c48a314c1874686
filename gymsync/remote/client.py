"""Supabase implementation of :class:`gymsync.protocols.RemoteStore`.

All calls go through a handful of generic table primitives
(``fetch_all``/``insert``/``insert_many``/``update``/``delete``/``upsert``).
The per-collection methods layer the push safety guards on top: corrupted
templates are never pushed, empty child lists never replace remote children,
and concurrent pushes of the same template or session are skipped.
"""

import logging
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional, Set

from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from gymsync.config import Settings
from gymsync.protocols import DuplicateKeyError
from gymsync.remote.rows import (
    COMPLETED_SETS_TABLE,
    CUSTOM_EXERCISES_TABLE,
    PROFILES_TABLE,
    SESSION_EXERCISES_TABLE,
    SESSION_SELECT,
    SESSIONS_TABLE,
    TEMPLATE_EXERCISES_TABLE,
    TEMPLATE_SELECT,
    TEMPLATES_TABLE,
    WEIGHT_ENTRIES_TABLE,
    completed_set_to_row,
    custom_exercise_from_row,
    custom_exercise_to_row,
    session_exercise_to_row,
    session_from_row,
    session_metadata,
    session_to_row,
    template_exercise_to_row,
    template_from_row,
    template_to_row,
    weight_entry_from_row,
    weight_entry_to_row,
)
from gymsync.types import CustomExercise, Session, Template, WeightEntry

logger = logging.getLogger(__name__)

# Postgres unique_violation
DUPLICATE_KEY_CODE = "23505"

# Corruption thresholds for template pushes
MAX_TEMPLATE_EXERCISES = 50
MAX_DUPLICATE_EXERCISES = 3

# A session update may not shrink remote children below this fraction
MIN_SESSION_CHILD_RATIO = 0.5


def template_looks_corrupted(template: Template) -> bool:
    """True if a template has implausibly many exercises or repeated slots."""
    if len(template.exercises) > MAX_TEMPLATE_EXERCISES:
        return True
    counts = Counter(ex.exercise_id for ex in template.exercises)
    return max(counts.values(), default=0) > MAX_DUPLICATE_EXERCISES


class SupabaseRemoteStore:
    """RemoteStore backed by a Supabase async client."""

    def __init__(self, client: AsyncClient):
        self._client = client
        self._in_flight: Set[str] = set()

    @classmethod
    async def from_settings(
        cls, settings: Settings, access_token: Optional[str] = None
    ) -> "SupabaseRemoteStore":
        """Create a store from settings.

        ``access_token`` is the signed-in user's JWT; row level security
        scopes every query to that user.
        """
        if not settings.has_remote:
            raise ValueError("GYMSYNC_SUPABASE_URL and GYMSYNC_SUPABASE_KEY must be set")
        options = AsyncClientOptions(postgrest_client_timeout=settings.request_timeout)
        client = await acreate_client(settings.supabase_url, settings.supabase_key, options)
        if access_token:
            client.postgrest.auth(access_token)
        return cls(client)

    # =========================================================================
    # Generic primitives
    # =========================================================================

    async def _execute(self, query: Any, table: str) -> List[Dict[str, Any]]:
        try:
            result = await query.execute()
        except APIError as e:
            if e.code == DUPLICATE_KEY_CODE:
                raise DuplicateKeyError(table) from e
            raise
        return result.data or []

    async def fetch_all(
        self,
        table: str,
        select: str = "*",
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        **filters: Any,
    ) -> List[Dict[str, Any]]:
        query = self._client.table(table).select(select)
        for column, value in filters.items():
            query = query.eq(column, value)
        if order:
            query = query.order(order, desc=desc)
        if limit:
            query = query.limit(limit)
        return await self._execute(query, table)

    async def insert(self, table: str, row: Dict[str, Any]) -> bool:
        """Insert one row. Returns False if the primary key already exists."""
        try:
            await self._execute(self._client.table(table).insert(row), table)
        except DuplicateKeyError:
            logger.info(f"Row already present in {table}: {row.get('id')}, skipping")
            return False
        return True

    async def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return await self._execute(self._client.table(table).insert(rows), table)

    async def update(self, table: str, values: Dict[str, Any], **filters: Any) -> List[Dict[str, Any]]:
        query = self._client.table(table).update(values)
        for column, value in filters.items():
            query = query.eq(column, value)
        return await self._execute(query, table)

    async def delete(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        query = self._client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        return await self._execute(query, table)

    async def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> None:
        await self._execute(self._client.table(table).upsert(row, on_conflict=on_conflict), table)

    def _claim(self, kind: str, record_id: str) -> bool:
        key = f"{kind}:{record_id}"
        if key in self._in_flight:
            logger.info(f"{kind} {record_id} push already in flight, skipping")
            return False
        self._in_flight.add(key)
        return True

    def _release(self, kind: str, record_id: str) -> None:
        self._in_flight.discard(f"{kind}:{record_id}")

    async def _exists(self, table: str, record_id: str, user_id: str) -> bool:
        rows = await self.fetch_all(table, select="id", limit=1, id=record_id, user_id=user_id)
        return bool(rows)

    # =========================================================================
    # Fetch
    # =========================================================================

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.fetch_all(PROFILES_TABLE, limit=1, id=user_id)
        return rows[0] if rows else None

    async def fetch_templates(self, user_id: str) -> List[Template]:
        rows = await self.fetch_all(
            TEMPLATES_TABLE, select=TEMPLATE_SELECT, order="sort_order", user_id=user_id
        )
        return [template_from_row(r) for r in rows]

    async def fetch_sessions(self, user_id: str) -> List[Session]:
        rows = await self.fetch_all(
            SESSIONS_TABLE,
            select=SESSION_SELECT,
            order="started_at",
            desc=True,
            user_id=user_id,
            is_active=False,
        )
        return [session_from_row(r) for r in rows]

    async def fetch_active_session(self, user_id: str) -> Optional[Session]:
        rows = await self.fetch_all(
            SESSIONS_TABLE, select=SESSION_SELECT, limit=1, user_id=user_id, is_active=True
        )
        return session_from_row(rows[0]) if rows else None

    async def fetch_custom_exercises(self, user_id: str) -> List[CustomExercise]:
        rows = await self.fetch_all(
            CUSTOM_EXERCISES_TABLE, order="created_at", desc=True, user_id=user_id
        )
        return [custom_exercise_from_row(r) for r in rows]

    async def fetch_weight_entries(self, user_id: str) -> List[WeightEntry]:
        rows = await self.fetch_all(WEIGHT_ENTRIES_TABLE, order="date", desc=True, user_id=user_id)
        return [weight_entry_from_row(r) for r in rows]

    # =========================================================================
    # Templates
    # =========================================================================

    async def _insert_template_exercises(self, template: Template) -> None:
        rows = [
            template_exercise_to_row(ex, template.id, idx)
            for idx, ex in enumerate(template.exercises)
        ]
        await self.insert_many(TEMPLATE_EXERCISES_TABLE, rows)

    async def add_template(self, user_id: str, template: Template) -> bool:
        if template_looks_corrupted(template):
            logger.error(
                f"Template {template.id} looks corrupted "
                f"({len(template.exercises)} exercises), not pushing"
            )
            return False
        if not self._claim("template", template.id):
            return False
        try:
            exists = await self._exists(TEMPLATES_TABLE, template.id, user_id)
            if not exists:
                if not await self.insert(TEMPLATES_TABLE, template_to_row(template, user_id)):
                    return False
                await self._insert_template_exercises(template)
                return True
        finally:
            self._release("template", template.id)
        return await self.update_template(user_id, template)

    async def update_template(self, user_id: str, template: Template) -> bool:
        if not self._claim("template", template.id):
            return False
        try:
            remote_children = await self.fetch_all(
                TEMPLATE_EXERCISES_TABLE, select="id", template_id=template.id
            )
            local_count = len(template.exercises)
            if remote_children and local_count == 0:
                logger.error(
                    f"Blocked update of template {template.id}: local has 0 exercises, "
                    f"remote has {len(remote_children)}"
                )
                return False
            if template_looks_corrupted(template):
                logger.error(f"Blocked update of template {template.id}: looks corrupted")
                return False

            row = template_to_row(template, user_id)
            for column in ("id", "user_id", "created_at"):
                row.pop(column)
            await self.update(TEMPLATES_TABLE, row, id=template.id, user_id=user_id)

            if local_count == 0:
                return True
            await self.delete(TEMPLATE_EXERCISES_TABLE, template_id=template.id)
            await self._insert_template_exercises(template)
            return True
        finally:
            self._release("template", template.id)

    async def delete_template(self, user_id: str, template_id: str) -> bool:
        await self.delete(TEMPLATES_TABLE, id=template_id, user_id=user_id)
        return True

    async def reorder_templates(self, user_id: str, template_ids: List[str]) -> bool:
        for idx, template_id in enumerate(template_ids):
            await self.update(TEMPLATES_TABLE, {"sort_order": idx}, id=template_id, user_id=user_id)
        return True

    # =========================================================================
    # Sessions
    # =========================================================================

    async def _insert_session_children(self, session: Session) -> None:
        exercise_rows = []
        set_rows = []
        for idx, ex in enumerate(session.exercises):
            exercise_id = ex.id or str(uuid.uuid4())
            exercise_rows.append(session_exercise_to_row(ex, session.id, idx))
            exercise_rows[-1]["id"] = exercise_id
            set_rows.extend(completed_set_to_row(s, exercise_id) for s in ex.sets)
        await self.insert_many(SESSION_EXERCISES_TABLE, exercise_rows)
        await self.insert_many(COMPLETED_SETS_TABLE, set_rows)

    async def _insert_session(self, user_id: str, session: Session) -> Optional[bool]:
        """Insert a new session. Returns None if it already exists remotely."""
        if not self._claim("session", session.id):
            return False
        try:
            if await self._exists(SESSIONS_TABLE, session.id, user_id):
                return None
            if not await self.insert(SESSIONS_TABLE, session_to_row(session, user_id)):
                return False
            await self._insert_session_children(session)
            return True
        finally:
            self._release("session", session.id)

    async def add_session(self, user_id: str, session: Session) -> bool:
        if not session.exercises:
            logger.warning(f"Not pushing session {session.id}: it has no exercises")
            return False
        inserted = await self._insert_session(user_id, session)
        if inserted is None:
            return await self.update_session(user_id, session)
        return inserted

    async def update_session(self, user_id: str, session: Session) -> bool:
        if not self._claim("session", session.id):
            return False
        try:
            remote_children = await self.fetch_all(
                SESSION_EXERCISES_TABLE, select="id", session_id=session.id
            )
            remote_count = len(remote_children)
            local_count = len(session.exercises)
            if remote_count and local_count == 0:
                logger.error(
                    f"Blocked update of session {session.id}: local has 0 exercises, "
                    f"remote has {remote_count}"
                )
                return False
            if remote_count and local_count < remote_count * MIN_SESSION_CHILD_RATIO:
                logger.error(
                    f"Blocked update of session {session.id}: local has {local_count} "
                    f"exercises, remote has {remote_count}"
                )
                return False
            if local_count > MAX_TEMPLATE_EXERCISES:
                logger.error(f"Blocked update of session {session.id}: {local_count} exercises")
                return False

            await self.update(
                SESSIONS_TABLE, session_metadata(session), id=session.id, user_id=user_id
            )
            if local_count == 0:
                return True
            # completed_sets rows cascade with their session exercise
            await self.delete(SESSION_EXERCISES_TABLE, session_id=session.id)
            await self._insert_session_children(session)
            return True
        finally:
            self._release("session", session.id)

    async def delete_session(self, user_id: str, session_id: str) -> bool:
        await self.delete(SESSIONS_TABLE, id=session_id, user_id=user_id)
        return True

    async def reorder_sessions(self, user_id: str, session_ids: List[str]) -> bool:
        # workout_sessions has no sort column; history is ordered by started_at
        logger.debug(f"Session order is derived remotely, ignoring reorder of {len(session_ids)}")
        return False

    async def set_active_session(self, user_id: str, session: Optional[Session]) -> bool:
        if session is None:
            await self.update(SESSIONS_TABLE, {"is_active": False}, user_id=user_id, is_active=True)
            return True
        # An active session may legitimately start with no exercises
        inserted = await self._insert_session(user_id, session)
        if inserted is None:
            return await self.update_session(user_id, session)
        return inserted

    # =========================================================================
    # Custom exercises
    # =========================================================================

    async def add_custom_exercise(self, user_id: str, exercise: CustomExercise) -> bool:
        return await self.insert(CUSTOM_EXERCISES_TABLE, custom_exercise_to_row(exercise, user_id))

    async def update_custom_exercise(self, user_id: str, exercise: CustomExercise) -> bool:
        row = custom_exercise_to_row(exercise, user_id)
        row.pop("id")
        row.pop("user_id")
        await self.update(CUSTOM_EXERCISES_TABLE, row, id=exercise.id, user_id=user_id)
        return True

    async def delete_custom_exercise(self, user_id: str, exercise_id: str) -> bool:
        await self.delete(CUSTOM_EXERCISES_TABLE, id=exercise_id, user_id=user_id)
        return True

    # =========================================================================
    # Weight entries
    # =========================================================================

    async def upsert_weight_entry(self, user_id: str, entry: WeightEntry) -> bool:
        await self.upsert(
            WEIGHT_ENTRIES_TABLE, weight_entry_to_row(entry, user_id), on_conflict="user_id,date"
        )
        return True

    async def delete_weight_entry(self, user_id: str, date: str) -> bool:
        await self.delete(WEIGHT_ENTRIES_TABLE, user_id=user_id, date=date)
        return True

    # =========================================================================
    # Profile
    # =========================================================================

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> bool:
        if not updates:
            return False
        await self.update(PROFILES_TABLE, updates, id=user_id)
        return True

    # =========================================================================
    # Repair
    # =========================================================================

    async def dedupe_template_exercises(self, user_id: str) -> int:
        """Delete repeated exercise slots inside each template.

        Within a template, the slot with the lowest ``sort_order`` is kept for
        each ``exercise_id``. Returns the number of rows deleted.
        """
        templates = await self.fetch_all(
            TEMPLATES_TABLE, select="id, template_exercises(*)", user_id=user_id
        )
        fixed = 0
        for template in templates:
            children = sorted(
                template.get("template_exercises") or [], key=lambda r: r.get("sort_order") or 0
            )
            seen: Set[str] = set()
            duplicate_ids = []
            for child in children:
                if child["exercise_id"] in seen:
                    duplicate_ids.append(child["id"])
                else:
                    seen.add(child["exercise_id"])
            if not duplicate_ids:
                continue
            query = self._client.table(TEMPLATE_EXERCISES_TABLE).delete().in_("id", duplicate_ids)
            try:
                await self._execute(query, TEMPLATE_EXERCISES_TABLE)
            except APIError as e:
                logger.error(f"Failed to delete duplicates for template {template['id']}: {e}")
                continue
            fixed += len(duplicate_ids)
            logger.info(f"Removed {len(duplicate_ids)} duplicate exercises from template {template['id']}")
        return fixed
