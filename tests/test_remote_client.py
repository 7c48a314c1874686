"""Tests for the Supabase remote store adapter."""

from dataclasses import replace

import pytest
from postgrest.exceptions import APIError

from conftest import USER_ID, make_custom_exercise, make_session, make_template, new_id
from gymsync.remote.client import SupabaseRemoteStore, template_looks_corrupted
from gymsync.remote.rows import (
    COMPLETED_SETS_TABLE,
    PROFILES_TABLE,
    SESSION_EXERCISES_TABLE,
    SESSIONS_TABLE,
    TEMPLATE_EXERCISES_TABLE,
    TEMPLATES_TABLE,
    WEIGHT_ENTRIES_TABLE,
)
from gymsync.types import (
    CardioSet,
    CardioTemplateExercise,
    DistanceTarget,
    ExerciseType,
    SessionExercise,
    StrengthTemplateExercise,
    WeightEntry,
)


@pytest.fixture
def remote_store(supabase_client):
    return SupabaseRemoteStore(supabase_client)


def _children(client, table, fk, parent_id):
    return [r for r in client.tables.get(table, []) if r[fk] == parent_id]


class TestTemplates:
    @pytest.mark.asyncio
    async def test_add_template_writes_parent_and_children(self, remote_store, supabase_client):
        template = make_template()
        assert await remote_store.add_template(USER_ID, template) is True

        rows = supabase_client.tables[TEMPLATES_TABLE]
        assert rows[0]["id"] == template.id
        assert rows[0]["user_id"] == USER_ID
        children = _children(supabase_client, TEMPLATE_EXERCISES_TABLE, "template_id", template.id)
        assert [c["exercise_id"] for c in children] == ["bench-press", "overhead-press"]
        assert [c["sort_order"] for c in children] == [0, 1]

    @pytest.mark.asyncio
    async def test_fetch_round_trips_cardio_targets(self, remote_store):
        template = make_template(
            exercises=[
                CardioTemplateExercise(
                    exercise_id="running",
                    target=DistanceTarget(target_duration_minutes=30, target_intensity="moderate"),
                )
            ]
        )
        await remote_store.add_template(USER_ID, template)
        fetched = await remote_store.fetch_templates(USER_ID)
        assert fetched[0].exercises == template.exercises

    @pytest.mark.asyncio
    async def test_add_existing_template_becomes_update(self, remote_store, supabase_client):
        template = make_template()
        await remote_store.add_template(USER_ID, template)
        renamed = replace(template, name="Renamed", exercises=template.exercises[:1])
        assert await remote_store.add_template(USER_ID, renamed) is True

        assert supabase_client.tables[TEMPLATES_TABLE][0]["name"] == "Renamed"
        children = _children(supabase_client, TEMPLATE_EXERCISES_TABLE, "template_id", template.id)
        assert len(children) == 1

    @pytest.mark.asyncio
    async def test_corrupted_template_not_pushed(self, remote_store, supabase_client):
        exercises = [StrengthTemplateExercise(exercise_id="squat") for _ in range(4)]
        template = make_template(exercises=exercises)
        assert template_looks_corrupted(template)
        assert await remote_store.add_template(USER_ID, template) is False
        assert supabase_client.queries == []

    @pytest.mark.asyncio
    async def test_update_never_empties_remote_children(self, remote_store, supabase_client):
        template = make_template()
        await remote_store.add_template(USER_ID, template)
        emptied = replace(template, exercises=[])
        assert await remote_store.update_template(USER_ID, emptied) is False
        children = _children(supabase_client, TEMPLATE_EXERCISES_TABLE, "template_id", template.id)
        assert len(children) == 2

    @pytest.mark.asyncio
    async def test_in_flight_push_is_skipped(self, remote_store):
        template = make_template()
        remote_store._in_flight.add(f"template:{template.id}")
        assert await remote_store.update_template(USER_ID, template) is False

    @pytest.mark.asyncio
    async def test_reorder_sets_sort_order(self, remote_store, supabase_client):
        a, b = make_template(name="A"), make_template(name="B")
        await remote_store.add_template(USER_ID, a)
        await remote_store.add_template(USER_ID, b)
        await remote_store.reorder_templates(USER_ID, [b.id, a.id])
        fetched = await remote_store.fetch_templates(USER_ID)
        assert [t.name for t in fetched] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_delete_template_cascades(self, remote_store, supabase_client):
        template = make_template()
        await remote_store.add_template(USER_ID, template)
        await remote_store.delete_template(USER_ID, template.id)
        assert supabase_client.tables[TEMPLATES_TABLE] == []
        assert supabase_client.tables[TEMPLATE_EXERCISES_TABLE] == []


class TestSessions:
    @pytest.mark.asyncio
    async def test_add_session_writes_exercises_and_sets(self, remote_store, supabase_client):
        session = make_session(exercise_ids=("bench-press", "squat"))
        assert await remote_store.add_session(USER_ID, session) is True

        row = supabase_client.tables[SESSIONS_TABLE][0]
        assert row["is_active"] is False
        assert len(supabase_client.tables[SESSION_EXERCISES_TABLE]) == 2
        assert len(supabase_client.tables[COMPLETED_SETS_TABLE]) == 2

        fetched = await remote_store.fetch_sessions(USER_ID)
        assert fetched == [session]

    @pytest.mark.asyncio
    async def test_cardio_set_calories_round_trip(self, remote_store, supabase_client):
        hiit = SessionExercise(
            id=new_id(),
            exercise_id="hiit",
            type=ExerciseType.CARDIO,
            sets=[CardioSet(duration_seconds=600, calories=250, completed_at="2024-01-01T10:20:00+00:00")],
        )
        session = replace(make_session(), exercises=[hiit])
        await remote_store.add_session(USER_ID, session)

        assert supabase_client.tables[COMPLETED_SETS_TABLE][0]["calories"] == 250
        fetched = await remote_store.fetch_sessions(USER_ID)
        assert fetched[0].exercises[0].sets == hiit.sets

    @pytest.mark.asyncio
    async def test_empty_session_not_added(self, remote_store, supabase_client):
        session = make_session(exercise_ids=())
        assert await remote_store.add_session(USER_ID, session) is False
        assert SESSIONS_TABLE not in supabase_client.tables

    @pytest.mark.asyncio
    async def test_update_blocked_when_shrinking_below_half(self, remote_store, supabase_client):
        session = make_session(exercise_ids=("a", "b", "c", "d", "e"))
        await remote_store.add_session(USER_ID, session)
        shrunk = replace(session, exercises=session.exercises[:2])
        assert await remote_store.update_session(USER_ID, shrunk) is False
        assert len(supabase_client.tables[SESSION_EXERCISES_TABLE]) == 5

    @pytest.mark.asyncio
    async def test_update_replaces_children(self, remote_store, supabase_client):
        session = make_session(exercise_ids=("a", "b"))
        await remote_store.add_session(USER_ID, session)
        updated = replace(session, mood=4, exercises=session.exercises[:1])
        assert await remote_store.update_session(USER_ID, updated) is True
        assert supabase_client.tables[SESSIONS_TABLE][0]["mood"] == 4
        assert len(supabase_client.tables[SESSION_EXERCISES_TABLE]) == 1
        assert len(supabase_client.tables[COMPLETED_SETS_TABLE]) == 1

    @pytest.mark.asyncio
    async def test_active_session_lifecycle(self, remote_store, supabase_client):
        active = make_session(exercise_ids=(), completed=False)
        assert await remote_store.set_active_session(USER_ID, active) is True
        assert (await remote_store.fetch_active_session(USER_ID)).id == active.id

        await remote_store.set_active_session(USER_ID, None)
        assert await remote_store.fetch_active_session(USER_ID) is None

    @pytest.mark.asyncio
    async def test_duplicate_key_is_skipped(self, remote_store, supabase_client):
        session = make_session()
        supabase_client.errors[(SESSIONS_TABLE, "insert")] = APIError(
            {"message": "duplicate key value violates unique constraint", "code": "23505"}
        )
        assert await remote_store.add_session(USER_ID, session) is False

    @pytest.mark.asyncio
    async def test_other_api_errors_propagate(self, remote_store, supabase_client):
        supabase_client.errors[(SESSIONS_TABLE, "insert")] = APIError(
            {"message": "permission denied", "code": "42501"}
        )
        with pytest.raises(APIError):
            await remote_store.add_session(USER_ID, make_session())


class TestOtherCollections:
    @pytest.mark.asyncio
    async def test_weight_entries_upsert_on_user_and_date(self, remote_store, supabase_client):
        await remote_store.upsert_weight_entry(USER_ID, WeightEntry("2024-01-01", 150))
        await remote_store.upsert_weight_entry(USER_ID, WeightEntry("2024-01-01", 152))
        assert len(supabase_client.tables[WEIGHT_ENTRIES_TABLE]) == 1
        assert supabase_client.queries_for(WEIGHT_ENTRIES_TABLE, "upsert")[0].on_conflict == "user_id,date"

        await remote_store.delete_weight_entry(USER_ID, "2024-01-01")
        assert await remote_store.fetch_weight_entries(USER_ID) == []

    @pytest.mark.asyncio
    async def test_custom_exercise_round_trip(self, remote_store):
        exercise = make_custom_exercise()
        await remote_store.add_custom_exercise(USER_ID, exercise)
        await remote_store.update_custom_exercise(USER_ID, replace(exercise, equipment="landmine"))
        fetched = await remote_store.fetch_custom_exercises(USER_ID)
        assert fetched == [replace(exercise, equipment="landmine")]

    @pytest.mark.asyncio
    async def test_profile_fetch_and_update(self, remote_store, supabase_client):
        supabase_client.tables[PROFILES_TABLE] = [{"id": USER_ID, "weight_unit": "lbs"}]
        assert await remote_store.update_profile(USER_ID, {"weight_unit": "kg"}) is True
        assert (await remote_store.fetch_profile(USER_ID))["weight_unit"] == "kg"
        assert await remote_store.update_profile(USER_ID, {}) is False


class TestDedupe:
    @pytest.mark.asyncio
    async def test_keeps_lowest_sort_order(self, remote_store, supabase_client):
        supabase_client.tables[TEMPLATES_TABLE] = [{"id": "t1", "user_id": USER_ID}]
        supabase_client.tables[TEMPLATE_EXERCISES_TABLE] = [
            {"id": "e3", "template_id": "t1", "exercise_id": "squat", "sort_order": 2},
            {"id": "e1", "template_id": "t1", "exercise_id": "squat", "sort_order": 0},
            {"id": "e2", "template_id": "t1", "exercise_id": "bench-press", "sort_order": 1},
            {"id": "e4", "template_id": "t1", "exercise_id": "bench-press", "sort_order": 3},
        ]
        fixed = await remote_store.dedupe_template_exercises(USER_ID)

        assert fixed == 2
        remaining = {r["id"] for r in supabase_client.tables[TEMPLATE_EXERCISES_TABLE]}
        assert remaining == {"e1", "e2"}

    @pytest.mark.asyncio
    async def test_clean_templates_untouched(self, remote_store, supabase_client):
        await remote_store.add_template(USER_ID, make_template())
        assert await remote_store.dedupe_template_exercises(USER_ID) == 0
        assert supabase_client.queries_for(TEMPLATE_EXERCISES_TABLE, "delete") == []
