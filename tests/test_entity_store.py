"""Tests for the SQLite-backed entity store and flag store."""

import json
from dataclasses import replace

import pytest

from conftest import make_custom_exercise, make_session, make_template
from gymsync.protocols import StoreCorruptError
from gymsync.storage.entity_store import (
    DEDUP_FLAG,
    STORE_KEY,
    UUID_MIGRATION_FLAG,
    EntityStore,
    FlagStore,
)
from gymsync.types import (
    AppState,
    CardioSet,
    CardioTemplateExercise,
    IntervalTarget,
    LapsTarget,
    StrengthTemplateExercise,
    Template,
    TemplateType,
)


class TestPersistence:
    def test_empty_store_loads_defaults(self, store):
        assert store.get_state() == AppState()

    def test_state_survives_reopen(self, store, db_path):
        template = make_template()
        store.add_template(template)
        store.add_weight_entry(181.5, date="2024-03-01")

        reopened = EntityStore.open(db_path)
        state = reopened.get_state()
        assert [t.id for t in state.templates] == [template.id]
        assert state.templates[0].exercises == template.exercises
        assert state.weight_entries[0].weight == 181.5

    def test_blob_uses_versioned_camel_case_shape(self, store, kv):
        store.add_template(make_template(template_id="t-1"))
        blob = json.loads(kv.get(STORE_KEY))
        assert blob["version"] == 1
        persisted = blob["state"]["templates"][0]
        assert persisted["id"] == "t-1"
        assert persisted["exercises"][0]["exerciseId"] == "bench-press"
        assert persisted["exercises"][0]["type"] == "strength"
        assert "createdAt" in persisted

    def test_cardio_targets_round_trip(self, store, db_path):
        template = Template(
            id="c-1",
            name="Conditioning",
            template_type=TemplateType.CARDIO,
            exercises=[
                CardioTemplateExercise(
                    exercise_id="hiit", target=IntervalTarget(rounds=8, work_seconds=20)
                ),
                CardioTemplateExercise(exercise_id="swimming", target=LapsTarget(target_laps=40)),
            ],
        )
        store.add_template(template)
        loaded = EntityStore.open(db_path).get_state().templates[0]
        assert loaded.exercises[0].target == IntervalTarget(rounds=8, work_seconds=20)
        assert loaded.exercises[1].cardio_category.value == "laps"
        assert loaded.template_type == TemplateType.CARDIO

    def test_corrupt_blob_raises(self, kv, db_path):
        kv.set(STORE_KEY, "{not json")
        store = EntityStore(kv)
        with pytest.raises(StoreCorruptError):
            store.load()

    def test_unknown_exercise_kind_raises(self, kv):
        blob = {
            "state": {"templates": [{"id": "x", "name": "x", "exercises": [{"type": "yoga"}]}]},
            "version": 1,
        }
        kv.set(STORE_KEY, json.dumps(blob))
        with pytest.raises(StoreCorruptError):
            EntityStore(kv).load()


class TestSubscriptions:
    def test_listener_gets_new_and_previous(self, store):
        seen = []
        store.subscribe(lambda new, prev: seen.append((new, prev)))
        before = store.get_state()
        after = store.add_template(make_template())
        assert seen == [(after, before)]

    def test_no_notification_when_state_object_unchanged(self, store):
        seen = []
        store.subscribe(lambda new, prev: seen.append(new))
        store.set_state(lambda state: state)
        assert seen == []

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda new, prev: seen.append(new))
        unsubscribe()
        store.add_template(make_template())
        assert seen == []

    def test_set_state_with_changes(self, store):
        state = store.set_state(workout_goal="strength")
        assert state.workout_goal == "strength"
        assert store.get_state() is state


class TestMutators:
    def test_update_template_replaces_by_id_and_touches_updated_at(self, store):
        template = make_template()
        store.add_template(template)
        store.update_template(replace(template, name="Push Day B"))
        updated = store.get_state().templates[0]
        assert updated.name == "Push Day B"
        assert updated.updated_at != template.updated_at

    def test_reorder_templates(self, store):
        a, b, c = make_template(name="A"), make_template(name="B"), make_template(name="C")
        for t in (a, b, c):
            store.add_template(t)
        store.reorder_templates([c.id, a.id, b.id])
        assert [t.name for t in store.get_state().templates] == ["C", "A", "B"]

    def test_toggle_rotation(self, store):
        template = make_template()
        store.add_template(template)
        store.toggle_template_rotation(template.id)
        assert store.get_state().templates[0].in_rotation is False

    def test_delete_template(self, store):
        template = make_template()
        store.add_template(template)
        store.delete_template(template.id)
        assert store.get_state().templates == []

    def test_sessions_and_active_session(self, store):
        session = make_session()
        store.add_session(session)
        active = make_session(completed=False)
        store.set_active_session(active)
        state = store.get_state()
        assert state.sessions == [session]
        assert state.active_session == active

        store.delete_session(session.id)
        assert store.get_state().sessions == []

    def test_weight_entry_is_unique_per_date(self, store):
        store.add_weight_entry(150, date="2024-01-01")
        store.add_weight_entry(151, date="2024-01-01")
        entries = store.get_state().weight_entries
        assert len(entries) == 1
        assert entries[0].weight == 151

    def test_weight_entry_uses_preferred_unit(self, store):
        store.update_preferences(weight_unit="kg")
        store.add_weight_entry(80, date="2024-01-01")
        assert store.get_state().weight_entries[0].unit == "kg"

    def test_update_custom_exercise(self, store):
        exercise = make_custom_exercise()
        store.add_custom_exercise(exercise)
        store.update_custom_exercise(exercise.id, equipment="barbell")
        assert store.get_state().custom_exercises[0].equipment == "barbell"

    def test_advance_week_wraps_and_stamps_start(self, store):
        store.set_current_week(4)
        state = store.advance_week()
        assert state.current_week == 0
        assert state.week_started_at is not None

    def test_update_preferences_rejects_unknown_field(self, store):
        with pytest.raises(TypeError):
            store.update_preferences(favourite_colour="red")

    def test_completed_sets_round_trip(self, store, db_path):
        session = make_session()
        cardio = replace(
            session.exercises[0],
            sets=[CardioSet(duration_seconds=600, distance=1.5, distance_unit="mi")],
        )
        store.add_session(replace(session, exercises=[cardio]))
        loaded = EntityStore.open(db_path).get_state().sessions[0]
        assert loaded.exercises[0].sets == [
            CardioSet(duration_seconds=600, distance=1.5, distance_unit="mi")
        ]

    def test_strength_exercise_defaults_survive(self, store, db_path):
        store.add_template(
            make_template(exercises=[StrengthTemplateExercise(exercise_id="squat")])
        )
        loaded = EntityStore.open(db_path).get_state().templates[0].exercises[0]
        assert loaded == StrengthTemplateExercise(exercise_id="squat")


class TestResetAndFlags:
    def test_reset_clears_state_but_keeps_flags(self, store, flags, db_path):
        store.add_template(make_template())
        flags.set(UUID_MIGRATION_FLAG)
        store.reset()

        assert store.get_state() == AppState()
        assert EntityStore.open(db_path).get_state() == AppState()
        assert flags.is_set(UUID_MIGRATION_FLAG)

    def test_flags_are_independent(self, flags):
        flags.set(DEDUP_FLAG)
        assert flags.is_set(DEDUP_FLAG)
        assert not flags.is_set(UUID_MIGRATION_FLAG)
        flags.clear(DEDUP_FLAG)
        assert not flags.is_set(DEDUP_FLAG)

    def test_flags_persist(self, store, db_path):
        FlagStore(store.kv).set(DEDUP_FLAG)
        assert FlagStore(EntityStore.open(db_path).kv).is_set(DEDUP_FLAG)
