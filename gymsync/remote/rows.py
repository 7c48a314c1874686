"""Mapping between entity dataclasses and Supabase table rows."""

from dataclasses import asdict, fields
from typing import Any, Dict, List, Optional

from gymsync.types import (
    CARDIO_TARGET_TYPES,
    CardioCategory,
    CardioSet,
    CardioTemplateExercise,
    CompletedSet,
    CustomExercise,
    ExerciseType,
    Session,
    SessionExercise,
    StrengthSet,
    StrengthTemplateExercise,
    Template,
    TemplateExercise,
    TemplateType,
    WeightEntry,
)

# =============================================================================
# Table Names
# =============================================================================

PROFILES_TABLE = "profiles"
TEMPLATES_TABLE = "workout_templates"
TEMPLATE_EXERCISES_TABLE = "template_exercises"
SESSIONS_TABLE = "workout_sessions"
SESSION_EXERCISES_TABLE = "session_exercises"
COMPLETED_SETS_TABLE = "completed_sets"
CUSTOM_EXERCISES_TABLE = "custom_exercises"
WEIGHT_ENTRIES_TABLE = "weight_entries"

TEMPLATE_SELECT = "*, template_exercises(*)"
SESSION_SELECT = "*, session_exercises(*, completed_sets(*))"

# Profile columns that map one-to-one onto Preferences fields
PREFERENCE_COLUMNS = (
    "weight_unit",
    "distance_unit",
    "default_rest_seconds",
    "dark_mode",
    "experience_level",
    "first_name",
    "last_name",
    "openai_api_key",
)

# Cardio target columns on template_exercises, all nullable
CARDIO_TARGET_COLUMNS = (
    "target_duration_minutes",
    "target_intensity",
    "rounds",
    "work_seconds",
    "rest_between_rounds_seconds",
    "target_laps",
)


def _by_sort_order(rows: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return sorted(rows or [], key=lambda r: r.get("sort_order") or 0)


# =============================================================================
# Templates
# =============================================================================


def template_exercise_to_row(
    ex: TemplateExercise, template_id: str, sort_order: int
) -> Dict[str, Any]:
    row = {
        "template_id": template_id,
        "exercise_id": ex.exercise_id,
        "type": ex.type.value,
        "sort_order": sort_order,
        "rest_seconds": ex.rest_seconds,
    }
    if isinstance(ex, StrengthTemplateExercise):
        row["target_sets"] = ex.target_sets
        row["target_reps"] = ex.target_reps
    elif isinstance(ex, CardioTemplateExercise):
        row["cardio_category"] = ex.cardio_category.value
        row["tracking_mode"] = ex.tracking_mode or "detailed"
        row["target_calories"] = ex.target_calories
        row.update({col: None for col in CARDIO_TARGET_COLUMNS})
        row.update(asdict(ex.target))
    else:
        raise TypeError(f"Unknown template exercise kind: {type(ex).__name__}")
    return row


def template_exercise_from_row(row: Dict[str, Any]) -> TemplateExercise:
    kind = row.get("type")
    if kind == ExerciseType.STRENGTH.value:
        return StrengthTemplateExercise(
            exercise_id=row["exercise_id"],
            target_sets=row.get("target_sets"),
            target_reps=row.get("target_reps"),
            rest_seconds=row.get("rest_seconds"),
        )
    if kind == ExerciseType.CARDIO.value:
        category = CardioCategory(row.get("cardio_category") or CardioCategory.OTHER.value)
        target_cls = CARDIO_TARGET_TYPES[category]
        target = target_cls(**{f.name: row.get(f.name) for f in fields(target_cls)})
        return CardioTemplateExercise(
            exercise_id=row["exercise_id"],
            target=target,
            rest_seconds=row.get("rest_seconds"),
            tracking_mode=row.get("tracking_mode") or "detailed",
            target_calories=row.get("target_calories"),
        )
    raise ValueError(f"Unknown template exercise type: {kind!r}")


def template_to_row(template: Template, user_id: str) -> Dict[str, Any]:
    return {
        "id": template.id,
        "user_id": user_id,
        "name": template.name,
        "template_type": template.template_type.value,
        "copied_from": template.copied_from,
        "in_rotation": template.in_rotation,
        "created_at": template.created_at,
        "updated_at": template.updated_at,
    }


def template_from_row(row: Dict[str, Any]) -> Template:
    return Template(
        id=row["id"],
        name=row["name"],
        template_type=TemplateType(row.get("template_type") or TemplateType.STRENGTH.value),
        exercises=[
            template_exercise_from_row(ex) for ex in _by_sort_order(row.get("template_exercises"))
        ],
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        copied_from=row.get("copied_from"),
        in_rotation=row.get("in_rotation", True) is not False,
    )


# =============================================================================
# Sessions
# =============================================================================


def completed_set_to_row(s: CompletedSet, session_exercise_id: str) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "session_exercise_id": session_exercise_id,
        "type": s.type.value,
        "completed_at": s.completed_at,
        "reps": None,
        "weight": None,
        "weight_unit": None,
        "distance": None,
        "distance_unit": None,
        "duration_seconds": None,
        "calories": None,
    }
    if isinstance(s, StrengthSet):
        row.update(reps=s.reps, weight=s.weight, weight_unit=s.unit)
    elif isinstance(s, CardioSet):
        row.update(
            distance=s.distance,
            distance_unit=s.distance_unit,
            duration_seconds=s.duration_seconds,
            calories=s.calories,
        )
    else:
        raise TypeError(f"Unknown completed set kind: {type(s).__name__}")
    return row


def completed_set_from_row(row: Dict[str, Any]) -> CompletedSet:
    kind = row.get("type")
    if kind == ExerciseType.STRENGTH.value:
        return StrengthSet(
            weight=row.get("weight") or 0,
            reps=row.get("reps") or 0,
            unit=row.get("weight_unit") or "lbs",
            completed_at=row.get("completed_at"),
        )
    if kind == ExerciseType.CARDIO.value:
        return CardioSet(
            duration_seconds=row.get("duration_seconds"),
            distance=row.get("distance"),
            distance_unit=row.get("distance_unit"),
            calories=row.get("calories"),
            completed_at=row.get("completed_at"),
        )
    raise ValueError(f"Unknown completed set type: {kind!r}")


def session_exercise_to_row(
    ex: SessionExercise, session_id: str, sort_order: int
) -> Dict[str, Any]:
    strength = ex.type == ExerciseType.STRENGTH
    return {
        "id": ex.id,
        "session_id": session_id,
        "exercise_id": ex.exercise_id,
        "type": ex.type.value,
        "sort_order": sort_order,
        "target_sets": ex.target_sets if strength else None,
        "target_reps": ex.target_reps if strength else None,
        "rest_seconds": ex.rest_seconds,
    }


def session_exercise_from_row(row: Dict[str, Any]) -> SessionExercise:
    sets = sorted(row.get("completed_sets") or [], key=lambda r: r.get("completed_at") or "")
    return SessionExercise(
        id=row["id"],
        exercise_id=row["exercise_id"],
        type=ExerciseType(row.get("type") or ExerciseType.STRENGTH.value),
        rest_seconds=row.get("rest_seconds"),
        target_sets=row.get("target_sets"),
        target_reps=row.get("target_reps"),
        sets=[completed_set_from_row(s) for s in sets],
    )


def session_metadata(session: Session) -> Dict[str, Any]:
    """Columns of ``workout_sessions`` that an update may overwrite."""
    return {
        "name": session.name,
        "custom_title": session.custom_title,
        "mood": session.mood,
        "progressive_overload_week": session.progressive_overload_week,
        "workout_goal": session.workout_goal,
        "personal_bests": session.personal_bests,
        "streak_count": session.streak_count,
        "completed_at": session.completed_at,
        "is_active": session.completed_at is None,
    }


def session_to_row(session: Session, user_id: str) -> Dict[str, Any]:
    return {
        "id": session.id,
        "user_id": user_id,
        "template_id": session.template_id,
        "started_at": session.started_at,
        **session_metadata(session),
    }


def session_from_row(row: Dict[str, Any]) -> Session:
    return Session(
        id=row["id"],
        name=row["name"],
        started_at=row["started_at"],
        exercises=[
            session_exercise_from_row(ex) for ex in _by_sort_order(row.get("session_exercises"))
        ],
        template_id=row.get("template_id"),
        completed_at=row.get("completed_at"),
        custom_title=row.get("custom_title"),
        mood=row.get("mood"),
        progressive_overload_week=row.get("progressive_overload_week"),
        workout_goal=row.get("workout_goal"),
        personal_bests=row.get("personal_bests"),
        streak_count=row.get("streak_count"),
    )


# =============================================================================
# Custom exercises & weight entries
# =============================================================================


def custom_exercise_to_row(exercise: CustomExercise, user_id: str) -> Dict[str, Any]:
    strength = exercise.type == ExerciseType.STRENGTH
    return {
        "id": exercise.id,
        "user_id": user_id,
        "name": exercise.name,
        "type": exercise.type.value,
        "muscle_groups": exercise.muscle_groups if strength else None,
        "equipment": exercise.equipment if strength else None,
        "cardio_type": None if strength else exercise.cardio_type,
        "instructions": exercise.instructions,
    }


def custom_exercise_from_row(row: Dict[str, Any]) -> CustomExercise:
    return CustomExercise(
        id=row["id"],
        name=row["name"],
        type=ExerciseType(row.get("type") or ExerciseType.STRENGTH.value),
        muscle_groups=row.get("muscle_groups"),
        equipment=row.get("equipment"),
        cardio_type=row.get("cardio_type"),
        instructions=row.get("instructions"),
    )


def weight_entry_to_row(entry: WeightEntry, user_id: str) -> Dict[str, Any]:
    return {"user_id": user_id, "date": entry.date, "weight": entry.weight, "unit": entry.unit}


def weight_entry_from_row(row: Dict[str, Any]) -> WeightEntry:
    return WeightEntry(date=row["date"], weight=row["weight"], unit=row.get("unit") or "lbs")
