"""Conversion between entity dataclasses and the persisted store blob.

The persisted blob keeps the camelCase keys written by earlier releases of
the app (``exerciseId``, ``createdAt`` ...) so existing installs load
without a schema migration. ``None`` values are omitted on write.
"""

from dataclasses import fields
from typing import Any, Dict, Optional

from gymsync.types import (
    CARDIO_TARGET_TYPES,
    AppState,
    CardioCategory,
    CardioSet,
    CardioTemplateExercise,
    CompletedSet,
    CustomExercise,
    ExerciseType,
    Preferences,
    Session,
    SessionExercise,
    StrengthSet,
    StrengthTemplateExercise,
    Template,
    TemplateExercise,
    TemplateType,
    WeightEntry,
)


def camel(name: str) -> str:
    """Convert a snake_case field name to its persisted camelCase key."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _plain(value: Any) -> Any:
    if isinstance(value, (ExerciseType, TemplateType, CardioCategory)):
        return value.value
    return value


def _flat_to_dict(obj: Any, skip: tuple = ()) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(obj):
        if f.name in skip:
            continue
        value = getattr(obj, f.name)
        if value is not None:
            out[camel(f.name)] = _plain(value)
    return out


def _flat_kwargs(cls: type, data: Dict[str, Any], skip: tuple = ()) -> Dict[str, Any]:
    return {
        f.name: data[camel(f.name)]
        for f in fields(cls)
        if f.name not in skip and camel(f.name) in data
    }


# === Template exercises ===


def template_exercise_to_dict(ex: TemplateExercise) -> Dict[str, Any]:
    if isinstance(ex, StrengthTemplateExercise):
        return {"type": ex.type.value, **_flat_to_dict(ex)}
    if isinstance(ex, CardioTemplateExercise):
        out = {"type": ex.type.value, **_flat_to_dict(ex, skip=("target",))}
        out["cardioCategory"] = ex.cardio_category.value
        out.update(_flat_to_dict(ex.target))
        return out
    raise TypeError(f"Unknown template exercise kind: {type(ex).__name__}")


def template_exercise_from_dict(data: Dict[str, Any]) -> TemplateExercise:
    kind = data.get("type")
    if kind == ExerciseType.STRENGTH.value:
        return StrengthTemplateExercise(**_flat_kwargs(StrengthTemplateExercise, data))
    if kind == ExerciseType.CARDIO.value:
        category = CardioCategory(data.get("cardioCategory") or CardioCategory.OTHER.value)
        target_cls = CARDIO_TARGET_TYPES[category]
        return CardioTemplateExercise(
            target=target_cls(**_flat_kwargs(target_cls, data)),
            **_flat_kwargs(CardioTemplateExercise, data, skip=("target",)),
        )
    raise ValueError(f"Unknown template exercise type: {kind!r}")


def template_to_dict(template: Template) -> Dict[str, Any]:
    out = _flat_to_dict(template, skip=("exercises",))
    out["exercises"] = [template_exercise_to_dict(ex) for ex in template.exercises]
    return out


def template_from_dict(data: Dict[str, Any]) -> Template:
    kwargs = _flat_kwargs(Template, data, skip=("exercises", "template_type"))
    return Template(
        template_type=TemplateType(data.get("templateType") or TemplateType.STRENGTH.value),
        exercises=[template_exercise_from_dict(ex) for ex in data.get("exercises") or []],
        **kwargs,
    )


# === Sessions ===


def completed_set_to_dict(s: CompletedSet) -> Dict[str, Any]:
    if isinstance(s, (StrengthSet, CardioSet)):
        return {"type": s.type.value, **_flat_to_dict(s)}
    raise TypeError(f"Unknown completed set kind: {type(s).__name__}")


def completed_set_from_dict(data: Dict[str, Any]) -> CompletedSet:
    kind = data.get("type")
    if kind == ExerciseType.STRENGTH.value:
        return StrengthSet(**_flat_kwargs(StrengthSet, data))
    if kind == ExerciseType.CARDIO.value:
        return CardioSet(**_flat_kwargs(CardioSet, data))
    raise ValueError(f"Unknown completed set type: {kind!r}")


def session_exercise_to_dict(ex: SessionExercise) -> Dict[str, Any]:
    out = _flat_to_dict(ex, skip=("sets",))
    out["sets"] = [completed_set_to_dict(s) for s in ex.sets]
    return out


def session_exercise_from_dict(data: Dict[str, Any]) -> SessionExercise:
    kwargs = _flat_kwargs(SessionExercise, data, skip=("sets", "type"))
    kwargs.setdefault("id", None)
    return SessionExercise(
        type=ExerciseType(data.get("type") or ExerciseType.STRENGTH.value),
        sets=[completed_set_from_dict(s) for s in data.get("sets") or []],
        **kwargs,
    )


def session_to_dict(session: Session) -> Dict[str, Any]:
    out = _flat_to_dict(session, skip=("exercises",))
    out["exercises"] = [session_exercise_to_dict(ex) for ex in session.exercises]
    return out


def session_from_dict(data: Dict[str, Any]) -> Session:
    kwargs = _flat_kwargs(Session, data, skip=("exercises",))
    return Session(
        exercises=[session_exercise_from_dict(ex) for ex in data.get("exercises") or []],
        **kwargs,
    )


# === Flat records ===


def custom_exercise_to_dict(exercise: CustomExercise) -> Dict[str, Any]:
    return _flat_to_dict(exercise)


def custom_exercise_from_dict(data: Dict[str, Any]) -> CustomExercise:
    kwargs = _flat_kwargs(CustomExercise, data, skip=("type",))
    return CustomExercise(type=ExerciseType(data.get("type") or "strength"), **kwargs)


def weight_entry_to_dict(entry: WeightEntry) -> Dict[str, Any]:
    return _flat_to_dict(entry)


def weight_entry_from_dict(data: Dict[str, Any]) -> WeightEntry:
    return WeightEntry(**_flat_kwargs(WeightEntry, data))


def preferences_to_dict(prefs: Preferences) -> Dict[str, Any]:
    return _flat_to_dict(prefs)


def preferences_from_dict(data: Optional[Dict[str, Any]]) -> Preferences:
    return Preferences(**_flat_kwargs(Preferences, data or {}))


# === Whole state ===


def state_to_dict(state: AppState) -> Dict[str, Any]:
    """Serialize a snapshot into the ``state`` object of the persisted blob."""
    return {
        "templates": [template_to_dict(t) for t in state.templates],
        "sessions": [session_to_dict(s) for s in state.sessions],
        "activeSession": session_to_dict(state.active_session) if state.active_session else None,
        "preferences": preferences_to_dict(state.preferences),
        "customExercises": [custom_exercise_to_dict(e) for e in state.custom_exercises],
        "weightEntries": [weight_entry_to_dict(e) for e in state.weight_entries],
        "workoutGoal": state.workout_goal,
        "currentWeek": state.current_week,
        "weekStartedAt": state.week_started_at,
        "hasCompletedIntro": state.has_completed_intro,
    }


def state_from_dict(data: Dict[str, Any]) -> AppState:
    """Build a snapshot from the ``state`` object of the persisted blob.

    Raises:
        ValueError, TypeError, KeyError: if the data does not have the
            expected shape.
    """
    active = data.get("activeSession")
    defaults = AppState()
    return AppState(
        templates=[template_from_dict(t) for t in data.get("templates") or []],
        sessions=[session_from_dict(s) for s in data.get("sessions") or []],
        active_session=session_from_dict(active) if active else None,
        preferences=preferences_from_dict(data.get("preferences")),
        custom_exercises=[custom_exercise_from_dict(e) for e in data.get("customExercises") or []],
        weight_entries=[weight_entry_from_dict(e) for e in data.get("weightEntries") or []],
        workout_goal=data.get("workoutGoal") or defaults.workout_goal,
        current_week=data.get("currentWeek", defaults.current_week),
        week_started_at=data.get("weekStartedAt"),
        has_completed_intro=bool(data.get("hasCompletedIntro", False)),
    )
