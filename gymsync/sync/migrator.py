"""One-time rewrite of legacy (non-UUID) identifiers to UUIDs.

Older installs generated ids like ``"1712345678-abc"``. The backend keys
rows by UUID, so before the first push every template, session and custom
exercise with a non-UUID id gets a fresh UUID, and every reference to the
old id is rewritten to match. Built-in exercise ids are a fixed vocabulary
and are left untouched.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from gymsync.exercises import is_builtin_exercise
from gymsync.protocols import MigrationInputError
from gymsync.types import (
    AppState,
    CustomExercise,
    Session,
    SessionExercise,
    Template,
    is_valid_uuid,
)

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    """Old-to-new id mappings produced by a migration run."""

    templates: Dict[str, str] = field(default_factory=dict)
    sessions: Dict[str, str] = field(default_factory=dict)
    custom_exercises: Dict[str, str] = field(default_factory=dict)
    session_exercises: int = 0

    @property
    def changed(self) -> bool:
        return bool(
            self.templates or self.sessions or self.custom_exercises or self.session_exercises
        )


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_list(name: str, value: Any) -> List[Any]:
    if not isinstance(value, list):
        raise MigrationInputError(f"{name} must be a list, got {type(value).__name__}")
    return value


def _check_entity(name: str, item: Any, cls: type) -> None:
    if not isinstance(item, cls):
        raise MigrationInputError(f"{name} contains {type(item).__name__}, expected {cls.__name__}")
    if not isinstance(item.id, str):
        raise MigrationInputError(f"{name} entry has non-string id {item.id!r}")


def _plan(items: List[Any]) -> Dict[Any, str]:
    """Map each non-UUID id to a freshly generated UUID."""
    mapping: Dict[Any, str] = {}
    for item in items:
        if not is_valid_uuid(item.id) and item.id not in mapping:
            mapping[item.id] = _new_id()
    return mapping


def _remap_exercise_id(exercise_id: str, exercise_map: Dict[Any, str]) -> str:
    if is_builtin_exercise(exercise_id):
        return exercise_id
    return exercise_map.get(exercise_id, exercise_id)


def _migrate_template(template: Template, template_map: Dict, exercise_map: Dict) -> Template:
    new_id = template_map.get(template.id, template.id)
    exercises = [
        replace(ex, exercise_id=_remap_exercise_id(ex.exercise_id, exercise_map))
        for ex in template.exercises
    ]
    changed = new_id != template.id or any(
        a.exercise_id != b.exercise_id for a, b in zip(exercises, template.exercises)
    )
    if not changed:
        return template
    return replace(template, id=new_id, exercises=exercises)


def _migrate_session_exercise(
    ex: SessionExercise, exercise_map: Dict
) -> Tuple[SessionExercise, bool]:
    if not isinstance(ex, SessionExercise):
        raise MigrationInputError(f"session exercise has unexpected type {type(ex).__name__}")
    if ex.id is not None and not isinstance(ex.id, str):
        raise MigrationInputError(f"session exercise has non-string id {ex.id!r}")
    new_instance_id = ex.id if is_valid_uuid(ex.id) else _new_id()
    new_exercise_id = _remap_exercise_id(ex.exercise_id, exercise_map)
    if new_instance_id == ex.id and new_exercise_id == ex.exercise_id:
        return ex, False
    return replace(ex, id=new_instance_id, exercise_id=new_exercise_id), new_instance_id != ex.id


def _migrate_session(
    session: Session,
    session_map: Dict,
    template_map: Dict,
    exercise_map: Dict,
    report: MigrationReport,
) -> Session:
    new_id = session_map.get(session.id, session.id)
    new_template_id = template_map.get(session.template_id, session.template_id)
    exercises = []
    exercises_changed = False
    for ex in _check_list("session exercises", session.exercises):
        migrated, rekeyed = _migrate_session_exercise(ex, exercise_map)
        exercises.append(migrated)
        exercises_changed = exercises_changed or migrated is not ex
        if rekeyed:
            report.session_exercises += 1
    if new_id == session.id and new_template_id == session.template_id and not exercises_changed:
        return session
    return replace(session, id=new_id, template_id=new_template_id, exercises=exercises)


def migrate_identifiers(state: AppState) -> Tuple[AppState, MigrationReport]:
    """Rewrite non-UUID identifiers and every reference to them.

    Returns the same ``state`` object when nothing needed rewriting, so a
    second run after a successful migration is a no-op.

    Raises:
        MigrationInputError: if a collection is not a list or an entity
            does not have a string id.
    """
    templates = _check_list("templates", state.templates)
    sessions = _check_list("sessions", state.sessions)
    custom_exercises = _check_list("custom_exercises", state.custom_exercises)
    for item in templates:
        _check_entity("templates", item, Template)
    for item in sessions:
        _check_entity("sessions", item, Session)
    for item in custom_exercises:
        _check_entity("custom_exercises", item, CustomExercise)
    active: Optional[Session] = state.active_session
    if active is not None:
        _check_entity("active_session", active, Session)

    # Built-in ids are never re-keyed
    exercise_map = {
        old: new for old, new in _plan(custom_exercises).items() if not is_builtin_exercise(old)
    }
    template_map = _plan(templates)
    session_map = _plan(sessions)
    if active is not None and not is_valid_uuid(active.id) and active.id not in session_map:
        session_map[active.id] = _new_id()

    report = MigrationReport(
        templates=dict(template_map),
        sessions=dict(session_map),
        custom_exercises=dict(exercise_map),
    )

    new_exercises = [
        replace(e, id=exercise_map[e.id]) if e.id in exercise_map else e for e in custom_exercises
    ]
    new_templates = [_migrate_template(t, template_map, exercise_map) for t in templates]
    new_sessions = [
        _migrate_session(s, session_map, template_map, exercise_map, report) for s in sessions
    ]
    new_active = (
        _migrate_session(active, session_map, template_map, exercise_map, report)
        if active is not None
        else None
    )

    unchanged = (
        all(a is b for a, b in zip(new_templates, templates))
        and all(a is b for a, b in zip(new_sessions, sessions))
        and all(a is b for a, b in zip(new_exercises, custom_exercises))
        and new_active is active
    )
    if unchanged:
        logger.debug("All identifiers are already UUIDs, nothing to migrate")
        return state, MigrationReport()

    logger.info(
        f"Migrated identifiers: {len(template_map)} templates, {len(session_map)} sessions, "
        f"{len(exercise_map)} custom exercises, {report.session_exercises} session exercises"
    )
    return (
        replace(
            state,
            templates=new_templates,
            sessions=new_sessions,
            custom_exercises=new_exercises,
            active_session=new_active,
        ),
        report,
    )
