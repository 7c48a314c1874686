"""Merge a remote snapshot into local state.

Cloud wins on every collision, but nothing that exists only locally is ever
dropped: local-only items are appended to the reconciled collections and
reported back so the caller can push them.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from gymsync.protocols import RemoteFetchError, RemoteStore
from gymsync.remote.rows import PREFERENCE_COLUMNS
from gymsync.types import (
    AppState,
    Collection,
    CustomExercise,
    Preferences,
    Session,
    Template,
    WeightEntry,
    is_valid_uuid,
)

logger = logging.getLogger(__name__)


@dataclass
class RemoteSnapshot:
    """Everything fetched from the backend for one reconciliation."""

    profile: Optional[Dict[str, Any]] = None
    templates: List[Template] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    active_session: Optional[Session] = None
    custom_exercises: List[CustomExercise] = field(default_factory=list)
    weight_entries: List[WeightEntry] = field(default_factory=list)


@dataclass
class LocalOnlyItems:
    """Local items the backend has never seen."""

    templates: List[Template] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    custom_exercises: List[CustomExercise] = field(default_factory=list)
    weight_entries: List[WeightEntry] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        return {
            Collection.TEMPLATES.value: len(self.templates),
            Collection.SESSIONS.value: len(self.sessions),
            Collection.CUSTOM_EXERCISES.value: len(self.custom_exercises),
            Collection.WEIGHT_ENTRIES.value: len(self.weight_entries),
        }

    def __len__(self) -> int:
        return sum(self.counts().values())


async def fetch_snapshot(remote: RemoteStore, user_id: str) -> RemoteSnapshot:
    """Fetch all six collections concurrently.

    Raises:
        RemoteFetchError: for the first failed fetch, in collection order.
            Nothing is returned if any fetch fails.
    """
    names = (
        Collection.PROFILE,
        Collection.TEMPLATES,
        Collection.SESSIONS,
        Collection.ACTIVE_SESSION,
        Collection.CUSTOM_EXERCISES,
        Collection.WEIGHT_ENTRIES,
    )
    results = await asyncio.gather(
        remote.fetch_profile(user_id),
        remote.fetch_templates(user_id),
        remote.fetch_sessions(user_id),
        remote.fetch_active_session(user_id),
        remote.fetch_custom_exercises(user_id),
        remote.fetch_weight_entries(user_id),
        return_exceptions=True,
    )
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.error(f"Fetch of {name.value} failed: {result}")
            raise RemoteFetchError(name.value, result) from result
    profile, templates, sessions, active, custom_exercises, weight_entries = results
    return RemoteSnapshot(
        profile=profile,
        templates=list(templates or []),
        sessions=list(sessions or []),
        active_session=active,
        custom_exercises=list(custom_exercises or []),
        weight_entries=list(weight_entries or []),
    )


def merge_collection(
    remote: List[Any], local: List[Any], key: Callable[[Any], Any]
) -> Tuple[List[Any], List[Any]]:
    """Return ``(remote + local-only, local-only)`` using ``key`` as natural key.

    Each key appears at most once in the result; the first occurrence wins.
    """
    remote = _unique(remote, key)
    remote_keys = {key(item) for item in remote}
    local_only = [item for item in _unique(local, key) if key(item) not in remote_keys]
    return [*remote, *local_only], local_only


def _unique(items: List[Any], key: Callable[[Any], Any]) -> List[Any]:
    seen = set()
    unique = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    if len(unique) != len(items):
        logger.warning(f"Dropped {len(items) - len(unique)} duplicate items during merge")
    return unique


def merge_preferences(local: Preferences, profile: Optional[Dict[str, Any]]) -> Preferences:
    """Field-by-field merge: profile values win where the profile has them."""
    if not profile:
        return local
    updates = {
        column: profile[column]
        for column in PREFERENCE_COLUMNS
        if profile.get(column) is not None
    }
    return replace(local, **updates) if updates else local


def _profile_fields(state: AppState, profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not profile:
        return {}
    updates: Dict[str, Any] = {}
    if profile.get("workout_goal"):
        updates["workout_goal"] = profile["workout_goal"]
    if profile.get("current_week") is not None:
        updates["current_week"] = profile["current_week"]
    if profile.get("week_started_at"):
        updates["week_started_at"] = profile["week_started_at"]
    # Intro completion only ever moves forward
    if profile.get("has_completed_intro") and not state.has_completed_intro:
        updates["has_completed_intro"] = True
    return updates


def _by_id(item: Any) -> Any:
    return item.id


def _by_date(entry: WeightEntry) -> str:
    return entry.date


def reconcile(local: AppState, snapshot: RemoteSnapshot) -> Tuple[AppState, LocalOnlyItems]:
    """Merge ``snapshot`` into ``local``.

    Returns the reconciled state and the local-only items that should be
    pushed. Id-keyed local-only items are only reported when their id is a
    valid UUID; weight entries are keyed by date and always reported.
    """
    templates, local_templates = merge_collection(snapshot.templates, local.templates, _by_id)
    sessions, local_sessions = merge_collection(snapshot.sessions, local.sessions, _by_id)
    exercises, local_exercises = merge_collection(
        snapshot.custom_exercises, local.custom_exercises, _by_id
    )
    weights, local_weights = merge_collection(
        snapshot.weight_entries, local.weight_entries, _by_date
    )

    local_only = LocalOnlyItems(
        templates=[t for t in local_templates if is_valid_uuid(t.id)],
        sessions=[s for s in local_sessions if is_valid_uuid(s.id)],
        custom_exercises=[e for e in local_exercises if is_valid_uuid(e.id)],
        weight_entries=local_weights,
    )
    skipped = (
        len(local_templates) + len(local_sessions) + len(local_exercises)
        - len(local_only.templates) - len(local_only.sessions) - len(local_only.custom_exercises)
    )
    if skipped:
        logger.warning(f"{skipped} local-only items have non-UUID ids and will not be pushed")

    reconciled = replace(
        local,
        templates=templates,
        sessions=sessions,
        custom_exercises=exercises,
        weight_entries=weights,
        preferences=merge_preferences(local.preferences, snapshot.profile),
        active_session=snapshot.active_session or local.active_session,
        **_profile_fields(local, snapshot.profile),
    )
    logger.debug(
        f"Reconciled: {len(templates)} templates, {len(sessions)} sessions, "
        f"{len(exercises)} custom exercises, {len(weights)} weight entries; "
        f"{len(local_only)} local-only"
    )
    return reconciled, local_only
