"""Turn local store mutations into incremental remote pushes.

The subscriber compares each new snapshot with the previous one. Collection
items are diffed by natural key (id, or date for weight entries); scalar
slices of the state (preferences, goal, week, intro flag, active session)
are compared directly and pushed as profile or active-session updates.
"""

import logging
from dataclasses import fields
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from gymsync.remote.rows import PREFERENCE_COLUMNS
from gymsync.storage.entity_store import EntityStore
from gymsync.sync.pusher import ChangePusher, PushOperation
from gymsync.sync.state import SubscriberMode, SyncState
from gymsync.types import AppState, Collection, Preferences

logger = logging.getLogger(__name__)

DEFAULT_DELETE_COLLECTIONS: FrozenSet[Collection] = frozenset(
    {Collection.TEMPLATES, Collection.WEIGHT_ENTRIES}
)

# Remote method names per collection and operation
_METHODS: Dict[Collection, Dict[PushOperation, str]] = {
    Collection.TEMPLATES: {
        PushOperation.ADD: "add_template",
        PushOperation.UPDATE: "update_template",
        PushOperation.DELETE: "delete_template",
        PushOperation.REORDER: "reorder_templates",
    },
    Collection.SESSIONS: {
        PushOperation.ADD: "add_session",
        PushOperation.UPDATE: "update_session",
        PushOperation.DELETE: "delete_session",
        PushOperation.REORDER: "reorder_sessions",
    },
    Collection.CUSTOM_EXERCISES: {
        PushOperation.ADD: "add_custom_exercise",
        PushOperation.UPDATE: "update_custom_exercise",
        PushOperation.DELETE: "delete_custom_exercise",
    },
    Collection.WEIGHT_ENTRIES: {
        PushOperation.ADD: "upsert_weight_entry",
        PushOperation.UPDATE: "upsert_weight_entry",
        PushOperation.DELETE: "delete_weight_entry",
    },
}


def _key_of(collection: Collection, item: Any) -> str:
    return item.date if collection == Collection.WEIGHT_ENTRIES else item.id


def preference_changes(new: Preferences, prev: Preferences) -> Dict[str, Any]:
    """Profile columns whose preference value changed, with empty strings as NULL."""
    changes = {}
    for f in fields(Preferences):
        if f.name not in PREFERENCE_COLUMNS:
            continue
        value = getattr(new, f.name)
        if value != getattr(prev, f.name):
            changes[f.name] = None if value == "" else value
    return changes


class ChangeSubscriber:
    """Observes an :class:`EntityStore` and pushes what changed."""

    def __init__(
        self,
        store: EntityStore,
        pusher: ChangePusher,
        sync_state: SyncState,
        delete_collections: Iterable[Collection] = DEFAULT_DELETE_COLLECTIONS,
    ):
        self._store = store
        self._pusher = pusher
        self._state = sync_state
        self._delete_collections = frozenset(delete_collections)
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def mode(self) -> SubscriberMode:
        return self._state.mode

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self.on_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # === State machine ===

    def enable(self, user_id: str) -> None:
        self._state.user_id = user_id
        self._state.mode = SubscriberMode.ENABLED
        self._state.reset_baseline(self._store.get_state())
        logger.debug(f"Change subscriber enabled for user={user_id}")

    def disable(self) -> None:
        self._state.clear()
        logger.debug("Change subscriber disabled")

    def suppress(self) -> None:
        if self._state.mode == SubscriberMode.ENABLED:
            self._state.mode = SubscriberMode.SUPPRESSED

    def resume(self) -> None:
        """Lift suppression. The baseline becomes the current store state."""
        if self._state.mode != SubscriberMode.SUPPRESSED:
            return
        self._state.reset_baseline(self._store.get_state())
        self._state.mode = SubscriberMode.ENABLED

    # === Diffing ===

    def on_change(self, new: AppState, prev: AppState) -> None:
        if self._state.mode != SubscriberMode.ENABLED:
            return
        self._diff_collection(Collection.TEMPLATES, new.templates, prev.templates)
        self._diff_collection(Collection.SESSIONS, new.sessions, prev.sessions)
        self._diff_collection(
            Collection.CUSTOM_EXERCISES, new.custom_exercises, prev.custom_exercises
        )
        self._diff_collection(Collection.WEIGHT_ENTRIES, new.weight_entries, prev.weight_entries)
        self._diff_profile(new, prev)
        if new.active_session is not prev.active_session and new.active_session != prev.active_session:
            key = new.active_session.id if new.active_session else None
            self._pusher.push(
                Collection.ACTIVE_SESSION,
                PushOperation.SET_ACTIVE,
                key,
                "set_active_session",
                new.active_session,
            )

    def _push(
        self, collection: Collection, operation: PushOperation, key: Optional[str], *args: Any
    ) -> None:
        self._pusher.push(collection, operation, key, _METHODS[collection][operation], *args)

    def _diff_collection(self, collection: Collection, new_items: List[Any], prev_items: List[Any]) -> None:
        if new_items is prev_items:
            return
        baseline = self._state.baseline.setdefault(collection, set())
        prev_by_key = {_key_of(collection, item): item for item in prev_items}
        new_by_key = {_key_of(collection, item): item for item in new_items}

        for key, item in new_by_key.items():
            previous = prev_by_key.get(key)
            if previous is None:
                if key not in baseline:
                    self._push(collection, PushOperation.ADD, key, item)
                    baseline.add(key)
            elif item is not previous and item != previous:
                self._push(collection, PushOperation.UPDATE, key, item)

        if collection in self._delete_collections:
            for key in prev_by_key.keys() - new_by_key.keys():
                self._push(collection, PushOperation.DELETE, key, key)
                baseline.discard(key)

        if PushOperation.REORDER in _METHODS[collection]:
            new_order = list(new_by_key)
            prev_order = list(prev_by_key)
            if set(new_order) == set(prev_order) and new_order != prev_order:
                self._push(collection, PushOperation.REORDER, None, new_order)

    def _diff_profile(self, new: AppState, prev: AppState) -> None:
        updates: Dict[str, Any] = {}
        if new.preferences is not prev.preferences:
            updates.update(preference_changes(new.preferences, prev.preferences))
        if updates:
            self._push_profile(updates)
        if new.workout_goal != prev.workout_goal:
            self._push_profile({"workout_goal": new.workout_goal})
        if new.current_week != prev.current_week or new.week_started_at != prev.week_started_at:
            self._push_profile(
                {"current_week": new.current_week, "week_started_at": new.week_started_at}
            )
        if new.has_completed_intro != prev.has_completed_intro:
            self._push_profile({"has_completed_intro": new.has_completed_intro})

    def _push_profile(self, updates: Dict[str, Any]) -> None:
        self._pusher.push(
            Collection.PROFILE, PushOperation.PROFILE, self._state.user_id, "update_profile", updates
        )
