"""Fire-and-forget pushes of individual changes.

Every push runs as its own asyncio task. Nothing is raised to the code that
scheduled it: the result of each push is published as a :class:`PushOutcome`
to registered listeners and the most recent ones are kept in
:attr:`ChangePusher.history`.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Set

from gymsync.protocols import RemotePushError, RemoteStore
from gymsync.sync.reconciler import LocalOnlyItems
from gymsync.sync.state import SyncState
from gymsync.types import Collection, utc_now

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 500


class PushOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    REORDER = "reorder"
    SET_ACTIVE = "set_active"
    PROFILE = "profile"


@dataclass
class PushOutcome:
    """Result of one push attempt."""

    collection: Collection
    operation: PushOperation
    key: Optional[str]
    ok: bool
    error: Optional[str] = None
    skipped: bool = False
    finished_at: str = field(default_factory=utc_now)


OutcomeListener = Callable[[PushOutcome], None]


class ChangePusher:
    """Schedules remote writes and reports how they went."""

    def __init__(self, remote: RemoteStore, sync_state: SyncState, history_limit: int = HISTORY_LIMIT):
        self._remote = remote
        self._state = sync_state
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[OutcomeListener] = []
        self.history: Deque[PushOutcome] = deque(maxlen=history_limit)

    def add_listener(self, listener: OutcomeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _publish(self, outcome: PushOutcome) -> None:
        self.history.append(outcome)
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception as e:
                logger.error(f"Push outcome listener failed: {e}", exc_info=True)

    def push(
        self,
        collection: Collection,
        operation: PushOperation,
        key: Optional[str],
        method: str,
        *args: Any,
    ) -> Optional[asyncio.Task]:
        """Schedule ``remote.<method>(user_id, *args)`` as a background task."""
        user_id = self._state.user_id
        if not user_id:
            logger.debug(f"No user, dropping {operation.value} of {collection.value}:{key}")
            self._publish(
                PushOutcome(collection, operation, key, ok=False, error="not authenticated", skipped=True)
            )
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, dropping {operation.value} of {collection.value}:{key}")
            self._publish(
                PushOutcome(collection, operation, key, ok=False, error="no event loop", skipped=True)
            )
            return None

        call = getattr(self._remote, method)
        task = loop.create_task(self._run(collection, operation, key, call(user_id, *args)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, collection: Collection, operation: PushOperation, key: Optional[str], coro) -> None:
        try:
            written = await coro
        except Exception as e:
            error = RemotePushError(collection.value, str(key), e)
            logger.error(str(error), exc_info=True)
            self._publish(PushOutcome(collection, operation, key, ok=False, error=str(e)))
            return
        if not written:
            logger.info(f"Push {operation.value} of {collection.value}:{key} skipped by remote")
        self._publish(PushOutcome(collection, operation, key, ok=True, skipped=not written))

    def push_local_only(self, items: LocalOnlyItems) -> int:
        """Schedule adds for everything reconciliation found only locally."""
        scheduled = 0
        for template in items.templates:
            self.push(Collection.TEMPLATES, PushOperation.ADD, template.id, "add_template", template)
            scheduled += 1
        for session in items.sessions:
            self.push(Collection.SESSIONS, PushOperation.ADD, session.id, "add_session", session)
            scheduled += 1
        for exercise in items.custom_exercises:
            self.push(
                Collection.CUSTOM_EXERCISES,
                PushOperation.ADD,
                exercise.id,
                "add_custom_exercise",
                exercise,
            )
            scheduled += 1
        for entry in items.weight_entries:
            self.push(
                Collection.WEIGHT_ENTRIES, PushOperation.ADD, entry.date, "upsert_weight_entry", entry
            )
            scheduled += 1
        if scheduled:
            logger.info(f"Scheduled {scheduled} local-only pushes")
        return scheduled

    async def drain(self) -> None:
        """Wait until every scheduled push has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
