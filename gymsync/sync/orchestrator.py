"""Sync orchestrator.

Owns the sync lifecycle: reacts to identity/connectivity changes, runs the
full reconciliation cycle and exposes a status for the rest of the app.

Cycle order::

    suppress -> migrate ids (once) -> fetch -> reconcile -> commit
             -> dedup (once) -> resume (baseline reset) -> push local-only

The baseline reset happens strictly after the reconciled state is committed
and the dedup pass has written its templates, so nothing pulled from the
backend is pushed straight back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from gymsync.logging_config import log_migration, log_sync
from gymsync.protocols import MigrationInputError, NotAuthenticatedError, RemoteFetchError, RemoteStore
from gymsync.storage.entity_store import UUID_MIGRATION_FLAG, EntityStore, FlagStore
from gymsync.sync.dedup import DedupResult, run_dedup
from gymsync.sync.migrator import MigrationReport, migrate_identifiers
from gymsync.sync.pusher import ChangePusher
from gymsync.sync.reconciler import fetch_snapshot, reconcile
from gymsync.sync.state import SyncState
from gymsync.sync.subscriber import ChangeSubscriber
from gymsync.types import Identity, SyncStatus, utc_now

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus, Optional[str]], None]


@dataclass
class SyncReport:
    """Summary of one sync cycle."""

    status: SyncStatus = SyncStatus.IDLE
    error: Optional[str] = None
    reconciled: Dict[str, int] = field(default_factory=dict)
    local_only: Dict[str, int] = field(default_factory=dict)
    migration: Optional[MigrationReport] = None
    dedup: Optional[DedupResult] = None

    @property
    def success(self) -> bool:
        return self.status == SyncStatus.SYNCED


class SyncOrchestrator:
    """Coordinates the store, the remote and the change subscriber."""

    def __init__(
        self,
        store: EntityStore,
        remote: RemoteStore,
        flags: Optional[FlagStore] = None,
        sync_state: Optional[SyncState] = None,
    ):
        self.store = store
        self.remote = remote
        self.flags = flags or FlagStore(store.kv)
        self.sync_state = sync_state or SyncState()
        self.pusher = ChangePusher(remote, self.sync_state)
        self.subscriber = ChangeSubscriber(store, self.pusher, self.sync_state)
        self.subscriber.attach()

        self.identity = Identity()
        self.status = SyncStatus.IDLE
        self.error: Optional[str] = None
        self.last_synced_at: Optional[str] = None
        self._listeners: List[StatusListener] = []
        self._cycle_lock = asyncio.Lock()

    # === Status ===

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_status(self, status: SyncStatus, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        if status == SyncStatus.SYNCED:
            self.last_synced_at = utc_now()
        for listener in list(self._listeners):
            try:
                listener(status, error)
            except Exception as e:
                logger.error(f"Sync status listener failed: {e}", exc_info=True)

    # === Identity ===

    async def set_identity(self, identity: Identity) -> Optional[SyncReport]:
        """Apply an auth/connectivity transition.

        Going offline or signing out disables the change subscriber. Being
        authenticated and online (at startup or after regaining either)
        enables it and runs a full cycle.
        """
        previous = self.identity
        self.identity = identity

        if identity.user_id and identity.is_authenticated and not identity.is_online:
            self.subscriber.disable()
            self._set_status(SyncStatus.OFFLINE)
            return None
        if not identity.can_sync:
            self.subscriber.disable()
            self._set_status(SyncStatus.IDLE)
            return None

        if previous.can_sync and previous.user_id == identity.user_id:
            return None
        self.subscriber.enable(identity.user_id)
        return await self.sync_now()

    # === Cycle ===

    def trigger(self) -> asyncio.Task:
        """Schedule a cycle without waiting for it."""
        return asyncio.get_running_loop().create_task(self.sync_now())

    async def sync_now(self) -> SyncReport:
        """Run one full sync cycle. Failures end in error status and are never raised."""
        if not self.identity.can_sync:
            error = NotAuthenticatedError("Sync requires a signed-in, online user")
            logger.info(str(error))
            status = SyncStatus.OFFLINE if self.identity.is_authenticated else SyncStatus.IDLE
            self._set_status(status)
            return SyncReport(status=status, error=str(error))

        async with self._cycle_lock:
            return await self._run_cycle(self.identity.user_id)

    async def _run_cycle(self, user_id: str) -> SyncReport:
        report = SyncReport()
        self._set_status(SyncStatus.SYNCING)
        self.subscriber.suppress()
        try:
            report.migration = self._migrate_once(user_id)
            snapshot = await fetch_snapshot(self.remote, user_id)
            if not self._is_current(user_id):
                return self._abandon(report, user_id)
            reconciled, local_only = reconcile(self.store.get_state(), snapshot)
            self.store.replace_state(reconciled)
            report.dedup = await run_dedup(self.remote, self.store, self.flags, user_id)
            if not self._is_current(user_id):
                return self._abandon(report, user_id)
        except RemoteFetchError as e:
            logger.error(f"Sync failed: {e}")
            return self._fail(report, user_id, str(e))
        except Exception as e:
            logger.error(f"Sync failed: {e}", exc_info=True)
            return self._fail(report, user_id, f"Sync failed: {e}")
        finally:
            self.subscriber.resume()

        state = self.store.get_state()
        report.reconciled = {
            "templates": len(state.templates),
            "sessions": len(state.sessions),
            "custom_exercises": len(state.custom_exercises),
            "weight_entries": len(state.weight_entries),
        }
        report.local_only = local_only.counts()
        self.pusher.push_local_only(local_only)
        log_sync(user_id, "pull", sum(report.reconciled.values()))
        if len(local_only):
            log_sync(user_id, "push", len(local_only))

        self._set_status(SyncStatus.SYNCED)
        report.status = SyncStatus.SYNCED
        logger.info(
            f"Sync complete for user={user_id}: {report.reconciled}, local-only {report.local_only}"
        )
        return report

    def _is_current(self, user_id: str) -> bool:
        return self.identity.can_sync and self.identity.user_id == user_id

    def _abandon(self, report: SyncReport, user_id: str) -> SyncReport:
        # status already reflects the sign-out / offline transition
        logger.info(f"Sync for user={user_id} abandoned: identity changed mid-cycle")
        report.status = self.status
        report.error = "identity changed during sync"
        return report

    def _fail(self, report: SyncReport, user_id: str, message: str) -> SyncReport:
        if not self._is_current(user_id):
            report.status = self.status
            report.error = message
            return report
        self._set_status(SyncStatus.ERROR, message)
        report.status = SyncStatus.ERROR
        report.error = message
        return report

    def _migrate_once(self, user_id: str) -> Optional[MigrationReport]:
        if self.flags.is_set(UUID_MIGRATION_FLAG):
            return None
        try:
            migrated, migration = migrate_identifiers(self.store.get_state())
        except MigrationInputError as e:
            logger.error(f"Identifier migration skipped: {e}")
            self.flags.set(UUID_MIGRATION_FLAG)
            return None
        self.store.replace_state(migrated)
        self.flags.set(UUID_MIGRATION_FLAG)
        if migration.changed:
            log_migration(
                user_id,
                templates=len(migration.templates),
                sessions=len(migration.sessions),
                exercises=len(migration.custom_exercises),
            )
        return migration

    async def close(self) -> None:
        """Wait for outstanding pushes and stop observing the store."""
        await self.pusher.drain()
        self.subscriber.detach()
