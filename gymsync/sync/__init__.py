"""Sync engine: migration, reconciliation, incremental pushes and orchestration."""

from gymsync.sync.dedup import DedupResult, run_dedup
from gymsync.sync.migrator import MigrationReport, migrate_identifiers
from gymsync.sync.orchestrator import SyncOrchestrator, SyncReport
from gymsync.sync.pusher import ChangePusher, PushOperation, PushOutcome
from gymsync.sync.reconciler import LocalOnlyItems, RemoteSnapshot, fetch_snapshot, reconcile
from gymsync.sync.state import SubscriberMode, SyncState
from gymsync.sync.subscriber import ChangeSubscriber

__all__ = [
    "ChangePusher",
    "ChangeSubscriber",
    "DedupResult",
    "LocalOnlyItems",
    "MigrationReport",
    "PushOperation",
    "PushOutcome",
    "RemoteSnapshot",
    "SubscriberMode",
    "SyncOrchestrator",
    "SyncReport",
    "SyncState",
    "fetch_snapshot",
    "migrate_identifiers",
    "reconcile",
    "run_dedup",
]
