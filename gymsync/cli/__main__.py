"""
gymsync CLI - inspect and sync the local workout store.

Usage:
    gymsync status [--json]
    gymsync migrate-ids
    gymsync sync --user-id ID [--token JWT]
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from gymsync.config import Settings, get_settings
from gymsync.logging_config import setup_gymsync_logging
from gymsync.storage.entity_store import (
    DEDUP_FLAG,
    UUID_MIGRATION_FLAG,
    EntityStore,
    FlagStore,
)
from gymsync.sync.migrator import migrate_identifiers
from gymsync.types import Identity, is_valid_uuid

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def _open_store(settings: Settings) -> EntityStore:
    return EntityStore.open(settings.resolved_db_path())


def cmd_status(args, settings: Settings):
    """Show entity counts, one-shot flags and legacy id count."""
    store = _open_store(settings)
    flags = FlagStore(store.kv)
    state = store.get_state()
    legacy_ids = sum(
        1
        for item in (*state.templates, *state.sessions, *state.custom_exercises)
        if not is_valid_uuid(item.id)
    )
    status = {
        "db_path": str(settings.resolved_db_path()),
        "counts": store.counts(),
        "legacy_ids": legacy_ids,
        "flags": {
            "uuid_migration_complete": flags.is_set(UUID_MIGRATION_FLAG),
            "dedup_complete": flags.is_set(DEDUP_FLAG),
        },
        "remote_configured": settings.has_remote,
    }

    if args.json:
        print(json.dumps(status, indent=2))
        return

    print(f"Store: {status['db_path']}")
    print("=" * 40)
    for name, count in status["counts"].items():
        print(f"  {name:<18} {count}")
    print(f"  {'legacy ids':<18} {legacy_ids}")
    print()
    print(f"UUID migration: {'done' if status['flags']['uuid_migration_complete'] else 'pending'}")
    print(f"Template dedup:  {'done' if status['flags']['dedup_complete'] else 'pending'}")
    print(f"Remote:          {'configured' if settings.has_remote else 'not configured'}")


def cmd_migrate_ids(args, settings: Settings):
    """Rewrite legacy ids in the local store without contacting the backend."""
    store = _open_store(settings)
    migrated, report = migrate_identifiers(store.get_state())
    if not report.changed:
        print("All identifiers are already UUIDs.")
        return
    store.replace_state(migrated)
    FlagStore(store.kv).set(UUID_MIGRATION_FLAG)
    print(
        f"Migrated {len(report.templates)} templates, {len(report.sessions)} sessions, "
        f"{len(report.custom_exercises)} custom exercises, "
        f"{report.session_exercises} session exercises"
    )


async def _run_sync(store: EntityStore, settings: Settings, user_id: str, token: str):
    from gymsync.remote.client import SupabaseRemoteStore
    from gymsync.sync.orchestrator import SyncOrchestrator

    remote = await SupabaseRemoteStore.from_settings(settings, access_token=token)
    orchestrator = SyncOrchestrator(store, remote)
    try:
        report = await orchestrator.set_identity(
            Identity(user_id=user_id, is_authenticated=True, is_online=True)
        )
        await orchestrator.pusher.drain()
    finally:
        await orchestrator.close()
    return report, orchestrator.pusher.history


def cmd_sync(args, settings: Settings):
    """Run one full sync cycle against Supabase and wait for pushes."""
    if not settings.has_remote:
        print("Supabase is not configured. Set GYMSYNC_SUPABASE_URL and GYMSYNC_SUPABASE_KEY.")
        sys.exit(1)

    store = _open_store(settings)
    report, outcomes = asyncio.run(_run_sync(store, settings, args.user_id, args.token))

    if not report.success:
        print(f"Sync failed: {report.error}")
        sys.exit(1)

    failed = [o for o in outcomes if not o.ok]
    skipped = [o for o in outcomes if o.ok and o.skipped]
    print("Sync complete")
    for name, count in report.reconciled.items():
        print(f"  {name:<18} {count} (local-only {report.local_only.get(name, 0)})")
    if report.dedup and report.dedup.ran:
        print(f"  dedup removed {report.dedup.fixed} duplicate template exercises")
    print(f"Pushes: {len(outcomes) - len(failed)} ok, {len(skipped)} skipped, {len(failed)} failed")
    for outcome in failed:
        print(f"  ✗ {outcome.operation.value} {outcome.collection.value}:{outcome.key}: {outcome.error}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="gymsync",
        description="Offline-first sync for workout data",
    )
    parser.add_argument("--log-level", default=None, help="Override GYMSYNC_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_status = subparsers.add_parser("status", help="Show local store status")
    p_status.add_argument("--json", "-j", action="store_true")

    subparsers.add_parser("migrate-ids", help="Rewrite legacy ids to UUIDs locally")

    p_sync = subparsers.add_parser("sync", help="Run one sync cycle")
    p_sync.add_argument("--user-id", "-u", required=True, help="Supabase user id")
    p_sync.add_argument(
        "--token",
        default=os.environ.get("GYMSYNC_ACCESS_TOKEN"),
        help="User access token (default: $GYMSYNC_ACCESS_TOKEN)",
    )

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_gymsync_logging(getattr(args, "user_id", None) or "default", args.log_level or settings.log_level)

    try:
        if args.command == "status":
            cmd_status(args, settings)
        elif args.command == "migrate-ids":
            cmd_migrate_ids(args, settings)
        elif args.command == "sync":
            cmd_sync(args, settings)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
