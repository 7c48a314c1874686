"""Local persistence for gymsync."""

from gymsync.storage.entity_store import (
    DEDUP_FLAG,
    STORE_KEY,
    UUID_MIGRATION_FLAG,
    EntityStore,
    FlagStore,
    KeyValueStore,
)

__all__ = [
    "DEDUP_FLAG",
    "STORE_KEY",
    "UUID_MIGRATION_FLAG",
    "EntityStore",
    "FlagStore",
    "KeyValueStore",
]
