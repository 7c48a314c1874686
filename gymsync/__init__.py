"""
gymsync - Offline-first sync engine for workout data.

Local state lives in a SQLite-backed entity store; a Supabase backend is
the shared copy across devices.
"""

from .storage import EntityStore, FlagStore
from .sync import SyncOrchestrator
from .types import AppState, Identity, SyncStatus

try:
    from importlib.metadata import version

    __version__ = version("gymsync")
except Exception:
    __version__ = "0.0.0"

__all__ = ["AppState", "EntityStore", "FlagStore", "Identity", "SyncOrchestrator", "SyncStatus"]
