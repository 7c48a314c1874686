"""Mutable sync state shared by the orchestrator, subscriber and pusher."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set

from gymsync.types import AppState, Collection


class SubscriberMode(str, Enum):
    """Whether store changes are currently pushed to the backend."""

    DISABLED = "disabled"
    ENABLED = "enabled"
    SUPPRESSED = "suppressed"


@dataclass
class SyncState:
    """Owned by the orchestrator and injected into its collaborators."""

    mode: SubscriberMode = SubscriberMode.DISABLED
    user_id: Optional[str] = None
    # Keys per collection considered already known to the backend
    baseline: Dict[Collection, Set[str]] = field(default_factory=dict)

    def reset_baseline(self, state: AppState) -> None:
        self.baseline = {
            Collection.TEMPLATES: {t.id for t in state.templates},
            Collection.SESSIONS: {s.id for s in state.sessions},
            Collection.CUSTOM_EXERCISES: {e.id for e in state.custom_exercises},
            Collection.WEIGHT_ENTRIES: {w.date for w in state.weight_entries},
        }

    def clear(self) -> None:
        self.mode = SubscriberMode.DISABLED
        self.user_id = None
        self.baseline = {}
