"""
Protocols and errors for gymsync.

The sync engine talks to the backend only through :class:`RemoteStore`.
``gymsync.remote.client.SupabaseRemoteStore`` is the production
implementation; tests supply an in-memory fake.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from gymsync.types import CustomExercise, Session, Template, WeightEntry

# =============================================================================
# ERRORS
# =============================================================================


class GymSyncError(Exception):
    """Base for all gymsync errors."""

    pass


class NotAuthenticatedError(GymSyncError):
    """Raised when a sync operation is attempted without a valid identity."""

    pass


class RemoteFetchError(GymSyncError):
    """Raised when the fetch phase of a reconciliation fails.

    Carries the collection whose fetch failed first and the underlying error.
    """

    def __init__(self, collection: str, cause: BaseException):
        self.collection = collection
        self.cause = cause
        super().__init__(f"Failed to fetch {collection}: {cause}")


class RemotePushError(GymSyncError):
    """Raised when pushing a single incremental change fails."""

    def __init__(self, collection: str, key: str, cause: BaseException):
        self.collection = collection
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to push {collection}:{key}: {cause}")


class DuplicateKeyError(GymSyncError):
    """Raised by the remote when an insert collides with an existing primary key.

    Callers treat this as "already present"; it is never fatal.
    """

    def __init__(self, table: str, key: Optional[str] = None):
        self.table = table
        self.key = key
        super().__init__(f"Duplicate key on {table}" + (f": {key}" if key else ""))


class MigrationInputError(GymSyncError):
    """Raised when legacy data has a shape the identifier migrator cannot handle."""

    pass


class StoreCorruptError(GymSyncError):
    """Raised when the persisted entity store blob cannot be decoded."""

    pass


# =============================================================================
# REMOTE STORE
# =============================================================================


@runtime_checkable
class RemoteStore(Protocol):
    """Backend boundary used by the sync engine.

    Every method is a coroutine. Fetches raise on failure; push methods
    return ``True`` when a change was written and ``False`` when it was
    deliberately skipped (safety guard, already in flight, already present).
    """

    # --- Fetch ---

    async def fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    async def fetch_templates(self, user_id: str) -> List[Template]: ...

    async def fetch_sessions(self, user_id: str) -> List[Session]: ...

    async def fetch_active_session(self, user_id: str) -> Optional[Session]: ...

    async def fetch_custom_exercises(self, user_id: str) -> List[CustomExercise]: ...

    async def fetch_weight_entries(self, user_id: str) -> List[WeightEntry]: ...

    # --- Templates ---

    async def add_template(self, user_id: str, template: Template) -> bool: ...

    async def update_template(self, user_id: str, template: Template) -> bool: ...

    async def delete_template(self, user_id: str, template_id: str) -> bool: ...

    async def reorder_templates(self, user_id: str, template_ids: List[str]) -> bool: ...

    # --- Sessions ---

    async def add_session(self, user_id: str, session: Session) -> bool: ...

    async def update_session(self, user_id: str, session: Session) -> bool: ...

    async def delete_session(self, user_id: str, session_id: str) -> bool: ...

    async def reorder_sessions(self, user_id: str, session_ids: List[str]) -> bool: ...

    async def set_active_session(self, user_id: str, session: Optional[Session]) -> bool: ...

    # --- Custom exercises ---

    async def add_custom_exercise(self, user_id: str, exercise: CustomExercise) -> bool: ...

    async def update_custom_exercise(self, user_id: str, exercise: CustomExercise) -> bool: ...

    async def delete_custom_exercise(self, user_id: str, exercise_id: str) -> bool: ...

    # --- Weight entries ---

    async def upsert_weight_entry(self, user_id: str, entry: WeightEntry) -> bool: ...

    async def delete_weight_entry(self, user_id: str, date: str) -> bool: ...

    # --- Profile ---

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> bool: ...

    # --- Repair ---

    async def dedupe_template_exercises(self, user_id: str) -> int: ...
