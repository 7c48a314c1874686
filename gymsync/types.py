"""
Shared data types for gymsync.

All entity dataclasses live here. These are the shared vocabulary between
the entity store, the remote adapter and the sync engine. Entities are
treated as immutable values: store mutators always build new objects and
never edit an entity in place, so change detection can compare snapshots.

Template exercise specs are a tagged union. Code that branches on the
kind of exercise matches on the concrete class and raises ``TypeError``
for anything it does not know.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

# === Shared Utility Functions ===

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return datetime.now(timezone.utc).isoformat()


def is_valid_uuid(value: Any) -> bool:
    """Check whether a value is a syntactically valid UUID string."""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


# === Enums ===


class ExerciseType(str, Enum):
    """Top-level exercise kind."""

    STRENGTH = "strength"
    CARDIO = "cardio"


class TemplateType(str, Enum):
    """Kind of workout a template describes."""

    STRENGTH = "strength"
    CARDIO = "cardio"


class CardioCategory(str, Enum):
    """How a cardio exercise is tracked in a template."""

    DISTANCE = "distance"
    INTERVAL = "interval"
    LAPS = "laps"
    DURATION = "duration"
    OTHER = "other"


class SyncStatus(str, Enum):
    """Status exposed by the sync orchestrator to the rest of the app."""

    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    OFFLINE = "offline"


class Collection(str, Enum):
    """Entity collections kept in sync with the backend."""

    TEMPLATES = "templates"
    SESSIONS = "sessions"
    CUSTOM_EXERCISES = "custom_exercises"
    WEIGHT_ENTRIES = "weight_entries"
    PROFILE = "profile"
    ACTIVE_SESSION = "active_session"


# Collections whose natural key is the entity id (weight entries use date)
ID_KEYED_COLLECTIONS = (Collection.TEMPLATES, Collection.SESSIONS, Collection.CUSTOM_EXERCISES)


# === Template exercise specs ===


@dataclass
class DistanceTarget:
    """Targets for distance-style cardio (running, cycling, rowing)."""

    target_duration_minutes: Optional[float] = None
    target_intensity: Optional[str] = None

    category: ClassVar[CardioCategory] = CardioCategory.DISTANCE


@dataclass
class IntervalTarget:
    """Targets for interval cardio (HIIT, boxing rounds)."""

    rounds: Optional[int] = None
    work_seconds: Optional[int] = None
    rest_between_rounds_seconds: Optional[int] = None

    category: ClassVar[CardioCategory] = CardioCategory.INTERVAL


@dataclass
class LapsTarget:
    """Targets for lap-counted cardio (swimming)."""

    target_laps: Optional[int] = None

    category: ClassVar[CardioCategory] = CardioCategory.LAPS


@dataclass
class DurationTarget:
    """Targets for time-on-machine cardio (elliptical, stair climber)."""

    target_duration_minutes: Optional[float] = None
    target_intensity: Optional[str] = None

    category: ClassVar[CardioCategory] = CardioCategory.DURATION


@dataclass
class OtherTarget:
    """Targets for cardio that fits no other category."""

    target_duration_minutes: Optional[float] = None

    category: ClassVar[CardioCategory] = CardioCategory.OTHER


CardioTarget = Union[DistanceTarget, IntervalTarget, LapsTarget, DurationTarget, OtherTarget]

CARDIO_TARGET_TYPES: Dict[CardioCategory, type] = {
    CardioCategory.DISTANCE: DistanceTarget,
    CardioCategory.INTERVAL: IntervalTarget,
    CardioCategory.LAPS: LapsTarget,
    CardioCategory.DURATION: DurationTarget,
    CardioCategory.OTHER: OtherTarget,
}


@dataclass
class StrengthTemplateExercise:
    """A strength exercise slot in a workout template."""

    exercise_id: str
    target_sets: Optional[int] = None
    target_reps: Optional[int] = None
    rest_seconds: Optional[int] = None

    type: ClassVar[ExerciseType] = ExerciseType.STRENGTH


@dataclass
class CardioTemplateExercise:
    """A cardio exercise slot in a workout template."""

    exercise_id: str
    target: CardioTarget = field(default_factory=OtherTarget)
    rest_seconds: Optional[int] = None
    tracking_mode: str = "detailed"  # 'detailed' | 'simple'
    target_calories: Optional[float] = None

    type: ClassVar[ExerciseType] = ExerciseType.CARDIO

    @property
    def cardio_category(self) -> CardioCategory:
        return self.target.category


TemplateExercise = Union[StrengthTemplateExercise, CardioTemplateExercise]


@dataclass
class Template:
    """A reusable workout plan."""

    id: str
    name: str
    template_type: TemplateType = TemplateType.STRENGTH
    exercises: List[TemplateExercise] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    copied_from: Optional[Dict[str, Any]] = None  # provenance when copied from another user
    in_rotation: bool = True


# === Sessions ===


@dataclass
class StrengthSet:
    """A completed strength set."""

    weight: float
    reps: int
    unit: str = "lbs"
    completed_at: Optional[str] = None

    type: ClassVar[ExerciseType] = ExerciseType.STRENGTH


@dataclass
class CardioSet:
    """A completed cardio effort."""

    duration_seconds: Optional[int] = None
    distance: Optional[float] = None
    distance_unit: Optional[str] = None
    calories: Optional[float] = None
    completed_at: Optional[str] = None

    type: ClassVar[ExerciseType] = ExerciseType.CARDIO


CompletedSet = Union[StrengthSet, CardioSet]


@dataclass
class SessionExercise:
    """An exercise instance logged during a session."""

    id: str
    exercise_id: str
    type: ExerciseType = ExerciseType.STRENGTH
    rest_seconds: Optional[int] = None
    target_sets: Optional[int] = None  # strength only
    target_reps: Optional[int] = None  # strength only
    sets: List[CompletedSet] = field(default_factory=list)


@dataclass
class Session:
    """An active or completed workout."""

    id: str
    name: str
    started_at: str
    exercises: List[SessionExercise] = field(default_factory=list)
    template_id: Optional[str] = None
    completed_at: Optional[str] = None
    custom_title: Optional[str] = None
    mood: Optional[int] = None
    progressive_overload_week: Optional[int] = None
    workout_goal: Optional[str] = None
    personal_bests: Optional[List[Dict[str, Any]]] = None
    streak_count: Optional[int] = None


# === Exercises, weight, preferences ===


@dataclass
class CustomExercise:
    """A user-defined movement."""

    id: str
    name: str
    type: ExerciseType = ExerciseType.STRENGTH
    muscle_groups: Optional[List[str]] = None  # strength only
    equipment: Optional[str] = None  # strength only
    cardio_type: Optional[str] = None  # cardio only
    instructions: Optional[str] = None


@dataclass
class WeightEntry:
    """A body-weight sample, unique per date."""

    date: str
    weight: float
    unit: str = "lbs"


@dataclass
class Preferences:
    """Flat record of user settings, merged field by field."""

    weight_unit: str = "lbs"
    distance_unit: str = "mi"
    default_rest_seconds: int = 90
    dark_mode: bool = False
    experience_level: str = "intermediate"
    weekly_workout_goal: int = 4
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    openai_api_key: Optional[str] = None


# === Store snapshot ===


@dataclass(frozen=True)
class AppState:
    """Complete snapshot of local user data held by the entity store."""

    templates: List[Template] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    active_session: Optional[Session] = None
    preferences: Preferences = field(default_factory=Preferences)
    custom_exercises: List[CustomExercise] = field(default_factory=list)
    weight_entries: List[WeightEntry] = field(default_factory=list)
    workout_goal: str = "build"
    current_week: int = 0
    week_started_at: Optional[str] = None
    has_completed_intro: bool = False


@dataclass
class Identity:
    """Identity and connectivity triple supplied by auth/network collaborators."""

    user_id: Optional[str] = None
    is_authenticated: bool = False
    is_online: bool = False

    @property
    def can_sync(self) -> bool:
        return bool(self.user_id) and self.is_authenticated and self.is_online
