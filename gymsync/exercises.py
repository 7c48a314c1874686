"""Built-in exercise vocabulary.

Built-in exercises ship with the app and are identified by fixed slugs such
as ``bench-press``. These ids are not UUIDs, are never stored remotely as
custom exercises, and must never be re-keyed by the identifier migrator.
"""

BUILTIN_EXERCISE_IDS = frozenset(
    {
        # Chest
        "bench-press",
        "incline-bench-press",
        "decline-bench-press",
        "dumbbell-bench-press",
        "incline-dumbbell-press",
        "dumbbell-fly",
        "cable-crossover",
        "chest-dip",
        "push-up",
        "machine-chest-press",
        # Back
        "deadlift",
        "sumo-deadlift",
        "romanian-deadlift",
        "barbell-row",
        "pendlay-row",
        "dumbbell-row",
        "lat-pulldown",
        "pull-up",
        "chin-up",
        "cable-row",
        "t-bar-row",
        "machine-row",
        # Shoulders
        "overhead-press",
        "seated-dumbbell-press",
        "arnold-press",
        "lateral-raise",
        "front-raise",
        "rear-delt-fly",
        "face-pull",
        "upright-row",
        "shrug",
        "dumbbell-shrug",
        # Legs
        "squat",
        "front-squat",
        "leg-press",
        "hack-squat",
        "leg-extension",
        "goblet-squat",
        "bulgarian-split-squat",
        "lunge",
        "leg-curl",
        "seated-leg-curl",
        "stiff-leg-deadlift",
        "hip-thrust",
        "glute-bridge",
        "cable-pull-through",
        "standing-calf-raise",
        "seated-calf-raise",
        # Arms
        "barbell-curl",
        "ez-bar-curl",
        "dumbbell-curl",
        "hammer-curl",
        "preacher-curl",
        "incline-dumbbell-curl",
        "cable-curl",
        "concentration-curl",
        "close-grip-bench",
        "skull-crusher",
        "tricep-pushdown",
        "rope-pushdown",
        "overhead-tricep-extension",
        "tricep-dip",
        "tricep-kickback",
        # Core
        "plank",
        "hanging-leg-raise",
        "cable-crunch",
        "ab-wheel-rollout",
        "russian-twist",
        "dead-bug",
        "mountain-climber",
    }
)


def is_builtin_exercise(exercise_id: str) -> bool:
    """Check whether an exercise id belongs to the built-in vocabulary."""
    return exercise_id in BUILTIN_EXERCISE_IDS
