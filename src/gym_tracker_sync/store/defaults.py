"""Default exercise catalog seeded on first run."""
from typing import List

from gym_tracker_sync.models import Exercise

MUSCLE_GROUPS = ["Chest", "Back", "Legs", "Shoulders", "Biceps", "Triceps", "Core"]

_DEFAULTS = [
    # Chest
    ("bench-press", "Bench Press", "Chest"),
    ("incline-bench-press", "Incline Bench Press", "Chest"),
    ("dumbbell-press", "Dumbbell Press", "Chest"),
    ("push-ups", "Push-ups", "Chest"),
    ("dips", "Dips", "Chest"),
    # Back
    ("deadlift", "Deadlift", "Back"),
    ("pull-ups", "Pull-ups", "Back"),
    ("barbell-rows", "Barbell Rows", "Back"),
    ("lat-pulldown", "Lat Pulldown", "Back"),
    ("cable-rows", "Cable Rows", "Back"),
    # Legs
    ("squat", "Squat", "Legs"),
    ("leg-press", "Leg Press", "Legs"),
    ("lunges", "Lunges", "Legs"),
    ("leg-curls", "Leg Curls", "Legs"),
    ("calf-raises", "Calf Raises", "Legs"),
    # Shoulders
    ("overhead-press", "Overhead Press", "Shoulders"),
    ("lateral-raises", "Lateral Raises", "Shoulders"),
    ("front-raises", "Front Raises", "Shoulders"),
    ("rear-delt-flys", "Rear Delt Flys", "Shoulders"),
    # Arms
    ("bicep-curls", "Bicep Curls", "Arms"),
    ("tricep-extensions", "Tricep Extensions", "Arms"),
    ("hammer-curls", "Hammer Curls", "Arms"),
    ("close-grip-bench", "Close Grip Bench Press", "Arms"),
]


def default_exercises() -> List[Exercise]:
    """Return a fresh copy of the seed catalog."""
    return [
        Exercise(id=ex_id, name=name, muscle_group=group, is_default=True)
        for ex_id, name, group in _DEFAULTS
    ]
