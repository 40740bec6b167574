"""
Progress aggregation over session history.

Everything here is a pure function of its inputs. Session history is stored
newest first; every series returned here is chronological (oldest first).
"""

import math
from typing import Dict, List, Optional, Sequence

from gym_tracker_sync.models import (
    Exercise,
    MuscleGroupVolumePoint,
    ProgressDataPoint,
    ProgressFilter,
    ProgressMetric,
    ProgressSummary,
    SessionStats,
    WorkoutEntry,
    WorkoutSession,
)

VOLUME_BUCKETS = ["Chest", "Back", "Legs", "Shoulders", "Biceps", "Triceps", "Core"]

_BICEPS_KEYWORDS = ("bicep", "curl")
_TRICEPS_KEYWORDS = ("tricep", "extension", "close grip")


def _round_half_up(value: float, digits: int = 1) -> float:
    """Round half away from zero (1.25 -> 1.3), unlike Python's bankers' rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def epley_one_rep_max(weight: float, reps: int) -> float:
    """Epley estimate of a one-repetition maximum: weight x (1 + reps / 30)."""
    return weight * (1 + reps / 30)


def entry_matches(entry: WorkoutEntry, progress_filter: ProgressFilter) -> bool:
    if progress_filter.type == "exercise":
        return entry.exercise_id == progress_filter.value
    return entry.exercise is not None and entry.exercise.muscle_group == progress_filter.value


def calculate_progress_data(
    sessions: Sequence[WorkoutSession],
    progress_filter: Optional[ProgressFilter],
) -> List[ProgressDataPoint]:
    """One data point per session containing at least one matching entry.

    Only the matching entries' sets contribute to a session's figures.
    """
    if progress_filter is None:
        return []

    points: List[ProgressDataPoint] = []
    for session in sessions:
        relevant = [e for e in session.entries if entry_matches(e, progress_filter)]
        if not relevant:
            continue

        volume_load = 0.0
        max_weight = 0.0
        max_e1rm = 0.0
        total_reps = 0
        for entry in relevant:
            for workout_set in entry.sets:
                volume_load += workout_set.weight * workout_set.reps
                max_weight = max(max_weight, workout_set.weight)
                total_reps += workout_set.reps
                max_e1rm = max(max_e1rm, epley_one_rep_max(workout_set.weight, workout_set.reps))

        points.append(
            ProgressDataPoint(
                date=session.date,
                volume_load=volume_load,
                max_weight=max_weight,
                estimated_1rm=_round_half_up(max_e1rm, 1),
                total_reps=total_reps,
            )
        )

    points.reverse()
    return points


def classify_muscle_group(exercise: Optional[Exercise]) -> Optional[str]:
    """Map an exercise to a volume bucket.

    "Arms" exercises are split into Biceps/Triceps by keywords in the name
    (biceps keywords win when both match). This is an approximation that
    depends on exercise naming: an arm exercise whose name has none of the
    keywords is not counted, and neither is any exercise whose group is not
    a known bucket.
    """
    if exercise is None:
        return None
    group = exercise.muscle_group
    if group == "Arms":
        name = exercise.name.lower()
        if any(k in name for k in _BICEPS_KEYWORDS):
            return "Biceps"
        if any(k in name for k in _TRICEPS_KEYWORDS):
            return "Triceps"
        return None
    if group in VOLUME_BUCKETS:
        return group
    return None


def calculate_muscle_group_volume_data(
    sessions: Sequence[WorkoutSession],
) -> List[MuscleGroupVolumePoint]:
    """Per-session volume load for every muscle group bucket, oldest first."""
    points: List[MuscleGroupVolumePoint] = []
    for session in sessions:
        volumes: Dict[str, float] = {bucket: 0.0 for bucket in VOLUME_BUCKETS}
        for entry in session.entries:
            bucket = classify_muscle_group(entry.exercise)
            if bucket is None:
                continue
            volumes[bucket] += sum(s.weight * s.reps for s in entry.sets)
        points.append(MuscleGroupVolumePoint(date=session.date, volumes=volumes))

    points.reverse()
    return points


def summarize_progress(
    points: Sequence[ProgressDataPoint],
    metric: ProgressMetric = "volume_load",
) -> Optional[ProgressSummary]:
    """Latest value, percent change from the session before it, and count."""
    if not points:
        return None

    latest = getattr(points[-1], metric)
    improvement = 0.0
    if len(points) > 1:
        previous = getattr(points[-2], metric)
        if previous:
            improvement = (latest - previous) / previous * 100

    return ProgressSummary(
        current=latest,
        improvement=improvement,
        total_sessions=len(points),
    )


def calculate_session_stats(session: WorkoutSession) -> SessionStats:
    total_sets = 0
    total_reps = 0
    total_volume = 0.0
    for entry in session.entries:
        for workout_set in entry.sets:
            total_sets += 1
            total_reps += workout_set.reps
            total_volume += workout_set.weight * workout_set.reps
    return SessionStats(total_sets=total_sets, total_reps=total_reps, total_volume=total_volume)
