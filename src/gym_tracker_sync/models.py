"""Data models for the workout logger's state and sync engine."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Version of the plain-data layout written to local storage and to the
# JSON columns of workout_entries.
SERIALIZATION_VERSION = 1

ProgressMetric = Literal["volume_load", "max_weight", "estimated_1rm", "total_reps"]
FilterType = Literal["exercise", "muscle_group"]


def _stringify_values(value: Any) -> Any:
    """Coerce legacy tracker maps (any JSON value) to string -> string."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    return value


class Exercise(BaseModel):
    """A catalog exercise, either from the default seed set or user-created."""
    id: str
    name: str
    muscle_group: str
    is_default: bool = False
    is_custom: bool = False

    class Config:
        extra = "ignore"  # Remote rows carry device_id, created_by, updated_at


class WorkoutSet(BaseModel):
    """One performance unit: weight x reps plus optional custom metric values."""
    weight: float = Field(default=0, ge=0)
    reps: int = Field(default=0, ge=0)
    custom_values: Dict[str, str] = Field(default_factory=dict)

    class Config:
        extra = "ignore"  # Older payloads carried a per-set "id"

    @field_validator("custom_values", mode="before")
    @classmethod
    def _coerce_custom_values(cls, value: Any) -> Any:
        return _stringify_values(value)


class WorkoutEntry(BaseModel):
    """One exercise's performance inside a session or the draft."""
    id: str
    exercise_id: str
    exercise: Optional[Exercise] = None  # Denormalized snapshot, may go stale
    sets: List[WorkoutSet] = Field(default_factory=list)
    custom_trackers: Dict[str, str] = Field(default_factory=dict)  # Legacy per-entry trackers

    class Config:
        extra = "ignore"

    @field_validator("sets", mode="before")
    @classmethod
    def _coerce_sets(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("custom_trackers", mode="before")
    @classmethod
    def _coerce_custom_trackers(cls, value: Any) -> Any:
        return _stringify_values(value)


class WorkoutSession(BaseModel):
    """A saved, dated workout."""
    id: str
    date: str  # ISO calendar date
    # Remote payloads produced by older clients named this list "exercises"
    entries: List[WorkoutEntry] = Field(
        default_factory=list,
        validation_alias=AliasChoices("entries", "exercises"),
    )
    created_at: Optional[str] = None

    class Config:
        extra = "ignore"

    @field_validator("entries", mode="before")
    @classmethod
    def _coerce_entries(cls, value: Any) -> Any:
        return [] if value is None else value


class CurrentWorkout(BaseModel):
    """The single in-progress, unsaved workout."""
    date: str
    entries: List[WorkoutEntry] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class GlobalCustomTracker(BaseModel):
    """A named, unit-bearing custom metric shared by every entry going forward."""
    name: str
    unit: str = ""

    class Config:
        extra = "ignore"


class SyncStatus(BaseModel):
    """Outcome of the most recent sync attempt. Not persisted."""
    is_online: bool = False
    last_sync: Optional[datetime] = None
    pending_changes: int = 0
    sync_error: Optional[str] = None


class ProgressFilter(BaseModel):
    """Selects the sessions and entries that feed the progress charts."""
    type: FilterType
    value: str


class ProgressDataPoint(BaseModel):
    """Derived per-session progress figures."""
    date: str
    volume_load: float = 0
    max_weight: float = 0
    estimated_1rm: float = 0
    total_reps: int = 0


class MuscleGroupVolumePoint(BaseModel):
    """Per-session volume load split into muscle group buckets."""
    date: str
    volumes: Dict[str, float] = Field(default_factory=dict)


class SessionStats(BaseModel):
    """Totals shown next to a session in the history list."""
    total_sets: int = 0
    total_reps: int = 0
    total_volume: float = 0


class ProgressSummary(BaseModel):
    """Headline numbers for a progress series."""
    current: float
    improvement: float  # Percent change from the previous session
    total_sessions: int
