"""
Workout domain store.

The single owner and writer of workout state: the exercise catalog, the
in-progress draft, session history, global tracker definitions, the progress
filter and the sync status.

Synchronous mutation methods apply to memory and then write straight through
to local storage before returning. They never raise for user-input mistakes;
they return False/None instead. The async ``sync_to_supabase`` and
``load_from_supabase`` methods record failures on the sync status and then
re-raise them.
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from gym_tracker_sync.models import (
    SERIALIZATION_VERSION,
    CurrentWorkout,
    Exercise,
    GlobalCustomTracker,
    MuscleGroupVolumePoint,
    ProgressDataPoint,
    ProgressFilter,
    ProgressMetric,
    ProgressSummary,
    SessionStats,
    SyncStatus,
    WorkoutEntry,
    WorkoutSession,
    WorkoutSet,
)
from gym_tracker_sync.progress import aggregator
from gym_tracker_sync.services.supabase_storage import RemoteStoreError, SupabaseStorageService
from gym_tracker_sync.storage.local_storage import LocalStorage, StorageKeys
from gym_tracker_sync.store.defaults import default_exercises

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

EXERCISES = "exercises"
WORKOUT_SESSIONS = "workout_sessions"
CURRENT_WORKOUT = "current_workout"
GLOBAL_CUSTOM_TRACKERS = "global_custom_trackers"

# Collections whose changes need pushing to the remote store
SYNCED_COLLECTIONS = frozenset({EXERCISES, WORKOUT_SESSIONS, GLOBAL_CUSTOM_TRACKERS})


class StoreState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class StoreChange:
    """Notification sent to subscribers after a collection was persisted."""
    collection: str
    origin: str = "local"  # "local" for user edits, "remote" for pulls, "reset" for wipes


Listener = Callable[[StoreChange], None]


def _sort_sessions(sessions: List[WorkoutSession]) -> List[WorkoutSession]:
    """Newest date first; same-day sessions newest created first."""
    return sorted(sessions, key=lambda s: (s.date, s.created_at or ""), reverse=True)


def _dump(models: List[BaseModel]) -> List[Dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


class WorkoutStore:
    """Process-wide workout state container with write-through persistence."""

    def __init__(
        self,
        storage: LocalStorage,
        remote: Optional[SupabaseStorageService] = None,
        today: Optional[Callable[[], date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.remote = remote
        self._today = today or date.today
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = StoreState.UNINITIALIZED
        self.is_syncing = False
        self.progress_filter: Optional[ProgressFilter] = None

        self._exercises: List[Exercise] = []
        self._workout_sessions: List[WorkoutSession] = []
        self._current_workout = self._empty_draft()
        self._trackers: List[GlobalCustomTracker] = []
        self._pending_deletions: List[str] = []
        self._sync_status = SyncStatus()
        self._change_count = 0
        self._synced_through = 0
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Load every collection from local storage."""
        self.state = StoreState.LOADING

        stored_version = self.storage.get(StorageKeys.STORAGE_VERSION)
        if isinstance(stored_version, int) and stored_version > SERIALIZATION_VERSION:
            logger.warning(
                "Local data was written by a newer format (v%s > v%s)",
                stored_version, SERIALIZATION_VERSION,
            )
        elif stored_version != SERIALIZATION_VERSION:
            self.storage.set(StorageKeys.STORAGE_VERSION, SERIALIZATION_VERSION)

        self.load_exercises()
        self.load_workout_history()
        self._load_current_workout()
        self._trackers = self._load_models(StorageKeys.GLOBAL_CUSTOM_TRACKERS, GlobalCustomTracker)
        pending = self.storage.get(StorageKeys.PENDING_DELETIONS, [])
        self._pending_deletions = [str(p) for p in pending] if isinstance(pending, list) else []
        self._change_count = len(self._pending_deletions)
        self._synced_through = 0
        self._sync_status = SyncStatus(pending_changes=self._change_count)

        self.state = StoreState.READY
        logger.info(
            "Workout store ready: %d exercises, %d sessions, %d draft entries",
            len(self._exercises), len(self._workout_sessions), len(self._current_workout.entries),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self, collection: str, origin: str = "local") -> None:
        if origin == "local" and collection in SYNCED_COLLECTIONS:
            self._change_count += 1
            self._sync_status.pending_changes = self._change_count - self._synced_through
        change = StoreChange(collection=collection, origin=origin)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error("Store listener failed for %s: %s", collection, e)

    # ------------------------------------------------------------------
    # Read surface (copies; callers never hold live state)
    # ------------------------------------------------------------------

    @property
    def exercises(self) -> List[Exercise]:
        return [e.model_copy(deep=True) for e in self._exercises]

    @property
    def workout_sessions(self) -> List[WorkoutSession]:
        return [s.model_copy(deep=True) for s in self._workout_sessions]

    @property
    def current_workout(self) -> CurrentWorkout:
        return self._current_workout.model_copy(deep=True)

    @property
    def global_custom_trackers(self) -> List[GlobalCustomTracker]:
        return [t.model_copy(deep=True) for t in self._trackers]

    @property
    def pending_deletions(self) -> List[str]:
        return list(self._pending_deletions)

    @property
    def sync_status(self) -> SyncStatus:
        return self._sync_status.model_copy()

    def get_session(self, session_id: str) -> Optional[WorkoutSession]:
        for session in self._workout_sessions:
            if session.id == session_id:
                return session.model_copy(deep=True)
        return None

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _load_models(self, key: str, model: Type[M]) -> List[M]:
        raw = self.storage.get(key, [])
        if not isinstance(raw, list):
            logger.error("Ignoring %s: expected a list, got %s", key, type(raw).__name__)
            return []
        items: List[M] = []
        for item in raw:
            try:
                items.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping malformed %s item: %s", key, e)
        return items

    def _persist_exercises(self) -> None:
        self.storage.set(StorageKeys.EXERCISES, _dump(self._exercises))

    def _persist_sessions(self) -> None:
        self.storage.set(StorageKeys.WORKOUT_SESSIONS, _dump(self._workout_sessions))

    def _persist_draft(self) -> None:
        self.storage.set(StorageKeys.CURRENT_WORKOUT, self._current_workout.model_dump(mode="json"))

    def _persist_trackers(self) -> None:
        self.storage.set(StorageKeys.GLOBAL_CUSTOM_TRACKERS, _dump(self._trackers))

    def _persist_pending_deletions(self) -> None:
        self.storage.set(StorageKeys.PENDING_DELETIONS, list(self._pending_deletions))

    def _today_iso(self) -> str:
        return self._today().isoformat()

    def _empty_draft(self) -> CurrentWorkout:
        return CurrentWorkout(date=self._today_iso(), entries=[])

    def _new_id(self) -> str:
        return str(uuid.uuid4())

    # ------------------------------------------------------------------
    # Exercises
    # ------------------------------------------------------------------

    def load_exercises(self) -> None:
        """Load the catalog, seeding the default exercises on first run."""
        saved = self._load_models(StorageKeys.EXERCISES, Exercise)
        if not saved:
            self._exercises = default_exercises()
            self._persist_exercises()
        else:
            self._exercises = saved

    def add_custom_exercise(self, name: str, muscle_group: str) -> Optional[Exercise]:
        name = (name or "").strip()
        muscle_group = (muscle_group or "").strip()
        if not name or not muscle_group:
            return None

        exercise = Exercise(
            id=self._new_id(),
            name=name,
            muscle_group=muscle_group,
            is_default=False,
            is_custom=True,
        )
        self._exercises = self._exercises + [exercise]
        self._persist_exercises()
        self._changed(EXERCISES)
        return exercise.model_copy()

    def filter_exercises(self, search: str = "", muscle_group: Optional[str] = None) -> List[Exercise]:
        """Case-insensitive name search, optionally narrowed to one muscle group."""
        term = (search or "").lower()
        group = None if muscle_group in (None, "", "all") else muscle_group
        return [
            e.model_copy()
            for e in self._exercises
            if term in e.name.lower() and (group is None or e.muscle_group == group)
        ]

    def _find_exercise(self, exercise_id: str) -> Optional[Exercise]:
        return next((e for e in self._exercises if e.id == exercise_id), None)

    # ------------------------------------------------------------------
    # Current workout draft
    # ------------------------------------------------------------------

    def _load_current_workout(self) -> None:
        raw = self.storage.get(StorageKeys.CURRENT_WORKOUT)
        if raw is None:
            self._current_workout = self._empty_draft()
            return
        try:
            self._current_workout = CurrentWorkout.model_validate(raw)
        except ValidationError as e:
            logger.error("Discarding malformed workout draft: %s", e)
            self._current_workout = self._empty_draft()
            self._persist_draft()

    def _update_draft(self, draft: CurrentWorkout) -> None:
        self._current_workout = draft
        self._persist_draft()
        self._changed(CURRENT_WORKOUT)

    def _entry_at(self, index: int) -> Optional[WorkoutEntry]:
        entries = self._current_workout.entries
        if 0 <= index < len(entries):
            return entries[index]
        return None

    def _replace_entry(self, index: int, entry: WorkoutEntry) -> None:
        entries = list(self._current_workout.entries)
        entries[index] = entry
        self._update_draft(self._current_workout.model_copy(update={"entries": entries}))

    def _blank_set(self) -> WorkoutSet:
        return WorkoutSet(weight=0, reps=0, custom_values={t.name: "" for t in self._trackers})

    def set_current_workout_date(self, workout_date: str) -> None:
        self._update_draft(self._current_workout.model_copy(update={"date": workout_date}))

    def add_exercise_to_workout(self, exercise_id: str) -> bool:
        exercise = self._find_exercise(exercise_id)
        if exercise is None:
            return False

        entry = WorkoutEntry(
            id=self._new_id(),
            exercise_id=exercise_id,
            exercise=exercise.model_copy(),
            sets=[self._blank_set()],
            custom_trackers={},
        )
        entries = list(self._current_workout.entries) + [entry]
        self._update_draft(self._current_workout.model_copy(update={"entries": entries}))
        return True

    def update_workout_entry(self, index: int, **fields: Any) -> bool:
        """Replace fields of the entry at ``index`` (e.g. sets, custom_trackers)."""
        entry = self._entry_at(index)
        if entry is None or not fields:
            return False
        if any(name not in WorkoutEntry.model_fields for name in fields):
            return False

        data = entry.model_dump()
        try:
            for name, value in fields.items():
                if name == "sets":
                    value = [s.model_dump() if isinstance(s, BaseModel) else s for s in value]
                elif isinstance(value, BaseModel):
                    value = value.model_dump()
                data[name] = value
            updated = WorkoutEntry.model_validate(data)
        except (TypeError, ValidationError) as e:
            logger.info("Rejected entry update at %d: %s", index, e)
            return False

        self._replace_entry(index, updated)
        return True

    def remove_exercise_from_workout(self, index: int) -> bool:
        if self._entry_at(index) is None:
            return False
        entries = [e for i, e in enumerate(self._current_workout.entries) if i != index]
        self._update_draft(self._current_workout.model_copy(update={"entries": entries}))
        return True

    def add_set(self, entry_index: int) -> bool:
        entry = self._entry_at(entry_index)
        if entry is None:
            return False
        sets = list(entry.sets) + [self._blank_set()]
        self._replace_entry(entry_index, entry.model_copy(update={"sets": sets}))
        return True

    def update_set(
        self,
        entry_index: int,
        set_index: int,
        weight: Optional[float] = None,
        reps: Optional[int] = None,
        custom_values: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Edit one set field by field; None leaves a field unchanged.

        ``custom_values`` is merged into the set's existing values.
        """
        entry = self._entry_at(entry_index)
        if entry is None or not 0 <= set_index < len(entry.sets):
            return False

        data = entry.sets[set_index].model_dump()
        if weight is not None:
            data["weight"] = weight
        if reps is not None:
            data["reps"] = reps
        if custom_values:
            data["custom_values"] = {**data["custom_values"], **custom_values}
        try:
            updated = WorkoutSet.model_validate(data)
        except ValidationError as e:
            logger.info("Rejected set update at %d/%d: %s", entry_index, set_index, e)
            return False

        sets = list(entry.sets)
        sets[set_index] = updated
        self._replace_entry(entry_index, entry.model_copy(update={"sets": sets}))
        return True

    def remove_set(self, entry_index: int, set_index: int) -> bool:
        entry = self._entry_at(entry_index)
        if entry is None or not 0 <= set_index < len(entry.sets):
            return False
        sets = [s for i, s in enumerate(entry.sets) if i != set_index]
        self._replace_entry(entry_index, entry.model_copy(update={"sets": sets}))
        return True

    def duplicate_set(self, entry_index: int, set_index: int) -> bool:
        """Insert a copy of the set right after it."""
        entry = self._entry_at(entry_index)
        if entry is None or not 0 <= set_index < len(entry.sets):
            return False
        sets = list(entry.sets)
        sets.insert(set_index + 1, sets[set_index].model_copy(deep=True))
        self._replace_entry(entry_index, entry.model_copy(update={"sets": sets}))
        return True

    def set_entry_custom_tracker(self, entry_index: int, name: str, value: str = "") -> bool:
        """Set a legacy per-entry tracker value."""
        entry = self._entry_at(entry_index)
        name = (name or "").strip()
        if entry is None or not name:
            return False
        trackers = {**entry.custom_trackers, name: "" if value is None else str(value)}
        self._replace_entry(entry_index, entry.model_copy(update={"custom_trackers": trackers}))
        return True

    def clear_current_workout(self) -> None:
        self._update_draft(self._empty_draft())

    def save_workout(self) -> bool:
        """Turn the draft into a session. False when it has no entries or an empty entry."""
        draft = self._current_workout
        if not draft.entries:
            return False
        if any(not entry.sets for entry in draft.entries):
            return False

        session = WorkoutSession(
            id=self._new_id(),
            date=draft.date,
            entries=[e.model_copy(deep=True) for e in draft.entries],
            created_at=self._clock().isoformat(),
        )
        self._workout_sessions = _sort_sessions([session] + self._workout_sessions)
        self._persist_sessions()
        self._changed(WORKOUT_SESSIONS)

        self.clear_current_workout()
        logger.info("Saved workout %s (%s) with %d entries", session.id, session.date, len(session.entries))
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def load_workout_history(self) -> None:
        sessions = self._load_models(StorageKeys.WORKOUT_SESSIONS, WorkoutSession)
        self._workout_sessions = _sort_sessions(sessions)

    def delete_workout_session(self, session_id: str) -> bool:
        """Remove a session locally and queue its remote rows for deletion."""
        remaining = [s for s in self._workout_sessions if s.id != session_id]
        if len(remaining) == len(self._workout_sessions):
            return False

        self._workout_sessions = remaining
        self._persist_sessions()
        if session_id not in self._pending_deletions:
            self._pending_deletions.append(session_id)
            self._persist_pending_deletions()
        self._changed(WORKOUT_SESSIONS)
        return True

    def session_stats(self, session_id: str) -> Optional[SessionStats]:
        session = next((s for s in self._workout_sessions if s.id == session_id), None)
        if session is None:
            return None
        return aggregator.calculate_session_stats(session)

    # ------------------------------------------------------------------
    # Global custom trackers
    # ------------------------------------------------------------------

    def add_global_custom_tracker(self, name: str, unit: str = "") -> bool:
        name = (name or "").strip()
        if not name or any(t.name == name for t in self._trackers):
            return False
        self._trackers = self._trackers + [GlobalCustomTracker(name=name, unit=(unit or "").strip())]
        self._persist_trackers()
        self._changed(GLOBAL_CUSTOM_TRACKERS)
        return True

    def remove_global_custom_tracker(self, name: str) -> bool:
        remaining = [t for t in self._trackers if t.name != name]
        if len(remaining) == len(self._trackers):
            return False
        self._trackers = remaining
        self._persist_trackers()
        self._changed(GLOBAL_CUSTOM_TRACKERS)
        return True

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def set_progress_filter(self, progress_filter: Optional[ProgressFilter]) -> None:
        self.progress_filter = progress_filter

    def calculate_progress_data(self) -> List[ProgressDataPoint]:
        return aggregator.calculate_progress_data(self._workout_sessions, self.progress_filter)

    def calculate_muscle_group_volume_data(self) -> List[MuscleGroupVolumePoint]:
        return aggregator.calculate_muscle_group_volume_data(self._workout_sessions)

    def calculate_progress_summary(self, metric: ProgressMetric = "volume_load") -> Optional[ProgressSummary]:
        return aggregator.summarize_progress(self.calculate_progress_data(), metric)

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_local_data(self) -> None:
        """Wipe local workout data (the device id survives) and reseed defaults."""
        for key in (
            StorageKeys.EXERCISES,
            StorageKeys.WORKOUT_SESSIONS,
            StorageKeys.CURRENT_WORKOUT,
            StorageKeys.GLOBAL_CUSTOM_TRACKERS,
            StorageKeys.PENDING_DELETIONS,
        ):
            self.storage.remove(key)

        self._workout_sessions = []
        self._trackers = []
        self._pending_deletions = []
        self.progress_filter = None
        self.load_exercises()
        self._current_workout = self._empty_draft()
        self._persist_draft()
        self._synced_through = self._change_count
        self._sync_status = SyncStatus(is_online=self._sync_status.is_online)

        for collection in (EXERCISES, WORKOUT_SESSIONS, CURRENT_WORKOUT, GLOBAL_CUSTOM_TRACKERS):
            self._changed(collection, origin="reset")
        logger.info("Local workout data reset")

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def set_sync_status(self, **fields: Any) -> None:
        self._sync_status = self._sync_status.model_copy(update=fields)

    def _require_remote(self) -> SupabaseStorageService:
        if self.remote is None:
            raise RemoteStoreError("Supabase is not configured")
        return self.remote

    async def sync_to_supabase(self) -> None:
        """Push local state: deletions, then exercises, trackers and sessions.

        Works on a snapshot taken before the first await; edits made while
        the push is in flight are picked up by the next one.
        """
        exercises = self.exercises
        trackers = self.global_custom_trackers
        sessions = self.workout_sessions
        deletions = self.pending_deletions
        change_count_at_start = self._change_count

        self.is_syncing = True
        try:
            remote = self._require_remote()
            if deletions:
                await asyncio.to_thread(remote.delete_workout_sessions, deletions)
                self._pending_deletions = [d for d in self._pending_deletions if d not in deletions]
                self._persist_pending_deletions()
            await asyncio.to_thread(remote.sync_custom_exercises, exercises)
            await asyncio.to_thread(remote.sync_custom_trackers, trackers)
            await asyncio.to_thread(remote.sync_workout_sessions, sessions)
        except Exception as e:
            logger.error("Sync to Supabase failed: %s", e)
            self.set_sync_status(sync_error=str(e))
            raise
        finally:
            self.is_syncing = False

        # Overlapping pushes only clear what their own snapshot covered
        self._synced_through = max(self._synced_through, change_count_at_start)
        self.set_sync_status(
            is_online=True,
            last_sync=self._clock(),
            pending_changes=self._change_count - self._synced_through,
            sync_error=None,
        )
        logger.info(
            "Synced %d exercises, %d trackers, %d sessions to Supabase",
            sum(1 for e in exercises if e.is_custom), len(trackers), len(sessions),
        )

    async def load_from_supabase(self) -> None:
        """Pull remote data and merge it into local state.

        Remote custom exercises and sessions replace local ones with the same
        id; remote trackers are added when their name is new. Local records
        that the remote does not know about are kept.
        """
        self.is_syncing = True
        try:
            remote = self._require_remote()
            remote_exercises = await asyncio.to_thread(remote.load_custom_exercises)
            remote_trackers = await asyncio.to_thread(remote.load_custom_trackers)
            remote_sessions = await asyncio.to_thread(remote.load_workout_sessions)
        except Exception as e:
            logger.error("Load from Supabase failed: %s", e)
            self.set_sync_status(sync_error=str(e))
            raise
        finally:
            self.is_syncing = False

        remote_exercise_ids = {e.id for e in remote_exercises}
        self._exercises = [e for e in self._exercises if e.id not in remote_exercise_ids] + remote_exercises
        self._persist_exercises()
        self._changed(EXERCISES, origin="remote")

        known = {t.name for t in self._trackers}
        new_trackers = [t for t in remote_trackers if t.name not in known]
        if new_trackers:
            self._trackers = self._trackers + new_trackers
            self._persist_trackers()
            self._changed(GLOBAL_CUSTOM_TRACKERS, origin="remote")

        # Sessions deleted here but not yet deleted remotely must not come back
        deleted = set(self._pending_deletions)
        remote_sessions = [s for s in remote_sessions if s.id not in deleted]
        remote_session_ids = {s.id for s in remote_sessions}
        merged = [s for s in self._workout_sessions if s.id not in remote_session_ids] + remote_sessions
        self._workout_sessions = _sort_sessions(merged)
        self._persist_sessions()
        self._changed(WORKOUT_SESSIONS, origin="remote")

        self.set_sync_status(is_online=True, last_sync=self._clock(), sync_error=None)
        logger.info(
            "Loaded %d exercises, %d trackers, %d sessions from Supabase",
            len(remote_exercises), len(remote_trackers), len(remote_sessions),
        )
