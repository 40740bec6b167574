"""
Supabase remote store client.

Scoped CRUD against the device-owned tables. The two directions have
different failure contracts:

- writes (``sync_*``, ``delete_workout_sessions``) are fail-fast: transient
  errors are retried, anything left over is raised as ``RemoteStoreError``;
- reads (``load_*``) are best-effort: errors are logged and an empty list is
  returned.

``check_connectivity`` and ``register_device`` never raise.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError
from supabase import Client, create_client

from gym_tracker_sync.config import settings
from gym_tracker_sync.models import (
    Exercise,
    GlobalCustomTracker,
    WorkoutEntry,
    WorkoutSession,
    WorkoutSet,
)
from gym_tracker_sync.services.device_service import DeviceService
from gym_tracker_sync.services.retry import remote_retry
from gym_tracker_sync.store.defaults import default_exercises

logger = logging.getLogger(__name__)

DEVICE_TABLE = "device_users"
EXERCISE_LIBRARY_TABLE = "exercise_library"
USER_EXERCISES_TABLE = "user_exercises"
TRACKERS_TABLE = "user_custom_trackers"
SESSIONS_TABLE = "workout_sessions"
ENTRIES_TABLE = "workout_entries"

UNKNOWN = "Unknown"


class RemoteStoreError(Exception):
    """A write against the remote store failed."""


def get_supabase_client() -> Optional[Client]:
    """Get Supabase client instance, or None when sync is not configured."""
    supabase_url = settings.SUPABASE_URL
    supabase_key = settings.supabase_key

    if not supabase_url or not supabase_key:
        logger.warning("Supabase credentials not configured. Remote sync will be disabled.")
        return None

    try:
        return create_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error("Failed to create Supabase client: %s", e)
        return None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SupabaseStorageService:
    """Typed CRUD for exercises, trackers, sessions and the device registry."""

    def __init__(
        self,
        client: Optional[Client],
        device_service: DeviceService,
        retry_decorator: Optional[Callable] = None,
    ):
        self.client = client
        self.device_service = device_service
        self._retry = retry_decorator or remote_retry
        # Tracker sync is delete-then-insert; two overlapping calls could
        # interleave and drop rows.
        self._tracker_lock = threading.Lock()

    @property
    def device_id(self) -> str:
        return self.device_service.get_or_create_device_id()

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> Client:
        if self.client is None:
            raise RemoteStoreError("Supabase is not configured")
        return self.client

    def _write(self, query: Any, what: str) -> Any:
        try:
            return self._retry(query.execute)()
        except Exception as e:
            logger.error("Error syncing %s: %s", what, e)
            raise RemoteStoreError(f"Error syncing {what}: {e}") from e

    # ------------------------------------------------------------------
    # Exercises
    # ------------------------------------------------------------------

    def sync_custom_exercises(self, exercises: Iterable[Exercise]) -> None:
        """Upsert user-created exercises keyed by id. Idempotent."""
        client = self._require_client()
        device_id = self.device_id

        for exercise in exercises:
            if not exercise.is_custom:
                continue
            query = client.table(USER_EXERCISES_TABLE).upsert(
                {
                    "id": exercise.id,
                    "device_id": device_id,
                    "name": exercise.name,
                    "muscle_group": exercise.muscle_group,
                    "updated_at": _now_iso(),
                },
                on_conflict="id",
            )
            self._write(query, f"exercise {exercise.id}")

    def load_custom_exercises(self) -> List[Exercise]:
        """Return this device's custom exercises, or [] on any error."""
        if self.client is None:
            return []
        try:
            result = (
                self.client.table(USER_EXERCISES_TABLE)
                .select("*")
                .eq("device_id", self.device_id)
                .execute()
            )
        except Exception as e:
            logger.error("Error loading exercises: %s", e)
            return []

        exercises = []
        for row in result.data or []:
            try:
                exercises.append(
                    Exercise(
                        id=row["id"],
                        name=row["name"],
                        muscle_group=row["muscle_group"],
                        is_custom=True,
                    )
                )
            except (KeyError, TypeError, ValidationError) as e:
                logger.warning("Skipping malformed exercise row %r: %s", row, e)
        return exercises

    # ------------------------------------------------------------------
    # Global custom trackers
    # ------------------------------------------------------------------

    def sync_custom_trackers(self, trackers: Iterable[GlobalCustomTracker]) -> None:
        """Replace every tracker row for this device with ``trackers``."""
        client = self._require_client()
        device_id = self.device_id
        trackers = list(trackers)

        with self._tracker_lock:
            self._write(
                client.table(TRACKERS_TABLE).delete().eq("device_id", device_id),
                "trackers (clear)",
            )
            for tracker in trackers:
                query = client.table(TRACKERS_TABLE).insert(
                    {"device_id": device_id, "name": tracker.name, "unit": tracker.unit}
                )
                self._write(query, f"tracker {tracker.name}")

    def load_custom_trackers(self) -> List[GlobalCustomTracker]:
        """Return this device's tracker definitions, or [] on any error."""
        if self.client is None:
            return []
        try:
            result = (
                self.client.table(TRACKERS_TABLE)
                .select("name, unit")
                .eq("device_id", self.device_id)
                .execute()
            )
        except Exception as e:
            logger.error("Error loading trackers: %s", e)
            return []

        trackers: List[GlobalCustomTracker] = []
        seen = set()
        for row in result.data or []:
            try:
                tracker = GlobalCustomTracker.model_validate(row)
            except ValidationError as e:
                logger.warning("Skipping malformed tracker row %r: %s", row, e)
                continue
            if tracker.name in seen:
                continue
            seen.add(tracker.name)
            trackers.append(tracker)
        return trackers

    # ------------------------------------------------------------------
    # Workout sessions
    # ------------------------------------------------------------------

    def sync_workout_sessions(self, sessions: Iterable[WorkoutSession]) -> None:
        """Upsert each session row, then each of its entry rows.

        The first failure aborts the call. Rows written before the failure
        stay written.
        """
        client = self._require_client()
        device_id = self.device_id

        for session in sessions:
            session_query = client.table(SESSIONS_TABLE).upsert(
                {
                    "id": session.id,
                    "device_id": device_id,
                    "user_id": None,
                    "date": session.date,
                    "created_at": session.created_at or _now_iso(),
                    "updated_at": _now_iso(),
                },
                on_conflict="id",
            )
            self._write(session_query, f"session {session.id}")

            for entry in session.entries:
                entry_query = client.table(ENTRIES_TABLE).upsert(
                    {
                        "id": entry.id,
                        "session_id": session.id,
                        "exercise_id": entry.exercise.id if entry.exercise else entry.exercise_id,
                        "sets": [s.model_dump(mode="json") for s in entry.sets],
                        "custom_trackers": dict(entry.custom_trackers),
                    },
                    on_conflict="id",
                )
                self._write(entry_query, f"entry {entry.id}")

    def delete_workout_sessions(self, session_ids: Iterable[str]) -> None:
        """Remove the given sessions and their entries from the remote store."""
        session_ids = list(session_ids)
        if not session_ids:
            return
        client = self._require_client()

        self._write(
            client.table(ENTRIES_TABLE).delete().in_("session_id", session_ids),
            "entry deletions",
        )
        self._write(
            client.table(SESSIONS_TABLE)
            .delete()
            .eq("device_id", self.device_id)
            .in_("id", session_ids),
            "session deletions",
        )

    def _exercise_catalog(self) -> Dict[str, Exercise]:
        catalog: Dict[str, Exercise] = {ex.id: ex for ex in default_exercises()}

        try:
            library = self.client.table(EXERCISE_LIBRARY_TABLE).select("*").execute()
            rows = library.data or []
        except Exception as e:
            logger.error("Error loading exercise library: %s", e)
            rows = []
        for row in rows:
            try:
                catalog[row["id"]] = Exercise(
                    id=row["id"],
                    name=row["name"],
                    muscle_group=row["muscle_group"],
                    is_default=bool(row.get("is_default", False)),
                )
            except (KeyError, TypeError, ValidationError) as e:
                logger.warning("Skipping malformed library row %r: %s", row, e)

        for exercise in self.load_custom_exercises():
            catalog[exercise.id] = exercise
        return catalog

    def _build_entry(self, row: Dict[str, Any], catalog: Dict[str, Exercise]) -> WorkoutEntry:
        exercise_id = str(row.get("exercise_id") or "")
        exercise = catalog.get(exercise_id) or Exercise(
            id=exercise_id, name=UNKNOWN, muscle_group=UNKNOWN
        )

        try:
            sets = [WorkoutSet.model_validate(s) for s in row.get("sets") or []]
        except (TypeError, ValidationError) as e:
            logger.warning("Dropping malformed sets for entry %s: %s", row.get("id"), e)
            sets = []

        custom_trackers = row.get("custom_trackers")
        if not isinstance(custom_trackers, dict):
            custom_trackers = {}

        return WorkoutEntry(
            id=str(row["id"]),
            exercise_id=exercise_id,
            exercise=exercise,
            sets=sets,
            custom_trackers=custom_trackers,
        )

    def load_workout_sessions(self) -> List[WorkoutSession]:
        """Return this device's sessions, newest first, or [] on error.

        Entry exercise references that match nothing in the known catalog get
        an "Unknown" placeholder instead of failing the load.
        """
        if self.client is None:
            return []
        try:
            result = (
                self.client.table(SESSIONS_TABLE)
                .select("*, workout_entries(*)")
                .eq("device_id", self.device_id)
                .order("date", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("Error loading sessions: %s", e)
            return []

        catalog = self._exercise_catalog()
        sessions: List[WorkoutSession] = []
        for row in result.data or []:
            try:
                entries = [
                    self._build_entry(entry_row, catalog)
                    for entry_row in row.get(ENTRIES_TABLE) or []
                ]
                sessions.append(
                    WorkoutSession(
                        id=str(row["id"]),
                        date=row["date"],
                        created_at=row.get("created_at"),
                        entries=entries,
                    )
                )
            except (KeyError, TypeError, ValidationError) as e:
                logger.warning("Skipping malformed session row %s: %s", row.get("id"), e)
        return sessions

    # ------------------------------------------------------------------
    # Device registry
    # ------------------------------------------------------------------

    def check_connectivity(self) -> bool:
        """Lightweight reachability probe. Never raises."""
        if self.client is None:
            return False
        try:
            self.client.table(DEVICE_TABLE).select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.info("Connectivity probe failed: %s", e)
            return False

    def register_device(self) -> None:
        """Upsert the heartbeat row for this device. Best-effort."""
        if self.client is None:
            return
        try:
            self.client.table(DEVICE_TABLE).upsert(
                {"device_id": self.device_id, "last_active": _now_iso()},
                on_conflict="device_id",
            ).execute()
        except Exception as e:
            logger.error("Error registering device: %s", e)
