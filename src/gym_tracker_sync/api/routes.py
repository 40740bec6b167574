"""HTTP surface the presentation layer uses to read and mutate workout state."""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from gym_tracker_sync.models import FilterType, ProgressFilter, ProgressMetric, WorkoutSet
from gym_tracker_sync.store.workout_store import WorkoutStore
from gym_tracker_sync.sync.lifecycle_sync import LifecycleSync

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CustomExerciseRequest(BaseModel):
    name: str
    muscle_group: str


class WorkoutDateRequest(BaseModel):
    date: str


class AddEntryRequest(BaseModel):
    exercise_id: str


class UpdateEntryRequest(BaseModel):
    sets: Optional[List[WorkoutSet]] = None
    custom_trackers: Optional[Dict[str, str]] = None


class UpdateSetRequest(BaseModel):
    weight: Optional[float] = None
    reps: Optional[int] = None
    custom_values: Optional[Dict[str, str]] = None


class TrackerRequest(BaseModel):
    name: str
    unit: str = ""


class UnloadRequest(BaseModel):
    # The page cannot be prompted over HTTP; it answers up front.
    leave_if_unsynced: bool = False


def _store(request: Request) -> WorkoutStore:
    return request.app.state.store


def _lifecycle(request: Request) -> LifecycleSync:
    return request.app.state.lifecycle


def _draft_or_404(ok: bool, request: Request, detail: str):
    if not ok:
        raise HTTPException(status_code=404, detail=detail)
    return _store(request).current_workout


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health(request: Request):
    store = _store(request)
    return {"ok": True, "state": store.state.value}


# ---------------------------------------------------------------------------
# Exercises
# ---------------------------------------------------------------------------


@router.get("/exercises")
async def list_exercises(request: Request, search: str = "", muscle_group: Optional[str] = None):
    return _store(request).filter_exercises(search=search, muscle_group=muscle_group)


@router.post("/exercises", status_code=201)
async def create_custom_exercise(payload: CustomExerciseRequest, request: Request):
    exercise = _store(request).add_custom_exercise(payload.name, payload.muscle_group)
    if exercise is None:
        raise HTTPException(
            status_code=400,
            detail="Please enter both exercise name and muscle group.",
        )
    return exercise


# ---------------------------------------------------------------------------
# Current workout
# ---------------------------------------------------------------------------


@router.get("/workout/current")
async def get_current_workout(request: Request):
    return _store(request).current_workout


@router.put("/workout/current/date")
async def set_current_workout_date(payload: WorkoutDateRequest, request: Request):
    store = _store(request)
    store.set_current_workout_date(payload.date)
    return store.current_workout


@router.delete("/workout/current")
async def clear_current_workout(request: Request):
    store = _store(request)
    store.clear_current_workout()
    return store.current_workout


@router.post("/workout/current/entries", status_code=201)
async def add_entry(payload: AddEntryRequest, request: Request):
    ok = _store(request).add_exercise_to_workout(payload.exercise_id)
    return _draft_or_404(ok, request, f"Unknown exercise: {payload.exercise_id}")


@router.patch("/workout/current/entries/{entry_index}")
async def update_entry(entry_index: int, payload: UpdateEntryRequest, request: Request):
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")
    ok = _store(request).update_workout_entry(entry_index, **fields)
    return _draft_or_404(ok, request, f"No entry at index {entry_index}")


@router.delete("/workout/current/entries/{entry_index}")
async def remove_entry(entry_index: int, request: Request):
    ok = _store(request).remove_exercise_from_workout(entry_index)
    return _draft_or_404(ok, request, f"No entry at index {entry_index}")


@router.post("/workout/current/entries/{entry_index}/sets", status_code=201)
async def add_set(entry_index: int, request: Request):
    ok = _store(request).add_set(entry_index)
    return _draft_or_404(ok, request, f"No entry at index {entry_index}")


@router.patch("/workout/current/entries/{entry_index}/sets/{set_index}")
async def update_set(entry_index: int, set_index: int, payload: UpdateSetRequest, request: Request):
    store = _store(request)
    draft = store.current_workout
    if not 0 <= entry_index < len(draft.entries) or not 0 <= set_index < len(draft.entries[entry_index].sets):
        raise HTTPException(status_code=404, detail=f"No set at {entry_index}/{set_index}")
    if not store.update_set(entry_index, set_index, payload.weight, payload.reps, payload.custom_values):
        raise HTTPException(status_code=400, detail="Weight and reps must not be negative")
    return store.current_workout


@router.delete("/workout/current/entries/{entry_index}/sets/{set_index}")
async def remove_set(entry_index: int, set_index: int, request: Request):
    ok = _store(request).remove_set(entry_index, set_index)
    return _draft_or_404(ok, request, f"No set at {entry_index}/{set_index}")


@router.post("/workout/current/entries/{entry_index}/sets/{set_index}/duplicate", status_code=201)
async def duplicate_set(entry_index: int, set_index: int, request: Request):
    ok = _store(request).duplicate_set(entry_index, set_index)
    return _draft_or_404(ok, request, f"No set at {entry_index}/{set_index}")


@router.post("/workout/current/save")
async def save_workout(request: Request):
    store = _store(request)
    if not store.save_workout():
        raise HTTPException(
            status_code=400,
            detail="Please add at least one exercise with at least one set to save your workout.",
        )
    return {"success": True, "sessions": len(store.workout_sessions)}


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/sessions")
async def list_sessions(request: Request):
    return _store(request).workout_sessions


@router.get("/sessions/{session_id}/stats")
async def session_stats(session_id: str, request: Request):
    stats = _store(request).session_stats(session_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return stats


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request):
    if not _store(request).delete_workout_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"success": True}


# ---------------------------------------------------------------------------
# Global custom trackers
# ---------------------------------------------------------------------------


@router.get("/trackers")
async def list_trackers(request: Request):
    return _store(request).global_custom_trackers


@router.post("/trackers")
async def add_tracker(payload: TrackerRequest, request: Request):
    store = _store(request)
    added = store.add_global_custom_tracker(payload.name, payload.unit)
    return {"added": added, "trackers": store.global_custom_trackers}


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@router.get("/progress")
async def progress(
    request: Request,
    type: Optional[FilterType] = None,
    value: Optional[str] = None,
    metric: ProgressMetric = "volume_load",
):
    store = _store(request)
    store.set_progress_filter(ProgressFilter(type=type, value=value) if type and value else None)
    return {
        "filter": store.progress_filter,
        "data": store.calculate_progress_data(),
        "summary": store.calculate_progress_summary(metric),
    }


@router.get("/progress/muscle-groups")
async def muscle_group_volume(request: Request):
    return _store(request).calculate_muscle_group_volume_data()


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@router.get("/sync/status")
async def sync_status(request: Request):
    store = _store(request)
    return {
        "status": store.sync_status,
        "label": _lifecycle(request).status_text(),
        "is_syncing": store.is_syncing,
    }


@router.post("/sync")
async def manual_sync(request: Request):
    try:
        await _lifecycle(request).manual_sync()
    except Exception as e:
        logger.warning("Manual sync failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Sync failed: {e}")
    return {"success": True, "status": _store(request).sync_status}


@router.post("/lifecycle/page-hide")
async def page_hide(request: Request):
    synced = await _lifecycle(request).on_page_hide()
    return {"synced": synced}


@router.post("/lifecycle/unload")
async def unload(payload: UnloadRequest, request: Request):
    allow = await _lifecycle(request).on_unload(lambda message: payload.leave_if_unsynced)
    return {"allow_navigation": allow}
