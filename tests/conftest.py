"""
Test fixtures for gym-tracker-sync.

Provides in-memory storage, a fake Supabase backend and a ready store so
tests run fast, deterministic and offline.
"""

import sys
from pathlib import Path

import pytest

# Repo root: .../gym-tracker-sync
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Make src/ importable so tests can do `import gym_tracker_sync...`
for p in {ROOT, SRC}:
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from factories import FIXED_NOW, FIXED_TODAY
from fakes import FakeSupabase
from gym_tracker_sync.services.device_service import DeviceService
from gym_tracker_sync.services.retry import create_retry_decorator
from gym_tracker_sync.services.supabase_storage import SupabaseStorageService
from gym_tracker_sync.storage.local_storage import MemoryStorage
from gym_tracker_sync.store.workout_store import WorkoutStore

DEVICE_ID = "device_test_123"


# ---------------------------------------------------------------------------
# Storage and identity
# ---------------------------------------------------------------------------


@pytest.fixture
def storage() -> MemoryStorage:
    """Empty in-memory key-value storage."""
    return MemoryStorage()


@pytest.fixture
def device_service(storage) -> DeviceService:
    """Device service with a known id already persisted."""
    service = DeviceService(storage)
    service.set_device_id(DEVICE_ID)
    return service


# ---------------------------------------------------------------------------
# Remote store
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    """Empty fake Supabase backend."""
    return FakeSupabase()


@pytest.fixture
def no_wait_retry():
    """Retry decorator that retries once without sleeping."""
    return create_retry_decorator(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)


@pytest.fixture
def remote(fake_supabase, device_service, no_wait_retry) -> SupabaseStorageService:
    """Remote store client wired to the fake backend."""
    return SupabaseStorageService(fake_supabase, device_service, retry_decorator=no_wait_retry)


# ---------------------------------------------------------------------------
# Domain store
# ---------------------------------------------------------------------------


@pytest.fixture
def store(storage, remote) -> WorkoutStore:
    """Initialized store with a fixed clock."""
    workout_store = WorkoutStore(
        storage,
        remote,
        today=lambda: FIXED_TODAY,
        clock=lambda: FIXED_NOW,
    )
    workout_store.init()
    return workout_store
