"""Tests for lifecycle-driven sync: debounce, page events and cold start."""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from factories import FIXED_NOW, FIXED_TODAY
from gym_tracker_sync.models import SyncStatus
from gym_tracker_sync.services.supabase_storage import SESSIONS_TABLE, RemoteStoreError
from gym_tracker_sync.store.workout_store import WorkoutStore
from gym_tracker_sync.sync.lifecycle_sync import (
    OFFLINE_ERROR,
    UNLOAD_WARNING,
    LifecycleSync,
    StartupResult,
    describe_sync_status,
)

DEVICE_ID = "device_test_123"
DELAY = 0.05


def _log_bench(store):
    store.add_exercise_to_workout("bench-press")
    store.update_set(0, 0, weight=100, reps=5)
    assert store.save_workout()


@pytest.fixture
def lifecycle(store, remote):
    sync = LifecycleSync(store, remote, delay_seconds=DELAY)
    yield sync
    sync.stop()


# ---------------------------------------------------------------------------
# Debounced auto-sync
# ---------------------------------------------------------------------------


class TestAutoSync:

    @pytest.mark.asyncio
    async def test_burst_of_changes_pushes_once(self, store, lifecycle):
        lifecycle.start()
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            store.add_global_custom_tracker("RPE")
            store.add_global_custom_tracker("Tempo")
            store.add_custom_exercise("Sled Push", "Legs")
            assert lifecycle.auto_sync_pending is True

            await asyncio.sleep(DELAY * 4)

            push.assert_awaited_once()
            assert lifecycle.auto_sync_pending is False

    @pytest.mark.asyncio
    async def test_each_change_restarts_the_timer(self, store, remote):
        sync = LifecycleSync(store, remote, delay_seconds=0.5)
        sync.start()
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            store.add_global_custom_tracker("RPE")
            await asyncio.sleep(0.3)
            store.add_global_custom_tracker("Tempo")
            await asyncio.sleep(0.3)
            push.assert_not_awaited()

            await asyncio.sleep(0.6)
            push.assert_awaited_once()
        sync.stop()

    @pytest.mark.asyncio
    async def test_draft_edits_do_not_schedule(self, store, lifecycle):
        lifecycle.start()
        store.add_exercise_to_workout("squat")
        store.update_set(0, 0, weight=20, reps=10)
        assert lifecycle.auto_sync_pending is False

    @pytest.mark.asyncio
    async def test_pulled_changes_do_not_schedule(self, store, lifecycle):
        lifecycle.start()
        await store.load_from_supabase()
        assert lifecycle.auto_sync_pending is False

    @pytest.mark.asyncio
    async def test_failed_auto_sync_is_logged_not_raised(self, store, lifecycle):
        lifecycle.start()
        with patch.object(store, "sync_to_supabase", AsyncMock(side_effect=RemoteStoreError("down"))) as push:
            store.add_global_custom_tracker("RPE")
            await asyncio.sleep(DELAY * 4)
            push.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_change_from_worker_thread_is_scheduled_on_loop(self, store, lifecycle):
        lifecycle.start()
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            await asyncio.to_thread(store.add_global_custom_tracker, "RPE")
            await asyncio.sleep(DELAY * 4)
            push.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_sync(self, store, lifecycle):
        lifecycle.start()
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            store.add_global_custom_tracker("RPE")
            lifecycle.stop()
            await asyncio.sleep(DELAY * 4)
            push.assert_not_awaited()

    def test_no_event_loop_skips_scheduling(self, store, lifecycle):
        lifecycle.start()
        assert store.add_global_custom_tracker("RPE") is True
        assert lifecycle.auto_sync_pending is False


# ---------------------------------------------------------------------------
# Page lifecycle
# ---------------------------------------------------------------------------


class TestPageEvents:

    @pytest.mark.asyncio
    async def test_page_hide_pushes(self, store, lifecycle):
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            assert await lifecycle.on_page_hide() is True
            push.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_page_hide_swallows_failure(self, store, lifecycle):
        with patch.object(store, "sync_to_supabase", AsyncMock(side_effect=RemoteStoreError("down"))):
            assert await lifecycle.on_page_hide() is False

    @pytest.mark.asyncio
    async def test_unload_success_does_not_prompt(self, store, lifecycle):
        confirm = MagicMock(return_value=False)
        with patch.object(store, "sync_to_supabase", AsyncMock()):
            assert await lifecycle.on_unload(confirm) is True
        confirm.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_answer", [True, False])
    async def test_unload_failure_asks_user(self, store, lifecycle, user_answer):
        confirm = MagicMock(return_value=user_answer)
        with patch.object(store, "sync_to_supabase", AsyncMock(side_effect=RemoteStoreError("down"))):
            assert await lifecycle.on_unload(confirm) is user_answer
        confirm.assert_called_once_with(UNLOAD_WARNING)

    @pytest.mark.asyncio
    async def test_unload_cancels_pending_auto_sync(self, store, lifecycle):
        lifecycle.start()
        with patch.object(store, "sync_to_supabase", AsyncMock()) as push:
            store.add_global_custom_tracker("RPE")
            await lifecycle.on_unload(MagicMock())
            assert lifecycle.auto_sync_pending is False
            await asyncio.sleep(DELAY * 4)
            push.assert_awaited_once()


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


class TestInitialize:

    @pytest.mark.asyncio
    async def test_offline_start(self, store, lifecycle, fake_supabase):
        fake_supabase.fail_when = lambda table, op, payload: Exception("Connection refused")

        assert await lifecycle.initialize() == StartupResult.OFFLINE

        status = store.sync_status
        assert status.is_online is False
        assert status.sync_error == OFFLINE_ERROR

    @pytest.mark.asyncio
    async def test_local_history_is_pushed(self, store, lifecycle, fake_supabase):
        _log_bench(store)

        assert await lifecycle.initialize() == StartupResult.PUSHED

        assert len(fake_supabase.rows(SESSIONS_TABLE)) == 1
        assert [r["device_id"] for r in fake_supabase.rows("device_users")] == [DEVICE_ID]
        status = store.sync_status
        assert status.is_online is True
        assert status.sync_error is None

    @pytest.mark.asyncio
    async def test_empty_history_is_pulled(self, store, lifecycle, fake_supabase):
        fake_supabase.tables[SESSIONS_TABLE] = [{"id": "r1", "device_id": DEVICE_ID, "date": "2024-01-01"}]

        assert await lifecycle.initialize() == StartupResult.PULLED

        assert [s.id for s in store.workout_sessions] == ["r1"]
        assert store.sync_status.is_online is True

    @pytest.mark.asyncio
    async def test_deleted_session_stays_deleted_after_restart(self, store, storage, remote, fake_supabase):
        _log_bench(store)
        await store.sync_to_supabase()
        store.delete_workout_session(store.workout_sessions[0].id)

        restarted = WorkoutStore(storage, remote, today=lambda: FIXED_TODAY, clock=lambda: FIXED_NOW)
        restarted.init()
        sync = LifecycleSync(restarted, remote, delay_seconds=DELAY)

        assert await sync.initialize() == StartupResult.PUSHED
        await restarted.sync_to_supabase()

        assert restarted.workout_sessions == []
        assert restarted.pending_deletions == []
        assert fake_supabase.rows(SESSIONS_TABLE) == []
        assert restarted.sync_status.pending_changes == 0

    @pytest.mark.asyncio
    async def test_push_failure_is_reported(self, store, lifecycle, fake_supabase):
        _log_bench(store)
        fake_supabase.fail_when = lambda table, op, payload: (
            Exception("permission denied") if table == SESSIONS_TABLE else None
        )

        assert await lifecycle.initialize() == StartupResult.FAILED

        status = store.sync_status
        assert status.is_online is False
        assert "permission denied" in status.sync_error

    @pytest.mark.asyncio
    async def test_unconfigured_remote_starts_offline(self, store, remote):
        remote.client = None
        sync = LifecycleSync(store, remote, delay_seconds=DELAY)

        assert await sync.initialize() == StartupResult.OFFLINE


# ---------------------------------------------------------------------------
# Manual sync and status text
# ---------------------------------------------------------------------------


class TestManualSync:

    @pytest.mark.asyncio
    async def test_manual_sync_clears_previous_error(self, store, lifecycle):
        store.set_sync_status(sync_error="old failure")
        await lifecycle.manual_sync()
        assert store.sync_status.sync_error is None
        assert store.sync_status.is_online is True

    @pytest.mark.asyncio
    async def test_manual_sync_raises_on_failure(self, store, lifecycle, fake_supabase):
        store.add_global_custom_tracker("RPE")
        fake_supabase.fail_when = lambda table, op, payload: Exception("permission denied")

        with pytest.raises(RemoteStoreError):
            await lifecycle.manual_sync()
        assert store.sync_status.sync_error is not None


class TestStatusText:

    @pytest.mark.parametrize(
        "status,expected",
        [
            (SyncStatus(sync_error="boom", is_online=True), "Sync Error"),
            (SyncStatus(is_online=False), "Offline"),
            (SyncStatus(is_online=True), "Online"),
            (SyncStatus(is_online=True, last_sync=FIXED_NOW - timedelta(seconds=20)), "Just synced"),
            (SyncStatus(is_online=True, last_sync=FIXED_NOW - timedelta(minutes=5)), "5m ago"),
            (SyncStatus(is_online=True, last_sync=FIXED_NOW - timedelta(hours=3)), "Synced"),
        ],
    )
    def test_describe_sync_status(self, status, expected):
        assert describe_sync_status(status, now=FIXED_NOW) == expected

    def test_status_text_reads_store(self, store, lifecycle):
        store.set_sync_status(is_online=True, last_sync=FIXED_NOW - timedelta(minutes=2))
        assert lifecycle.status_text(now=FIXED_NOW) == "2m ago"
