"""
Lifecycle-driven sync policy.

Decides when the workout store pushes to or pulls from Supabase:

- debounce: every local change to exercises, sessions or trackers re-arms a
  single timer; the push happens once edits have been quiet for
  ``delay_seconds``;
- page hide: best-effort push, failures only logged;
- unload: push, and if it fails ask the user whether to leave anyway;
- startup: register the device, probe connectivity, then push when local
  history exists or pull when it does not.

An in-flight push is never cancelled by a later trigger.
"""

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from gym_tracker_sync.config import settings
from gym_tracker_sync.models import SyncStatus
from gym_tracker_sync.services.supabase_storage import SupabaseStorageService
from gym_tracker_sync.store.workout_store import SYNCED_COLLECTIONS, StoreChange, WorkoutStore

logger = logging.getLogger(__name__)

UNLOAD_WARNING = "You have unsaved workout data. Are you sure you want to leave?"
OFFLINE_ERROR = "No internet connection"


class StartupResult(str, enum.Enum):
    OFFLINE = "offline"
    PUSHED = "pushed"
    PULLED = "pulled"
    FAILED = "failed"


def describe_sync_status(status: SyncStatus, now: Optional[datetime] = None) -> str:
    """Short label for a sync status badge."""
    if status.sync_error:
        return "Sync Error"
    if not status.is_online:
        return "Offline"
    if status.last_sync:
        now = now or datetime.now(timezone.utc)
        minutes = int((now - status.last_sync).total_seconds() // 60)
        if minutes <= 0:
            return "Just synced"
        if minutes < 60:
            return f"{minutes}m ago"
        return "Synced"
    return "Online"


class LifecycleSync:
    """Owns the auto-sync timer handle and reacts to lifecycle events."""

    def __init__(
        self,
        store: WorkoutStore,
        remote: SupabaseStorageService,
        delay_seconds: Optional[float] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.store = store
        self.remote = remote
        self.delay_seconds = settings.AUTO_SYNC_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # Debounced auto-sync
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin watching the store for changes."""
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                pass
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_store_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.cancel_auto_sync()

    @property
    def auto_sync_pending(self) -> bool:
        return self._handle is not None

    def _on_store_change(self, change: StoreChange) -> None:
        if change.origin == "local" and change.collection in SYNCED_COLLECTIONS:
            self.schedule_auto_sync()

    def schedule_auto_sync(self) -> None:
        """Cancel any pending auto-sync and schedule a new one."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = self._loop
            if loop is None or loop.is_closed():
                logger.debug("No event loop available; auto-sync not scheduled")
                return
            loop.call_soon_threadsafe(self._rearm, loop)
            return
        self._rearm(loop)

    def _rearm(self, loop: asyncio.AbstractEventLoop) -> None:
        self.cancel_auto_sync()
        self._handle = loop.call_later(self.delay_seconds, self._fire, loop)

    def cancel_auto_sync(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = None
        task = loop.create_task(self._auto_sync())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _auto_sync(self) -> None:
        try:
            await self.store.sync_to_supabase()
        except Exception as e:
            logger.error("Auto-sync failed: %s", e)

    # ------------------------------------------------------------------
    # Page lifecycle
    # ------------------------------------------------------------------

    async def on_page_hide(self) -> bool:
        """Best-effort push when the page is backgrounded."""
        try:
            await self.store.sync_to_supabase()
            return True
        except Exception as e:
            logger.error("Visibility sync failed: %s", e)
            return False

    async def on_unload(self, confirm: Callable[[str], bool]) -> bool:
        """Final push before termination.

        Returns True when navigation may proceed: either the push succeeded or
        the user confirmed leaving with unsynced data.
        """
        self.cancel_auto_sync()
        try:
            await self.store.sync_to_supabase()
            return True
        except Exception as e:
            logger.error("Final sync failed: %s", e)
            return bool(confirm(UNLOAD_WARNING))

    # ------------------------------------------------------------------
    # Startup and manual sync
    # ------------------------------------------------------------------

    async def initialize(self) -> StartupResult:
        """Cold-start reconciliation.

        Local history or queued deletions win when present (pushed over the
        remote), otherwise the remote is pulled. No merge of the two histories happens here.
        """
        logger.info("Initializing sync...")
        self.store.set_sync_status(is_online=False, last_sync=None, sync_error=None)
        has_local_data = bool(self.store.workout_sessions or self.store.pending_deletions)

        try:
            await asyncio.to_thread(self.remote.register_device)
            is_online = await asyncio.to_thread(self.remote.check_connectivity)

            if not is_online:
                self.store.set_sync_status(is_online=False, sync_error=OFFLINE_ERROR)
                logger.info("Starting offline")
                return StartupResult.OFFLINE

            if has_local_data:
                logger.info("Keeping local data, syncing to cloud...")
                await self.store.sync_to_supabase()
                result = StartupResult.PUSHED
            else:
                logger.info("Loading from Supabase (no local data)...")
                await self.store.load_from_supabase()
                result = StartupResult.PULLED
        except Exception as e:
            logger.error("Sync initialization failed: %s", e)
            self.store.set_sync_status(
                is_online=False,
                sync_error=str(e) or "Failed to initialize sync",
            )
            return StartupResult.FAILED

        self.store.set_sync_status(is_online=True, sync_error=None)
        return result

    async def manual_sync(self) -> None:
        """User-requested retry. Raises when the push fails."""
        self.store.set_sync_status(sync_error=None)
        self.cancel_auto_sync()
        await self.store.sync_to_supabase()

    def status_text(self, now: Optional[datetime] = None) -> str:
        return describe_sync_status(self.store.sync_status, now)
