"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gym_tracker_sync.api.routes import router
from gym_tracker_sync.config import settings
from gym_tracker_sync.services.device_service import DeviceService
from gym_tracker_sync.services.supabase_storage import SupabaseStorageService, get_supabase_client
from gym_tracker_sync.storage.local_storage import JsonFileStorage
from gym_tracker_sync.store.workout_store import StoreState, WorkoutStore
from gym_tracker_sync.sync.lifecycle_sync import LifecycleSync

logger = logging.getLogger(__name__)


def build_store() -> tuple[WorkoutStore, LifecycleSync]:
    """Wire local storage, identity, the remote client and the store together."""
    storage = JsonFileStorage(settings.DATA_DIR)
    remote = SupabaseStorageService(get_supabase_client(), DeviceService(storage))
    store = WorkoutStore(storage, remote)
    return store, LifecycleSync(store, remote)


def create_app(
    store: Optional[WorkoutStore] = None,
    lifecycle: Optional[LifecycleSync] = None,
    sync_on_startup: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            app.state.store, app.state.lifecycle = build_store()
        store = app.state.store
        lifecycle = app.state.lifecycle

        if store.state == StoreState.UNINITIALIZED:
            store.init()
        lifecycle.start()
        if sync_on_startup:
            result = await lifecycle.initialize()
            logger.info("Startup sync: %s", result.value)
        yield
        lifecycle.stop()

    app = FastAPI(title="Gym Tracker Sync", lifespan=lifespan)
    app.state.store = store
    app.state.lifecycle = lifecycle

    # Configure CORS to allow requests from the UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:8080"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
