"""Device ID management for anonymous users."""
import logging
import secrets
import time
from typing import Optional

from gym_tracker_sync.storage.local_storage import LocalStorage, StorageKeys

logger = logging.getLogger(__name__)


class DeviceService:
    """Produces and persists a stable anonymous device identifier."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def get_or_create_device_id(self) -> str:
        device_id = self.get_device_id()
        if device_id:
            return device_id

        device_id = f"device_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
        self.storage.set(StorageKeys.DEVICE_ID, device_id)
        logger.info("Generated new device id %s", device_id)
        return device_id

    def get_device_id(self) -> Optional[str]:
        value = self.storage.get(StorageKeys.DEVICE_ID)
        if isinstance(value, str) and value:
            return value
        return None

    def set_device_id(self, device_id: str) -> None:
        """Adopt an existing identifier, e.g. when restoring a device."""
        self.storage.set(StorageKeys.DEVICE_ID, device_id)
