"""
Local key-value persistence.

Every domain collection (exercises, sessions, the draft, trackers) is stored
as plain JSON under a logical key. Reads never raise: a missing key, a
malformed document or an unreadable file yields the caller's default.
"""

import json
import logging
import threading
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class StorageKeys:
    """Logical storage keys."""

    EXERCISES = "exercises"
    WORKOUT_SESSIONS = "workout-sessions"
    CURRENT_WORKOUT = "current-workout-draft"
    GLOBAL_CUSTOM_TRACKERS = "global-custom-trackers"
    DEVICE_ID = "device-id"
    PENDING_DELETIONS = "pending-session-deletions"
    STORAGE_VERSION = "storage-version"


class LocalStorage(Protocol):
    """Durable key-value storage capability."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class MemoryStorage:
    """In-process storage holding JSON-encoded documents.

    Values are encoded on write and decoded on read so they round-trip the
    same way they would through a file or a browser store.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._items.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Error loading %s from storage: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> None:
        try:
            self._items[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("Error saving %s to storage: %s", key, e)

    def set_raw(self, key: str, raw: str) -> None:
        """Store an undecoded document (used to simulate corrupt data)."""
        self._items[key] = raw

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def keys(self):
        return list(self._items.keys())


class JsonFileStorage:
    """Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash never leaves a half-written document behind.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            raw = path.read_text(encoding="utf-8")
            return json.loads(raw)
        except (OSError, ValueError) as e:
            logger.error("Error loading %s from storage: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(value, indent=2, sort_keys=True) + "\n"
        except (TypeError, ValueError) as e:
            logger.error("Error saving %s to storage: %s", key, e)
            return

        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                with NamedTemporaryFile(
                    "w", dir=self.directory, delete=False, encoding="utf-8", suffix=".tmp"
                ) as tmp:
                    tmp.write(payload)
                    temp_path = Path(tmp.name)
                temp_path.replace(path)
            except OSError as e:
                logger.error("Error saving %s to storage: %s", key, e)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.error("Error removing %s from storage: %s", key, e)

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
            except OSError as e:
                logger.error("Error removing %s: %s", path.name, e)
