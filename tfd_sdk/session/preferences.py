"""Persisted auto-connect preference.

The only state kept across application restarts is the identifier of the
last device that was connected successfully.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

LAST_DEVICE_KEY = "lastConnectedDeviceId"
DEFAULT_PREFERENCES_PATH = Path.home() / ".config" / "tfd_sdk" / "preferences.json"


class DevicePreferences:
    """Key/value preferences stored as a small JSON file.

    With ``path=None`` values are kept in memory only.
    Read and write failures are logged; a broken preferences file must never
    stop a connection.
    """

    def __init__(self, path: Optional[Union[str, Path]] = DEFAULT_PREFERENCES_PATH):
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get_last_device_id(self) -> Optional[str]:
        with self._lock:
            value = self._values.get(LAST_DEVICE_KEY)
        return value if isinstance(value, str) and value else None

    def set_last_device_id(self, device_id: str) -> None:
        with self._lock:
            if self._values.get(LAST_DEVICE_KEY) == device_id:
                return
            self._values[LAST_DEVICE_KEY] = device_id
            self._save()
        logger.info(f"Remembered device {device_id}")

    def _load(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preferences {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed preferences {self._path}")
            return {}
        return data

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save preferences {self._path}: {e}")
