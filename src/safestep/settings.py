"""User-tunable settings.

Settings are read fresh by the core on every event, so changes made through
the API take effect immediately. They are persisted as a JSON file.
"""

import os
import json
import logging
import threading
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVITY_SECONDS = 45


@dataclass(frozen=True)
class Settings:
    """Snapshot of the user settings."""
    auto_reconnect_enabled: bool = False
    walking_detection_notifications_enabled: bool = False
    walking_detection_all_day_enabled: bool = False
    walking_detection_sensitivity_seconds: int = DEFAULT_SENSITIVITY_SECONDS
    waist_wrist_role_swap: bool = False
    disconnect_alerts_enabled: bool = False
    motion_debug_logs_enabled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Build settings from a dict, ignoring unknown keys."""
        return cls()._merged(data)

    def _merged(self, data: Dict[str, Any]) -> "Settings":
        changes = {}
        for key, value in data.items():
            if key not in self.__dataclass_fields__:
                continue
            if key == "walking_detection_sensitivity_seconds":
                changes[key] = int(value)
            else:
                changes[key] = _to_bool(value)
        return replace(self, **changes)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class SettingsStore:
    """Thread-safe holder of the current Settings, optionally file-backed."""

    def __init__(self, path: Optional[str] = None, initial: Optional[Settings] = None):
        """Initialize the store.

        Args:
            path: JSON file to load from and save to (None keeps settings in memory)
            initial: Settings to start with when no file is loaded
        """
        self.path = path
        self._settings = initial or Settings()
        self._lock = threading.Lock()
        if path:
            self.load()

    def get(self) -> Settings:
        with self._lock:
            return self._settings

    def update(self, **changes) -> Settings:
        """Apply changes, persist them and return the new settings.

        Raises:
            KeyError: If a key is not a known setting
            ValueError: If a value cannot be converted
        """
        unknown = [k for k in changes if k not in Settings.__dataclass_fields__]
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")

        with self._lock:
            self._settings = self._settings._merged(changes)
            settings = self._settings
        logger.info(f"Settings updated: {changes}")
        self.save()
        return settings

    def load(self):
        """Load settings from the file if it exists."""
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            with self._lock:
                self._settings = Settings.from_dict(data)
            logger.info(f"Loaded settings from {self.path}")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading settings from {self.path}: {e}")

    def save(self):
        if not self.path:
            return
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(self.get().to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Error saving settings to {self.path}: {e}")
