"""Location source interface and a static implementation."""

import logging
import threading
from abc import ABC, abstractmethod

from ..data_manager.protocol import Location, ZERO_LOCATION

logger = logging.getLogger(__name__)


class LocationUnavailable(Exception):
    """Location services are disabled."""


class LocationSource(ABC):
    """GPS provider."""

    @abstractmethod
    def current_location(self) -> Location:
        pass

    @abstractmethod
    def start_recording(self):
        pass

    @abstractmethod
    def stop_recording(self):
        pass

    @abstractmethod
    def is_disabled(self) -> bool:
        pass


class StaticLocationSource(LocationSource):
    """Reports a fixed, settable location. Used on devices without GPS and in tests."""

    def __init__(self, location: Location = ZERO_LOCATION, disabled: bool = False):
        self._location = location
        self._disabled = disabled
        self._recording = False
        self._lock = threading.Lock()

    @property
    def recording(self) -> bool:
        return self._recording

    def set_location(self, location: Location):
        with self._lock:
            self._location = location

    def set_disabled(self, disabled: bool):
        with self._lock:
            self._disabled = disabled

    def current_location(self) -> Location:
        with self._lock:
            return self._location

    def start_recording(self):
        if not self._recording:
            logger.debug("Location recording started")
        self._recording = True

    def stop_recording(self):
        if self._recording:
            logger.debug("Location recording stopped")
        self._recording = False

    def is_disabled(self) -> bool:
        with self._lock:
            return self._disabled
