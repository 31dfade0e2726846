"""Base types and the sensor link interface.

This module defines the two sensor slots, their connection states, and the
SensorLink collaborator that wraps the Bluetooth transport / vendor SDK.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional
import time

logger = logging.getLogger(__name__)


class SlotId(str, Enum):
    """Physical sensor slots."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SensorRole(str, Enum):
    """Body placement of a sensor."""
    WAIST = "waist"
    WRIST = "wrist"


class ConnectionState(str, Enum):
    """Connection state of a sensor slot."""
    IDLE = "idle"
    SCANNING = "scanning"
    FOUND = "found"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class SignalKind(str, Enum):
    """Streams a sensor can be subscribed to."""
    GYROSCOPE = "gyroscope"
    ACCELERATION = "acceleration"


class IndicatorColor(str, Enum):
    """LED colors used for visual acknowledgment on the board."""
    GREEN = "green"
    BLUE = "blue"
    RED = "red"


class ConnectionFailure(Exception):
    """Scan or connect did not succeed."""


def role_for(slot: SlotId, swap: bool) -> SensorRole:
    """Body role of a slot under the waist/wrist swap setting."""
    primary_is_waist = not swap
    if slot == SlotId.PRIMARY:
        return SensorRole.WAIST if primary_is_waist else SensorRole.WRIST
    return SensorRole.WRIST if primary_is_waist else SensorRole.WAIST


def slot_number(slot: SlotId, swap: bool) -> int:
    """Slot number recorded on samples: 1 for waist, 2 for wrist."""
    return 1 if role_for(slot, swap) == SensorRole.WAIST else 2


def battery_fill(charge: int) -> int:
    """Coarse 5-level battery indicator (0, 25, 50, 75, 100)."""
    return min(max(charge, 0) // 20, 4) * 25


@dataclass(frozen=True)
class DiscoveredDevice:
    """A device seen while scanning. Opaque handle owned by the link."""
    address: str
    rssi: int
    name: str = ""


@dataclass(frozen=True)
class RawReading:
    """A 3-axis reading delivered by a signal subscription."""
    x: float
    y: float
    z: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class BatteryStatus:
    """Last battery reading of a slot."""
    percentage: Optional[int] = None
    fill: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DiscoveryCallback = Callable[[DiscoveredDevice], None]
ConnectResultCallback = Callable[[Optional[Exception]], None]
DisconnectCallback = Callable[[], None]
ReadingCallback = Callable[[RawReading], None]


class SensorLink(ABC):
    """Bluetooth transport to the two sensor boards.

    Callbacks may be invoked from transport threads; callers are expected to
    hand them off to their own processing context.
    """

    @abstractmethod
    def start_scan(self, slot: SlotId, rssi_threshold: int, on_discovered: DiscoveryCallback):
        """Start scanning for a board for this slot."""
        pass

    @abstractmethod
    def stop_scan(self, slot: SlotId):
        """Stop an active scan."""
        pass

    @abstractmethod
    def connect(
        self,
        slot: SlotId,
        device: DiscoveredDevice,
        on_result: ConnectResultCallback,
        on_disconnect: DisconnectCallback,
    ):
        """Connect to a discovered device.

        Args:
            slot: Slot the device is being bound to
            device: Device returned by the scan
            on_result: Called once with None on success or the error
            on_disconnect: Called if the connection later drops
        """
        pass

    @abstractmethod
    def subscribe(self, slot: SlotId, kind: SignalKind, on_reading: ReadingCallback) -> Any:
        """Subscribe to a signal. Returns a handle for unsubscribe()."""
        pass

    @abstractmethod
    def unsubscribe(self, handle: Any):
        """Cancel a subscription."""
        pass

    @abstractmethod
    def read_battery(self, slot: SlotId) -> int:
        """Read battery charge percentage."""
        pass

    @abstractmethod
    def reset(self, slot: SlotId):
        """Clear and reset the board, dropping the connection."""
        pass

    @abstractmethod
    def flash_indicator(self, slot: SlotId, color: IndicatorColor, count: int):
        """Flash the board LED."""
        pass

    @abstractmethod
    def is_connected(self, slot: SlotId) -> bool:
        """Whether the transport considers the slot connected and set up."""
        pass
