"""Per-slot connection state machine."""

import logging
import threading
from typing import Any, Dict, FrozenSet, Optional

from .base import (
    BatteryStatus,
    ConnectionState,
    DiscoveredDevice,
    SlotId,
    battery_fill,
    role_for,
    slot_number,
)

logger = logging.getLogger(__name__)


class InvalidTransition(ValueError):
    """A slot was asked to move along an edge its state machine does not have."""


_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.SCANNING}),
    ConnectionState.SCANNING: frozenset({ConnectionState.FOUND, ConnectionState.IDLE}),
    ConnectionState.FOUND: frozenset({ConnectionState.CONNECTED, ConnectionState.IDLE}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTING, ConnectionState.IDLE}),
    ConnectionState.DISCONNECTING: frozenset({ConnectionState.IDLE}),
}


class SensorSlot:
    """State of one physical sensor slot.

    Only ConnectionCoordinator moves a slot between states. A slot in
    CONNECTED always holds a device.
    """

    def __init__(self, slot_id: SlotId):
        self.slot_id = slot_id
        self._state = ConnectionState.IDLE
        self.device: Optional[DiscoveredDevice] = None
        self.battery = BatteryStatus()
        self.last_error: Optional[str] = None
        # Bumped on every return to IDLE so late link callbacks can be recognized
        self.generation = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def transition(self, new_state: ConnectionState, device: Optional[DiscoveredDevice] = None):
        """Move to a new state.

        Args:
            new_state: Target state
            device: Device handle, required when entering FOUND or CONNECTED

        Raises:
            InvalidTransition: If the edge is not allowed or a device is missing
        """
        with self._lock:
            old_state = self._state
            if new_state not in _TRANSITIONS[old_state]:
                raise InvalidTransition(
                    f"{self.slot_id.value}: {old_state.value} -> {new_state.value} is not allowed"
                )

            if new_state in (ConnectionState.FOUND, ConnectionState.CONNECTED):
                device = device or self.device
                if device is None:
                    raise InvalidTransition(
                        f"{self.slot_id.value}: {new_state.value} requires a device"
                    )
                self.device = device
            elif new_state == ConnectionState.IDLE:
                self.device = None
                self.generation += 1

            self._state = new_state

        logger.info(f"Sensor {self.slot_id.value}: {old_state.value} -> {new_state.value}")

    def update_battery(self, charge: int):
        self.battery = BatteryStatus(percentage=charge, fill=battery_fill(charge))

    def to_dict(self, swap: bool = False) -> Dict[str, Any]:
        return {
            "slot": self.slot_id.value,
            "role": role_for(self.slot_id, swap).value,
            "slot_number": slot_number(self.slot_id, swap),
            "state": self._state.value,
            "connected": self.connected,
            "device": self.device.address if self.device else None,
            "battery": self.battery.to_dict(),
            "last_error": self.last_error,
        }
