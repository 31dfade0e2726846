"""Connection Coordinator for the two sensor slots.

This module drives the scan -> connect -> disconnect cycle of each slot,
handles unexpected drops (auto-reconnect or a rate-limited alert) and
exposes live status for presentation.

All state changes run on the EventDispatcher. Link callbacks are captured
with the slot generation current when they were issued, so a result that
arrives after the slot went back to idle is recognized and discarded.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .base import (
    ConnectionFailure,
    ConnectionState,
    DiscoveredDevice,
    IndicatorColor,
    SensorLink,
    SlotId,
)
from .slot import SensorSlot
from ..backend.dispatcher import EventDispatcher
from ..backend.notifications import NotificationGate
from ..settings import SettingsStore

logger = logging.getLogger(__name__)

DEFAULT_RSSI_THRESHOLDS = {
    SlotId.PRIMARY: -90,
    SlotId.SECONDARY: -999,
}

DISCONNECT_ALERT_KEY = "sensorDisconnectAlert"
DISCONNECT_ALERT_TITLE = "Sensor Disconnected"
DISCONNECT_BODY_RECORDING = (
    "Ongoing walking session temporarily suspended. "
    "Please reconnect to your IMU sensor on the app."
)
DISCONNECT_BODY_IDLE = (
    "Walking detection is not available while disconnected. "
    "Please reconnect to your IMU sensor on the app."
)


class UnexpectedDisconnect(ConnectionFailure):
    """A connected sensor dropped without a user request."""


class ConnectionEvent(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    LOST = "lost"


ConnectionListener = Callable[[SlotId, ConnectionEvent], None]


class ConnectionCoordinator:
    """Owns the two sensor slots and their connection state machines."""

    def __init__(
        self,
        link: SensorLink,
        dispatcher: EventDispatcher,
        settings: SettingsStore,
        gate: NotificationGate,
        rssi_thresholds: Optional[Dict[SlotId, int]] = None,
        disconnect_alert_rate_limit: float = 60,
        is_recording: Callable[[], bool] = lambda: False,
    ):
        """Initialize the coordinator.

        Args:
            link: Bluetooth transport
            dispatcher: Serial context all state changes run on
            settings: User settings (auto-reconnect, alerts, role swap)
            gate: Alert gate for disconnect notifications
            rssi_thresholds: Per-slot minimum signal strength in dBm
            disconnect_alert_rate_limit: Seconds between disconnect alerts
            is_recording: Reports whether a session is recording
        """
        self.link = link
        self.dispatcher = dispatcher
        self.settings = settings
        self.gate = gate
        self.rssi_thresholds = dict(DEFAULT_RSSI_THRESHOLDS)
        if rssi_thresholds:
            self.rssi_thresholds.update(rssi_thresholds)
        self.disconnect_alert_rate_limit = disconnect_alert_rate_limit
        self.is_recording = is_recording

        self.slots: Dict[SlotId, SensorSlot] = {slot_id: SensorSlot(slot_id) for slot_id in SlotId}
        self._listeners: List[ConnectionListener] = []

    def add_listener(self, listener: ConnectionListener):
        """Register a callback for connect, disconnect and drop events."""
        self._listeners.append(listener)

    # Public operations (safe to call from any thread)

    def scan(self, slot_id: SlotId) -> bool:
        """Start scanning for a slot. Refused unless the slot is idle.

        Returns:
            True if a scan was started
        """
        return self.dispatcher.call(self._scan, slot_id)

    def cancel_scan(self, slot_id: SlotId):
        self.dispatcher.call(self._cancel_scan, slot_id)

    def disconnect(self, slot_id: SlotId):
        """Disconnect and reset a board. The slot always ends idle."""
        self.dispatcher.call(self._disconnect, slot_id)

    def ping(self, slot_id: SlotId) -> bool:
        """Flash the board's LED blue to identify it."""
        return self.dispatcher.call(self._ping, slot_id)

    def refresh_battery(self, slot_id: SlotId) -> Optional[int]:
        """Read the battery level of a connected board.

        Returns:
            Charge percentage, or None if the board is not connected or the
            read failed
        """
        return self.dispatcher.call(self._refresh_battery, slot_id)

    def refresh_all_batteries(self):
        for slot_id in SlotId:
            self.dispatcher.submit(self._refresh_battery, slot_id)

    def poll_status(self):
        """Reconcile slot states with the transport."""
        self.dispatcher.call(self._poll_status)

    def is_connected(self, slot_id: SlotId) -> bool:
        return self.slots[slot_id].connected

    def any_connected(self) -> bool:
        return any(slot.connected for slot in self.slots.values())

    def connected_slots(self) -> List[SlotId]:
        return [slot_id for slot_id, slot in self.slots.items() if slot.connected]

    def state(self, slot_id: SlotId) -> ConnectionState:
        return self.slots[slot_id].state

    def status(self) -> Dict[str, Any]:
        swap = self.settings.get().waist_wrist_role_swap
        return {
            slot_id.value: slot.to_dict(swap=swap)
            for slot_id, slot in self.slots.items()
        }

    # Dispatcher-side handlers

    def _scan(self, slot_id: SlotId) -> bool:
        slot = self.slots[slot_id]
        if slot.state != ConnectionState.IDLE:
            logger.warning(f"Scan refused for {slot_id.value}: slot is {slot.state.value}")
            return False

        slot.transition(ConnectionState.SCANNING)
        slot.last_error = None
        generation = slot.generation
        threshold = self.rssi_thresholds[slot_id]

        def on_discovered(device: DiscoveredDevice):
            self.dispatcher.submit(self._on_discovered, slot_id, generation, device)

        try:
            self.link.start_scan(slot_id, threshold, on_discovered)
        except Exception as e:
            logger.error(f"Failed to start scan for {slot_id.value}: {e}")
            slot.last_error = str(e)
            slot.transition(ConnectionState.IDLE)
            return False

        logger.info(f"Scanning for {slot_id.value} sensor (threshold {threshold} dBm)")
        return True

    def _on_discovered(self, slot_id: SlotId, generation: int, device: DiscoveredDevice):
        slot = self.slots[slot_id]
        if slot.generation != generation or slot.state != ConnectionState.SCANNING:
            return
        if device.rssi <= self.rssi_thresholds[slot_id]:
            logger.debug(f"Ignoring {device.address} for {slot_id.value}: rssi {device.rssi}")
            return

        try:
            self.link.stop_scan(slot_id)
        except Exception as e:
            logger.warning(f"Failed to stop scan for {slot_id.value}: {e}")

        slot.transition(ConnectionState.FOUND, device=device)
        logger.info(f"Found {slot_id.value} sensor {device.address} (rssi {device.rssi})")

        def on_result(error: Optional[Exception]):
            self.dispatcher.submit(self._on_connect_result, slot_id, generation, error)

        def on_disconnect():
            self.dispatcher.submit(self._on_link_disconnect, slot_id, generation)

        try:
            self.link.connect(slot_id, device, on_result, on_disconnect)
        except Exception as e:
            self._connect_failed(slot_id, e)

    def _on_connect_result(self, slot_id: SlotId, generation: int, error: Optional[Exception]):
        slot = self.slots[slot_id]
        if slot.generation != generation or slot.state != ConnectionState.FOUND:
            logger.info(f"Discarding late connect result for {slot_id.value}")
            if error is None:
                try:
                    self.link.reset(slot_id)
                except Exception as e:
                    logger.warning(f"Failed to reset {slot_id.value} after cancelled connect: {e}")
            return

        if error is not None:
            self._connect_failed(slot_id, error)
            return

        slot.transition(ConnectionState.CONNECTED)
        logger.info(f"Sensor {slot_id.value} connected")
        self._flash(slot_id, IndicatorColor.GREEN, 3)
        self._notify_listeners(slot_id, ConnectionEvent.CONNECTED)
        self._refresh_battery(slot_id)

    def _connect_failed(self, slot_id: SlotId, error: Exception):
        slot = self.slots[slot_id]
        failure = error if isinstance(error, ConnectionFailure) else ConnectionFailure(str(error))
        logger.warning(f"Failed to connect {slot_id.value} sensor: {failure}")
        slot.last_error = str(failure)
        slot.transition(ConnectionState.IDLE)

        if self.settings.get().auto_reconnect_enabled:
            self._scan(slot_id)

    def _on_link_disconnect(self, slot_id: SlotId, generation: int):
        slot = self.slots[slot_id]
        if slot.generation != generation or slot.state != ConnectionState.CONNECTED:
            return
        self._handle_lost(slot_id)

    def _handle_lost(self, slot_id: SlotId):
        slot = self.slots[slot_id]
        error = UnexpectedDisconnect(f"Sensor {slot_id.value} disconnected unexpectedly")
        logger.warning(str(error))
        slot.last_error = str(error)
        slot.transition(ConnectionState.IDLE)
        slot.battery.percentage = None
        self._notify_listeners(slot_id, ConnectionEvent.LOST)

        settings = self.settings.get()
        if settings.auto_reconnect_enabled:
            self._scan(slot_id)
        elif settings.disconnect_alerts_enabled:
            body = DISCONNECT_BODY_RECORDING if self.is_recording() else DISCONNECT_BODY_IDLE
            self.gate.notify(
                DISCONNECT_ALERT_KEY,
                DISCONNECT_ALERT_TITLE,
                body,
                rate_limit_seconds=self.disconnect_alert_rate_limit,
                rate_limit_key=DISCONNECT_ALERT_KEY,
            )

    def _cancel_scan(self, slot_id: SlotId):
        slot = self.slots[slot_id]
        if slot.state not in (ConnectionState.SCANNING, ConnectionState.FOUND):
            return
        try:
            self.link.stop_scan(slot_id)
        except Exception as e:
            logger.warning(f"Failed to stop scan for {slot_id.value}: {e}")
        finally:
            slot.transition(ConnectionState.IDLE)
        logger.info(f"Scan cancelled for {slot_id.value}")

    def _disconnect(self, slot_id: SlotId):
        slot = self.slots[slot_id]
        if slot.state in (ConnectionState.SCANNING, ConnectionState.FOUND):
            self._cancel_scan(slot_id)
            return
        if slot.state == ConnectionState.IDLE:
            return

        if slot.state == ConnectionState.CONNECTED:
            slot.transition(ConnectionState.DISCONNECTING)
        try:
            self._flash(slot_id, IndicatorColor.RED, 1)
            self.link.reset(slot_id)
        except Exception as e:
            logger.error(f"Error resetting {slot_id.value} sensor: {e}")
            slot.last_error = str(e)
        finally:
            slot.transition(ConnectionState.IDLE)

        logger.info(f"Sensor {slot_id.value} disconnected")
        self._notify_listeners(slot_id, ConnectionEvent.DISCONNECTED)
        self._refresh_battery(slot_id)

    def _ping(self, slot_id: SlotId) -> bool:
        if not self.slots[slot_id].connected:
            return False
        self._flash(slot_id, IndicatorColor.BLUE, 3)
        return True

    def _refresh_battery(self, slot_id: SlotId) -> Optional[int]:
        slot = self.slots[slot_id]
        if not slot.connected:
            slot.battery.percentage = None
            return None
        try:
            charge = int(self.link.read_battery(slot_id))
        except Exception as e:
            logger.warning(f"Failed to read battery of {slot_id.value}: {e}")
            return None
        slot.update_battery(charge)
        logger.debug(f"Battery {slot_id.value}: {charge}%")
        return charge

    def _poll_status(self):
        for slot_id, slot in self.slots.items():
            if not slot.connected:
                continue
            try:
                alive = self.link.is_connected(slot_id)
            except Exception as e:
                logger.warning(f"Status check failed for {slot_id.value}: {e}")
                continue
            if not alive:
                self._handle_lost(slot_id)

    def _flash(self, slot_id: SlotId, color: IndicatorColor, count: int):
        try:
            self.link.flash_indicator(slot_id, color, count)
        except Exception as e:
            logger.warning(f"Failed to flash {slot_id.value} LED: {e}")

    def _notify_listeners(self, slot_id: SlotId, event: ConnectionEvent):
        for listener in list(self._listeners):
            try:
                listener(slot_id, event)
            except Exception as e:
                logger.error(f"Connection listener failed on {event.value} for {slot_id.value}: {e}")
