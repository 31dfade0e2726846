"""Mock sensor link for development without Bluetooth hardware.

Simulates two boards. By default scans discover a board immediately and
connects succeed, and readings are noisy IMU values. Tests can turn the
automatic behavior off and drive discovery, connect results, drops and
readings by hand.
"""

import itertools
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple
import numpy as np

from .base import (
    ConnectResultCallback,
    DisconnectCallback,
    DiscoveredDevice,
    DiscoveryCallback,
    IndicatorColor,
    RawReading,
    ReadingCallback,
    SensorLink,
    SignalKind,
    SlotId,
)

logger = logging.getLogger(__name__)


class MockSensorLink(SensorLink):
    """In-process stand-in for the Bluetooth transport."""

    def __init__(
        self,
        auto_discover: bool = True,
        auto_connect: bool = True,
        rssi: int = -60,
        battery: int = 85,
    ):
        self.auto_discover = auto_discover
        self.auto_connect = auto_connect
        self.rssi = rssi
        self.battery: Dict[SlotId, int] = {SlotId.PRIMARY: battery, SlotId.SECONDARY: battery}

        self.flashes: List[Tuple[SlotId, IndicatorColor, int]] = []
        self.resets: List[SlotId] = []
        self.scan_thresholds: Dict[SlotId, int] = {}

        self._scans: Dict[SlotId, DiscoveryCallback] = {}
        self._pending: Dict[SlotId, Tuple[ConnectResultCallback, DisconnectCallback, DiscoveredDevice]] = {}
        self._on_disconnect: Dict[SlotId, DisconnectCallback] = {}
        self._connected: Dict[SlotId, DiscoveredDevice] = {}
        self._subscriptions: Dict[int, Tuple[SlotId, SignalKind, ReadingCallback]] = {}
        self._handles = itertools.count(1)
        self._lock = threading.Lock()

        self._stream_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    # SensorLink interface

    def start_scan(self, slot: SlotId, rssi_threshold: int, on_discovered: DiscoveryCallback):
        with self._lock:
            self._scans[slot] = on_discovered
            self.scan_thresholds[slot] = rssi_threshold
        logger.debug(f"Mock scan started for {slot.value} (threshold {rssi_threshold} dBm)")
        if self.auto_discover:
            self.discover(slot)

    def stop_scan(self, slot: SlotId):
        with self._lock:
            self._scans.pop(slot, None)

    def connect(
        self,
        slot: SlotId,
        device: DiscoveredDevice,
        on_result: ConnectResultCallback,
        on_disconnect: DisconnectCallback,
    ):
        with self._lock:
            self._pending[slot] = (on_result, on_disconnect, device)
        if self.auto_connect:
            self.complete_connect(slot, device=device)

    def subscribe(self, slot: SlotId, kind: SignalKind, on_reading: ReadingCallback) -> Any:
        with self._lock:
            handle = next(self._handles)
            self._subscriptions[handle] = (slot, kind, on_reading)
        return handle

    def unsubscribe(self, handle: Any):
        with self._lock:
            self._subscriptions.pop(handle, None)

    def read_battery(self, slot: SlotId) -> int:
        return self.battery[slot]

    def reset(self, slot: SlotId):
        with self._lock:
            self.resets.append(slot)
            self._connected.pop(slot, None)
            self._on_disconnect.pop(slot, None)
            self._pending.pop(slot, None)
            for handle in [h for h, (s, _, _) in self._subscriptions.items() if s == slot]:
                del self._subscriptions[handle]

    def flash_indicator(self, slot: SlotId, color: IndicatorColor, count: int):
        logger.debug(f"Mock {slot.value} LED: {color.value} x{count}")
        with self._lock:
            self.flashes.append((slot, color, count))

    def is_connected(self, slot: SlotId) -> bool:
        with self._lock:
            return slot in self._connected

    # Simulation controls

    def scanning(self, slot: SlotId) -> bool:
        with self._lock:
            return slot in self._scans

    def discover(self, slot: SlotId, rssi: Optional[int] = None, address: Optional[str] = None):
        """Report a device to the active scan of a slot, if any."""
        with self._lock:
            callback = self._scans.get(slot)
        if callback is None:
            return
        device = DiscoveredDevice(
            address=address or f"mock-{slot.value}",
            rssi=self.rssi if rssi is None else rssi,
            name=f"MockIMU-{slot.value}",
        )
        callback(device)

    def complete_connect(
        self,
        slot: SlotId,
        error: Optional[Exception] = None,
        device: Optional[DiscoveredDevice] = None,
    ):
        """Deliver the result of a pending connect."""
        with self._lock:
            pending = self._pending.pop(slot, None)
            if pending is None:
                return
            on_result, on_disconnect, pending_device = pending
            if error is None:
                self._connected[slot] = device or pending_device
                self._on_disconnect[slot] = on_disconnect
        on_result(error)

    def drop(self, slot: SlotId, notify: bool = True):
        """Simulate the board going out of range."""
        with self._lock:
            self._connected.pop(slot, None)
            on_disconnect = self._on_disconnect.pop(slot, None)
        if notify and on_disconnect is not None:
            on_disconnect()

    def subscriptions(self, slot: Optional[SlotId] = None) -> List[Tuple[SlotId, SignalKind]]:
        with self._lock:
            return [(s, k) for s, k, _ in self._subscriptions.values() if slot is None or s == slot]

    def emit(self, slot: SlotId, kind: SignalKind, reading: Optional[RawReading] = None):
        """Deliver a reading to every subscriber of (slot, kind)."""
        reading = reading or self._generate_mock_reading(kind)
        with self._lock:
            callbacks = [cb for s, k, cb in self._subscriptions.values() if s == slot and k == kind]
        for callback in callbacks:
            callback(reading)

    def _generate_mock_reading(self, kind: SignalKind) -> RawReading:
        """Generate a noisy reading like a resting board."""
        if kind == SignalKind.ACCELERATION:
            values = np.random.normal(0, 0.1, 3)
            values[2] += 1.0  # gravity
        else:
            values = np.random.normal(0, 0.01, 3)
        return RawReading(x=float(values[0]), y=float(values[1]), z=float(values[2]))

    def start_streaming(self, rate_hz: float = 50.0):
        """Emit readings for every subscription from a background thread."""
        if self._stream_thread and self._stream_thread.is_alive():
            return
        self._stop_event.clear()
        interval = 1.0 / rate_hz

        def stream_loop():
            while not self._stop_event.wait(interval):
                for slot in SlotId:
                    if self.is_connected(slot):
                        for kind in SignalKind:
                            self.emit(slot, kind)

        self._stream_thread = threading.Thread(target=stream_loop, name="MockSensorStream", daemon=True)
        self._stream_thread.start()
        logger.info(f"Mock sensor streaming at {rate_hz} Hz")

    def stop_streaming(self):
        self._stop_event.set()
        if self._stream_thread:
            self._stream_thread.join(timeout=2.0)
            self._stream_thread = None
