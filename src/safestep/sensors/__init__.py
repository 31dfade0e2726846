"""Sensor connection management for SafeStep.

Two wearable IMU boards are paired over Bluetooth, one per slot. Each slot
runs the state machine

    idle -> scanning -> found -> connected -> disconnecting -> idle

driven by ConnectionCoordinator. The transport is abstracted behind
SensorLink; MockSensorLink simulates it for development and tests.
"""

from .base import (
    BatteryStatus,
    ConnectionFailure,
    ConnectionState,
    DiscoveredDevice,
    IndicatorColor,
    RawReading,
    SensorLink,
    SensorRole,
    SignalKind,
    SlotId,
    battery_fill,
    role_for,
    slot_number,
)
from .slot import InvalidTransition, SensorSlot
from .location import LocationSource, LocationUnavailable, StaticLocationSource
from .mock_link import MockSensorLink
from .coordinator import ConnectionCoordinator, ConnectionEvent, UnexpectedDisconnect

__all__ = [
    "BatteryStatus",
    "ConnectionFailure",
    "ConnectionState",
    "DiscoveredDevice",
    "IndicatorColor",
    "RawReading",
    "SensorLink",
    "SensorRole",
    "SignalKind",
    "SlotId",
    "battery_fill",
    "role_for",
    "slot_number",
    "InvalidTransition",
    "SensorSlot",
    "LocationSource",
    "LocationUnavailable",
    "StaticLocationSource",
    "MockSensorLink",
    "ConnectionCoordinator",
    "ConnectionEvent",
    "UnexpectedDisconnect",
]
