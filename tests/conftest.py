"""Shared fakes and fixtures for the safestep test suite."""

from __future__ import annotations

import threading
import time
from typing import Dict, List, Tuple

import pytest

from safestep.backend.dispatcher import EventDispatcher
from safestep.backend.notifications import AlertChannel, NotificationGate
from safestep.data_manager.protocol import HazardRecord, Location, SampleBatch
from safestep.data_manager.store import PersistenceFailure, RecordStore
from safestep.data_manager.uploader import UploadQueue
from safestep.sensors.base import SlotId
from safestep.sensors.coordinator import ConnectionCoordinator
from safestep.sensors.location import StaticLocationSource
from safestep.sensors.mock_link import MockSensorLink
from safestep.session.recorder import SessionRecorder
from safestep.settings import SettingsStore

HOME = Location(latitude=42.2808, longitude=-83.7430, altitude=256.0)


def wait_until(predicate, timeout_s: float = 2.0, step_s: float = 0.01) -> bool:
    """Poll *predicate* until it returns truthy, or *timeout_s* expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step_s)
    return False


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingStore(RecordStore):
    """In-memory store that records every write and can be told to fail."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.connect_calls = 0
        self.batches: Dict[str, SampleBatch] = {}
        self.records: Dict[str, HazardRecord] = {}
        self.write_order: List[Tuple[str, str]] = []
        self.attempts = 0
        self.closed = False
        self._lock = threading.Lock()

    def connect(self) -> None:
        with self._lock:
            self.connect_calls += 1

    def _maybe_fail(self) -> None:
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise PersistenceFailure("simulated outage")

    def write_batch(self, batch: SampleBatch) -> None:
        with self._lock:
            self._maybe_fail()
            self.batches[batch.batch_id] = batch
            self.write_order.append(("batch", batch.batch_id))

    def write_hazard_record(self, record: HazardRecord) -> None:
        with self._lock:
            self._maybe_fail()
            self.records[record.record_id] = record
            self.write_order.append(("record", record.record_id))

    def close(self) -> None:
        self.closed = True


class RecordingAlertChannel(AlertChannel):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.delivered: List[Tuple[str, str]] = []

    def deliver(self, title: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("channel down")
        self.delivered.append((title, body))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> EventDispatcher:
    return EventDispatcher(inline=True)


@pytest.fixture
def settings() -> SettingsStore:
    return SettingsStore()


@pytest.fixture
def link() -> MockSensorLink:
    return MockSensorLink(auto_discover=False, auto_connect=False)


@pytest.fixture
def location() -> StaticLocationSource:
    return StaticLocationSource(HOME)


@pytest.fixture
def channel() -> RecordingAlertChannel:
    return RecordingAlertChannel()


@pytest.fixture
def gate(channel: RecordingAlertChannel, clock: FakeClock) -> NotificationGate:
    return NotificationGate(channel, clock=clock)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def uploads(store: RecordingStore):
    queue = UploadQueue(store, max_attempts=3, retry_delay=0.0)
    queue.start()
    yield queue
    queue.stop()


@pytest.fixture
def coordinator(link, dispatcher, settings, gate) -> ConnectionCoordinator:
    return ConnectionCoordinator(link=link, dispatcher=dispatcher, settings=settings, gate=gate)


@pytest.fixture
def recorder(coordinator, location, uploads, settings, dispatcher, clock) -> SessionRecorder:
    rec = SessionRecorder(
        coordinator=coordinator,
        location=location,
        uploads=uploads,
        settings=settings,
        dispatcher=dispatcher,
        batch_size=3,
        clock=clock,
    )
    coordinator.is_recording = lambda: rec.recording
    return rec


def connect_slot(coordinator: ConnectionCoordinator, link: MockSensorLink, slot: SlotId = SlotId.PRIMARY) -> None:
    """Drive a slot from idle to connected through the mock link."""
    assert coordinator.scan(slot)
    link.discover(slot, rssi=-50)
    link.complete_connect(slot)
    assert coordinator.is_connected(slot)
