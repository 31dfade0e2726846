"""Session Recorder for walking sessions.

A session streams gyroscope and acceleration readings from every connected
sensor into a SampleBuffer. Full batches are uploaded as they are flushed;
on finalize the remainder is flushed and a HazardRecord referencing every
batch of the session is uploaded.

Phases:
    idle -> recording -> stopped -> idle
    recording/stopped -> idle (cancel)
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..data_manager.buffer import SampleBuffer
from ..data_manager.protocol import (
    DEFAULT_BATCH_SIZE,
    ZERO_LOCATION,
    BuildingInfo,
    HazardRecord,
    Location,
    MotionSample,
    SampleBatch,
    SampleKind,
    generate_id,
)
from ..data_manager.uploader import UploadQueue
from ..backend.dispatcher import EventDispatcher
from ..sensors.base import RawReading, SignalKind, SlotId, slot_number
from ..sensors.coordinator import ConnectionCoordinator, ConnectionEvent
from ..sensors.location import LocationSource
from ..settings import SettingsStore

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass
class SessionState:
    """Metadata of the current recording session."""
    session_id: str
    start_time: float
    start_location: Location
    batch_ids: List[str] = field(default_factory=list)
    recording: bool = True
    last_sample: Optional[MotionSample] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "start_location": self.start_location.to_dict(),
            "batch_ids": list(self.batch_ids),
            "recording": self.recording,
            "last_sample": self.last_sample.to_dict() if self.last_sample else None,
        }


class SessionRecorder:
    """Runs a recording session from start to finalize or cancel."""

    def __init__(
        self,
        coordinator: ConnectionCoordinator,
        location: LocationSource,
        uploads: UploadQueue,
        settings: SettingsStore,
        dispatcher: EventDispatcher,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the recorder.

        Args:
            coordinator: Connection coordinator owning the sensor slots
            location: Location source for sample tagging and start/end points
            uploads: Queue receiving batch and record writes
            settings: User settings (role swap, walking notifications)
            dispatcher: Serial context all session changes run on
            batch_size: Samples per uploaded batch
            clock: Wall-clock time source
        """
        self.coordinator = coordinator
        self.location = location
        self.uploads = uploads
        self.settings = settings
        self.dispatcher = dispatcher
        self.clock = clock

        self.buffer = SampleBuffer(on_flush=self._on_flush, batch_size=batch_size)
        self._phase = SessionPhase.IDLE
        self._state: Optional[SessionState] = None
        self._subscriptions: Dict[SlotId, List[Any]] = {}

        coordinator.add_listener(self._on_connection_event)

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def recording(self) -> bool:
        return self._phase == SessionPhase.RECORDING

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    def status(self) -> Dict[str, Any]:
        state = self._state
        return {
            "phase": self._phase.value,
            "recording": self.recording,
            "session": state.to_dict() if state else None,
            "buffered_samples": self.buffer.size,
            "subscribed_slots": sorted(slot.value for slot in self._subscriptions),
        }

    # Public operations (safe to call from any thread)

    def start(self) -> Optional[SessionState]:
        """Start a recording session.

        Returns:
            The new session state, or None if no sensor is connected

        Raises:
            RuntimeError: If a session is already recording
        """
        return self.dispatcher.call(self._start)

    def stop(self) -> bool:
        """Stop ingestion. Buffered samples are kept for finalize()."""
        return self.dispatcher.call(self._stop)

    def finalize(
        self,
        hazards: Sequence[str],
        intensities: Sequence[int],
        image_id: str = "",
        building: Optional[BuildingInfo] = None,
        single_point_report: bool = False,
    ) -> HazardRecord:
        """Finish the session and upload its hazard record.

        Args:
            hazards: Hazard types reported by the user
            intensities: Intensity per hazard type
            image_id: Reference to an uploaded photo, if any
            building: Indoor location metadata
            single_point_report: Report a hazard at the current location
                without using (or affecting) the session data

        Returns:
            The queued HazardRecord

        Raises:
            ValueError: If hazards and intensities differ in length, or the
                record fails validation
            RuntimeError: If there is no session to finalize
        """
        return self.dispatcher.call(
            self._finalize, hazards, intensities, image_id, building, single_point_report
        )

    def cancel(self) -> List[str]:
        """Abandon the session without a hazard record.

        Already flushed batches stay in the store unreferenced.

        Returns:
            Batch ids of the cancelled session
        """
        return self.dispatcher.call(self._cancel)

    def on_slot_connected(self, slot_id: SlotId):
        """Resume ingestion from a slot that (re)connected during recording."""
        if self.recording and slot_id not in self._subscriptions:
            self._subscribe(slot_id)
            logger.info(f"Resumed ingestion from {slot_id.value}")

    def on_slot_disconnected(self, slot_id: SlotId):
        """Pause ingestion from a slot that dropped during recording."""
        if slot_id in self._subscriptions:
            self._unsubscribe(slot_id)
            logger.info(f"Paused ingestion from {slot_id.value}")

    # Dispatcher-side handlers

    def _start(self) -> Optional[SessionState]:
        if self._phase == SessionPhase.RECORDING:
            raise RuntimeError("A session is already recording")

        connected = self.coordinator.connected_slots()
        if not connected:
            logger.warning("Cannot start session: no sensor connected")
            return None

        if self._phase == SessionPhase.STOPPED:
            logger.warning(f"Discarding unfinalized session {self._state.session_id}")

        self.buffer.reset()
        self.location.start_recording()
        self.uploads.connect()

        self._state = SessionState(
            session_id=generate_id(),
            start_time=self.clock(),
            start_location=self.location.current_location(),
        )
        self._phase = SessionPhase.RECORDING
        for slot_id in connected:
            self._subscribe(slot_id)

        logger.info(f"Started session {self._state.session_id} with {len(connected)} sensor(s)")
        return self._state

    def _stop(self) -> bool:
        if self._phase != SessionPhase.RECORDING:
            return False

        for slot_id in list(self._subscriptions):
            self._unsubscribe(slot_id)
        self._state.recording = False
        self._phase = SessionPhase.STOPPED

        if not self.settings.get().walking_detection_notifications_enabled:
            self.location.stop_recording()

        logger.info(f"Stopped session {self._state.session_id} "
                    f"({len(self._state.batch_ids)} batches flushed, {self.buffer.size} buffered)")
        return True

    def _finalize(
        self,
        hazards: Sequence[str],
        intensities: Sequence[int],
        image_id: str,
        building: Optional[BuildingInfo],
        single_point_report: bool,
    ) -> HazardRecord:
        if len(hazards) != len(intensities):
            raise ValueError(
                f"hazards and intensities must have the same length "
                f"({len(hazards)} != {len(intensities)})"
            )

        if single_point_report:
            return self._finalize_single_point(hazards, intensities, image_id, building)

        if self._phase == SessionPhase.IDLE or self._state is None:
            raise RuntimeError("No session to finalize")
        if self._phase == SessionPhase.RECORDING:
            self._stop()

        self.uploads.connect()
        self.buffer.flush_remainder()

        last_sample = self.buffer.last_sample
        last_location = last_sample.location if last_sample else ZERO_LOCATION

        record = HazardRecord.build(
            hazards=hazards,
            intensities=intensities,
            image_id=image_id,
            batch_ids=list(self._state.batch_ids),
            start_location=self._state.start_location,
            last_location=last_location,
            start_time=self._state.start_time,
            building=building,
        )
        self._enqueue_record(record)

        logger.info(f"Finalized session {self._state.session_id} as record {record.record_id} "
                    f"({len(record.batch_ids)} batches)")
        self._reset_session()
        return record

    def _finalize_single_point(
        self,
        hazards: Sequence[str],
        intensities: Sequence[int],
        image_id: str,
        building: Optional[BuildingInfo],
    ) -> HazardRecord:
        now = self.clock()
        location = self.location.current_location()
        batch = SampleBatch(
            batch_id=generate_id(),
            samples=(MotionSample.placeholder(location, now),),
        )

        self.uploads.connect()
        self.uploads.enqueue_batch(batch)

        record = HazardRecord.build(
            hazards=hazards,
            intensities=intensities,
            image_id=image_id,
            batch_ids=[batch.batch_id],
            start_location=location,
            last_location=location,
            start_time=now,
            building=building,
        )
        self._enqueue_record(record)
        logger.info(f"Queued single-point report {record.record_id}")
        return record

    def _cancel(self) -> List[str]:
        if self._phase == SessionPhase.IDLE or self._state is None:
            return []
        if self._phase == SessionPhase.RECORDING:
            self._stop()

        self.uploads.connect()
        self.buffer.flush_remainder()
        batch_ids = list(self._state.batch_ids)

        logger.info(f"Cancelled session {self._state.session_id}, {len(batch_ids)} batches left unreferenced")
        self._reset_session()
        return batch_ids

    def _enqueue_record(self, record: HazardRecord):
        errors = record.validate()
        if errors:
            raise ValueError(f"Invalid hazard record: {'; '.join(errors)}")
        self.uploads.enqueue_record(record)

    def _reset_session(self):
        self.buffer.reset()
        self._state = None
        self._phase = SessionPhase.IDLE

    def _on_flush(self, batch: SampleBatch):
        if self._state is not None:
            self._state.batch_ids.append(batch.batch_id)
        self.uploads.enqueue_batch(batch)

    def _on_connection_event(self, slot_id: SlotId, event: ConnectionEvent):
        if event == ConnectionEvent.CONNECTED:
            self.on_slot_connected(slot_id)
        else:
            self.on_slot_disconnected(slot_id)

    def _subscribe(self, slot_id: SlotId):
        link = self.coordinator.link
        handles = []
        for kind in SignalKind:
            try:
                handles.append(link.subscribe(slot_id, kind, self._make_ingest_callback(slot_id, kind)))
            except Exception as e:
                logger.error(f"Failed to subscribe to {kind.value} on {slot_id.value}: {e}")
        self._subscriptions[slot_id] = handles

    def _unsubscribe(self, slot_id: SlotId):
        for handle in self._subscriptions.pop(slot_id, []):
            try:
                self.coordinator.link.unsubscribe(handle)
            except Exception as e:
                logger.warning(f"Failed to unsubscribe from {slot_id.value}: {e}")

    def _make_ingest_callback(self, slot_id: SlotId, kind: SignalKind):
        sample_kind = SampleKind(kind.value)

        def on_reading(reading: RawReading):
            sample = MotionSample(
                kind=sample_kind,
                x=reading.x,
                y=reading.y,
                z=reading.z,
                location=self.location.current_location(),
                timestamp=reading.timestamp,
                slot=slot_number(slot_id, self.settings.get().waist_wrist_role_swap),
            )
            self.dispatcher.submit(self._ingest, sample)

        return on_reading

    def _ingest(self, sample: MotionSample):
        if self._phase != SessionPhase.RECORDING:
            return
        self.buffer.add_sample(sample)
        self._state.last_sample = sample
