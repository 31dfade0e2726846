"""Application context wiring the SafeStep core together.

One AppContext owns every collaborator of a running service: settings,
dispatcher, sensor link, location source, record store, upload queue,
alert gate, connection coordinator, session recorder, walking detector and
the background scheduler for periodic status and battery polls.
"""

import logging
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .config import Config
from .dispatcher import EventDispatcher
from .models import SystemStatus
from .notifications import AlertChannel, LoggingAlertChannel, NotificationGate
from ..data_manager.protocol import Location
from ..data_manager.scanner import RecordScanner
from ..data_manager.store import CloudRecordStore, FileRecordStore, RecordStore
from ..data_manager.uploader import UploadQueue
from ..detection.walking import WalkingDetector
from ..sensors.base import SensorLink, SlotId
from ..sensors.coordinator import ConnectionCoordinator, ConnectionEvent
from ..sensors.location import LocationSource, StaticLocationSource
from ..sensors.mock_link import MockSensorLink
from ..session.recorder import SessionRecorder
from ..settings import SettingsStore

logger = logging.getLogger(__name__)

StatusListener = Callable[[Dict[str, Any]], None]


def create_record_store(config=Config) -> RecordStore:
    """Build the record store selected by config.RECORD_STORE.

    Raises:
        ValueError: If the store type is unknown
    """
    kind = config.RECORD_STORE.lower()
    if kind == 'file':
        return FileRecordStore(config.DATA_DIR)
    if kind == 'cloud':
        return CloudRecordStore(config.CLOUD_URL, api_key=config.CLOUD_API_KEY)
    raise ValueError(f"Unknown record store: {config.RECORD_STORE}")


class AppContext:
    """Owns and wires the collaborators of a SafeStep service."""

    def __init__(
        self,
        config=Config,
        link: Optional[SensorLink] = None,
        location: Optional[LocationSource] = None,
        store: Optional[RecordStore] = None,
        alert_channel: Optional[AlertChannel] = None,
        settings: Optional[SettingsStore] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        """Initialize the context.

        Collaborators not given are built from config: a mock sensor link,
        a static location source and the configured record store.
        """
        self.config = config
        self.settings = settings or SettingsStore(config.SETTINGS_FILE)
        self.dispatcher = dispatcher or EventDispatcher()
        self.link = link or MockSensorLink()
        self.location = location or StaticLocationSource(Location(
            latitude=config.DEFAULT_LATITUDE,
            longitude=config.DEFAULT_LONGITUDE,
            altitude=config.DEFAULT_ALTITUDE,
        ))
        self.store = store or create_record_store(config)
        self.uploads = UploadQueue(
            self.store,
            max_attempts=config.UPLOAD_MAX_ATTEMPTS,
            retry_delay=config.UPLOAD_RETRY_DELAY,
        )
        self.gate = NotificationGate(alert_channel or LoggingAlertChannel())

        self.coordinator = ConnectionCoordinator(
            link=self.link,
            dispatcher=self.dispatcher,
            settings=self.settings,
            gate=self.gate,
            rssi_thresholds={
                SlotId.PRIMARY: config.PRIMARY_RSSI_THRESHOLD,
                SlotId.SECONDARY: config.SECONDARY_RSSI_THRESHOLD,
            },
            disconnect_alert_rate_limit=config.DISCONNECT_ALERT_RATE_LIMIT,
            is_recording=lambda: self.recorder.recording,
        )
        self.recorder = SessionRecorder(
            coordinator=self.coordinator,
            location=self.location,
            uploads=self.uploads,
            settings=self.settings,
            dispatcher=self.dispatcher,
            batch_size=config.BATCH_SIZE,
        )
        self.detector = WalkingDetector(
            settings=self.settings,
            gate=self.gate,
            location=self.location,
            dispatcher=self.dispatcher,
            is_connected=self.coordinator.any_connected,
            is_recording=lambda: self.recorder.recording,
            daytime_start_hour=config.DAYTIME_START_HOUR,
            daytime_end_hour=config.DAYTIME_END_HOUR,
        )
        self.coordinator.add_listener(self._on_connection_event)

        self.scheduler = BackgroundScheduler()
        self._status_listeners: List[StatusListener] = []
        self.started_at = time.time()

    def add_status_listener(self, listener: StatusListener):
        """Register a callback receiving the status dict after every poll."""
        self._status_listeners.append(listener)

    def start(self, scheduler: bool = True):
        """Start the worker threads and, optionally, the periodic jobs."""
        self.dispatcher.start()
        self.uploads.start()

        if scheduler:
            self.scheduler.add_job(
                self.poll_status,
                'interval',
                seconds=self.config.STATUS_POLL_INTERVAL,
                id='status_poll',
                replace_existing=True,
                max_instances=1,
            )
            self.scheduler.add_job(
                self.coordinator.refresh_all_batteries,
                'interval',
                seconds=self.config.BATTERY_POLL_INTERVAL,
                id='battery_refresh',
                replace_existing=True,
            )
            self.scheduler.start()

        if isinstance(self.link, MockSensorLink) and self.config.MOCK_STREAM_RATE > 0:
            self.link.start_streaming(self.config.MOCK_STREAM_RATE)

        logger.info("SafeStep context started")

    def shutdown(self, timeout: float = 10.0):
        """Stop periodic jobs and workers, letting queued uploads finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if isinstance(self.link, MockSensorLink):
            self.link.stop_streaming()
        if self.recorder.recording:
            self.recorder.stop()
        self.dispatcher.stop()
        self.uploads.stop(timeout=timeout)
        self.store.close()
        logger.info("SafeStep context stopped")

    def poll_status(self):
        """Reconcile sensor states and publish the status to listeners."""
        try:
            self.coordinator.poll_status()
            status = self.status().to_dict()
        except Exception as e:
            logger.error(f"Status poll failed: {e}")
            return

        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    def status(self) -> SystemStatus:
        uptime = timedelta(seconds=int(time.time() - self.started_at))
        return SystemStatus(
            status='online',
            sensors=self.coordinator.status(),
            session=self.recorder.status(),
            uploads=self.uploads.stats(),
            walking_detection=self.detector.status(),
            uptime=str(uptime),
        )

    def record_scanner(self) -> RecordScanner:
        """Scanner for the local store.

        Raises:
            ValueError: If the configured store is not a FileRecordStore
        """
        if not isinstance(self.store, FileRecordStore):
            raise ValueError("Record scanning requires the file record store")
        return RecordScanner(self.store)

    def _on_connection_event(self, slot_id: SlotId, event: ConnectionEvent):
        if event == ConnectionEvent.CONNECTED:
            self.detector.initialize()
