"""Walking detection manager.

Feeds motion-activity events into the ActivityClassifier and reminds the
user to start or stop a walking session. Sessions themselves are started
and stopped by the user; this module only reports the transitions.
"""

import logging
import time
from datetime import datetime
from typing import Callable, List

from .activity import ActivityClassifier, MotionEvent, Transition
from ..backend.dispatcher import EventDispatcher
from ..backend.notifications import NotificationGate
from ..sensors.location import LocationSource, LocationUnavailable
from ..settings import SettingsStore

logger = logging.getLogger(__name__)

WALKING_STARTED_TITLE = "Walking Detected"
WALKING_STARTED_BODY = "Don't forget to start the walking session!"
WALKING_STOPPED_TITLE = "Walking Stopped Detected"
WALKING_STOPPED_BODY = "Don't forget to stop the walking session!"

TransitionListener = Callable[[Transition], None]


class WalkingDetector:
    """Turns motion events into walking-started / walking-stopped reminders."""

    def __init__(
        self,
        settings: SettingsStore,
        gate: NotificationGate,
        location: LocationSource,
        dispatcher: EventDispatcher,
        is_connected: Callable[[], bool],
        is_recording: Callable[[], bool],
        clock: Callable[[], float] = time.time,
        hour_provider: Callable[[], int] = lambda: datetime.now().hour,
        daytime_start_hour: int = 8,
        daytime_end_hour: int = 18,
    ):
        self.settings = settings
        self.gate = gate
        self.location = location
        self.dispatcher = dispatcher
        self.is_connected = is_connected
        self.is_recording = is_recording
        self.clock = clock
        self.hour_provider = hour_provider
        self.daytime_start_hour = daytime_start_hour
        self.daytime_end_hour = daytime_end_hour

        self.classifier = ActivityClassifier(
            duration_provider=lambda: self.settings.get().walking_detection_sensitivity_seconds,
            now=clock(),
        )
        self.enabled = True
        self.initialized = False
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener):
        self._listeners.append(listener)

    def initialize(self):
        """Start listening for motion events. Later calls are ignored."""
        if self.initialized:
            return
        self.classifier.reset(self.clock())
        if self.settings.get().walking_detection_notifications_enabled:
            self.location.start_recording()
        self.initialized = True
        logger.info("Walking detection initialized")

    def reset(self):
        self.classifier.reset(self.clock())

    def set_enabled(self, enabled: bool):
        self.enabled = enabled
        logger.info(f"Walking detection {'enabled' if enabled else 'disabled'}")

    def process(self, event: MotionEvent) -> Transition:
        """Handle a motion event on the dispatcher and return the resulting transition."""
        return self.dispatcher.call(self._process, event)

    def status(self):
        return {
            "enabled": self.enabled,
            "initialized": self.initialized,
            "classifier": self.classifier.state.to_dict(),
        }

    def _process(self, event: MotionEvent) -> Transition:
        if not self.enabled or not self.initialized:
            return Transition.NONE

        if self.settings.get().motion_debug_logs_enabled:
            logger.debug(
                f"Motion: walking={event.walking} stationary={event.stationary} "
                f"confidence={event.confidence.value}"
            )

        self.classifier.handle(event)
        now = event.timestamp

        if self.is_recording():
            if not self.classifier.should_stop_session(now):
                return Transition.NONE
            logger.info("Walking stopped detected")
            self._remind(WALKING_STOPPED_TITLE, WALKING_STOPPED_BODY)
            transition = Transition.WALKING_STOPPED
        else:
            if not self.classifier.peek_start(now):
                return Transition.NONE
            if not self.is_connected():
                logger.info("Cannot start session: sensor disconnected")
                return Transition.NONE
            try:
                self._check_location()
            except LocationUnavailable as e:
                logger.info(f"Cannot start session: {e}")
                return Transition.NONE
            if not self.classifier.should_start_session(now):
                return Transition.NONE
            logger.info("Walking start detected")
            self._remind(WALKING_STARTED_TITLE, WALKING_STARTED_BODY)
            transition = Transition.WALKING_STARTED

        for listener in list(self._listeners):
            try:
                listener(transition)
            except Exception as e:
                logger.error(f"Walking transition listener failed: {e}")
        return transition

    def _check_location(self):
        if self.location.is_disabled():
            raise LocationUnavailable("location services are disabled")

    def _remind(self, title: str, body: str):
        settings = self.settings.get()
        if not settings.walking_detection_notifications_enabled:
            return
        hour = self.hour_provider()
        daytime = self.daytime_start_hour <= hour < self.daytime_end_hour
        if settings.walking_detection_all_day_enabled or daytime:
            self.gate.notify(title, title, body)
