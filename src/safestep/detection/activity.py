"""Activity classifier with hysteresis.

Motion-activity events carry a confidence and walking/stationary flags.
Only high-confidence events asserting exactly one of the two update the
classifier. A walking session should start once walking has been the
latest activity for at least the trigger duration longer than stationary,
and stop in the symmetric case.

When a start/stop query fires, both timestamps are reset to the query time,
so the same transition cannot fire again until another full trigger
duration has accumulated.
"""

import logging
import threading
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_SECONDS = 45


class MotionConfidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Activity(str, Enum):
    WALKING = "walking"
    STATIONARY = "stationary"


class Transition(str, Enum):
    NONE = "none"
    WALKING_STARTED = "walking_started"
    WALKING_STOPPED = "walking_stopped"


@dataclass(frozen=True)
class MotionEvent:
    """A motion-activity update from the platform."""
    confidence: MotionConfidence
    walking: bool
    stationary: bool
    timestamp: float

    @property
    def decisive(self) -> bool:
        """High confidence and exactly one activity asserted."""
        return self.confidence == MotionConfidence.HIGH and self.walking != self.stationary

    @classmethod
    def from_dict(cls, data: Dict[str, Any], timestamp: float) -> "MotionEvent":
        return cls(
            confidence=MotionConfidence(str(data.get("confidence", "low")).lower()),
            walking=bool(data.get("walking", False)),
            stationary=bool(data.get("stationary", False)),
            timestamp=float(data.get("timestamp", timestamp)),
        )


@dataclass
class WalkingHysteresisState:
    last_walking: float = 0.0
    last_stationary: float = 0.0
    activity: Optional[Activity] = None
    trigger_duration: int = DEFAULT_TRIGGER_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["activity"] = self.activity.value if self.activity else None
        return data


class ActivityClassifier:
    """Decides walking-start and walking-stop transitions."""

    def __init__(
        self,
        trigger_duration: int = DEFAULT_TRIGGER_SECONDS,
        duration_provider: Optional[Callable[[], int]] = None,
        now: float = 0.0,
    ):
        """Initialize the classifier.

        Args:
            trigger_duration: Seconds of sustained activity needed to trigger
            duration_provider: If given, queried for the trigger duration on
                every event and query instead of the fixed value
            now: Initial value of both timestamps
        """
        self._trigger_duration = int(trigger_duration)
        self._duration_provider = duration_provider
        self._state = WalkingHysteresisState(
            last_walking=now,
            last_stationary=now,
            trigger_duration=self._trigger_duration,
        )
        self._lock = threading.Lock()

    @property
    def trigger_duration(self) -> int:
        if self._duration_provider is not None:
            return int(self._duration_provider())
        return self._trigger_duration

    @trigger_duration.setter
    def trigger_duration(self, value: int):
        self._trigger_duration = int(value)

    @property
    def state(self) -> WalkingHysteresisState:
        with self._lock:
            return WalkingHysteresisState(**asdict(self._state))

    def reset(self, now: float):
        """Set both timestamps to now and forget the current activity."""
        with self._lock:
            self._state.last_walking = now
            self._state.last_stationary = now
            self._state.activity = None

    def on_motion_event(self, confidence: MotionConfidence, is_walking: bool, is_stationary: bool, now: float) -> bool:
        """Record a motion event.

        Returns:
            True if the event updated the hysteresis state
        """
        duration = self.trigger_duration
        with self._lock:
            self._state.trigger_duration = duration
            if confidence != MotionConfidence.HIGH or is_walking == is_stationary:
                return False
            if is_walking:
                self._state.last_walking = now
                self._state.activity = Activity.WALKING
            else:
                self._state.last_stationary = now
                self._state.activity = Activity.STATIONARY
            return True

    def handle(self, event: MotionEvent) -> bool:
        return self.on_motion_event(event.confidence, event.walking, event.stationary, event.timestamp)

    def peek_start(self, now: float) -> bool:
        """Whether should_start_session(now) would fire, without resetting."""
        duration = self.trigger_duration
        with self._lock:
            walking, stationary = self._effective_locked(now)
            return walking - stationary >= duration

    def peek_stop(self, now: float) -> bool:
        """Whether should_stop_session(now) would fire, without resetting."""
        duration = self.trigger_duration
        with self._lock:
            walking, stationary = self._effective_locked(now)
            return stationary - walking >= duration

    def should_start_session(self, now: float) -> bool:
        duration = self.trigger_duration
        with self._lock:
            walking, stationary = self._effective_locked(now)
            if walking - stationary >= duration:
                self._fire_locked(now)
                return True
            return False

    def should_stop_session(self, now: float) -> bool:
        duration = self.trigger_duration
        with self._lock:
            walking, stationary = self._effective_locked(now)
            if stationary - walking >= duration:
                self._fire_locked(now)
                return True
            return False

    def evaluate(self, recording: bool, now: float) -> Transition:
        """Run the query relevant to the recording state."""
        if recording:
            return Transition.WALKING_STOPPED if self.should_stop_session(now) else Transition.NONE
        return Transition.WALKING_STARTED if self.should_start_session(now) else Transition.NONE

    def _effective_locked(self, now: float):
        # The asserted activity is ongoing until an event contradicts it
        walking = self._state.last_walking
        stationary = self._state.last_stationary
        if self._state.activity == Activity.WALKING:
            walking = max(walking, now)
        elif self._state.activity == Activity.STATIONARY:
            stationary = max(stationary, now)
        return walking, stationary

    def _fire_locked(self, now: float):
        self._state.last_walking = now
        self._state.last_stationary = now
        logger.debug(f"Activity transition fired at {now}, timestamps reset")
