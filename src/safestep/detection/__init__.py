"""Walking detection for SafeStep.

ActivityClassifier applies hysteresis to motion-activity events;
WalkingDetector wires it to settings, sensor/location checks and reminders.
"""

from .activity import (
    Activity,
    ActivityClassifier,
    MotionConfidence,
    MotionEvent,
    Transition,
    WalkingHysteresisState,
)
from .walking import WalkingDetector

__all__ = [
    "Activity",
    "ActivityClassifier",
    "MotionConfidence",
    "MotionEvent",
    "Transition",
    "WalkingHysteresisState",
    "WalkingDetector",
]
