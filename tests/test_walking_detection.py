"""Tests for WalkingDetector and NotificationGate."""

from __future__ import annotations

from typing import List

import pytest

from conftest import RecordingAlertChannel
from safestep.backend.notifications import NotificationGate
from safestep.detection.activity import MotionConfidence, MotionEvent, Transition
from safestep.detection.walking import (
    WALKING_STARTED_BODY,
    WALKING_STARTED_TITLE,
    WALKING_STOPPED_BODY,
    WALKING_STOPPED_TITLE,
    WalkingDetector,
)

HIGH = MotionConfidence.HIGH


class Flags:
    def __init__(self) -> None:
        self.connected = True
        self.recording = False
        self.hour = 12


@pytest.fixture
def flags() -> Flags:
    return Flags()


@pytest.fixture
def detector(settings, gate, location, dispatcher, clock, flags) -> WalkingDetector:
    settings.update(walking_detection_sensitivity_seconds=45, walking_detection_notifications_enabled=True)
    det = WalkingDetector(
        settings=settings,
        gate=gate,
        location=location,
        dispatcher=dispatcher,
        is_connected=lambda: flags.connected,
        is_recording=lambda: flags.recording,
        clock=clock,
        hour_provider=lambda: flags.hour,
    )
    det.initialize()
    return det


def walking(t: float) -> MotionEvent:
    return MotionEvent(HIGH, walking=True, stationary=False, timestamp=t)


def stationary(t: float) -> MotionEvent:
    return MotionEvent(HIGH, walking=False, stationary=True, timestamp=t)


class TestWalkingDetector:
    def test_sustained_walking_sends_start_reminder(self, detector, clock, channel) -> None:
        t0 = clock.now
        transitions: List[Transition] = []
        detector.add_listener(transitions.append)

        assert detector.process(walking(t0 + 10)) == Transition.NONE
        assert detector.process(walking(t0 + 45)) == Transition.WALKING_STARTED

        assert transitions == [Transition.WALKING_STARTED]
        assert channel.delivered == [(WALKING_STARTED_TITLE, WALKING_STARTED_BODY)]

    def test_sustained_stationary_while_recording_sends_stop_reminder(self, detector, clock, channel, flags) -> None:
        flags.recording = True
        t0 = clock.now
        assert detector.process(stationary(t0 + 45)) == Transition.WALKING_STOPPED
        assert channel.delivered == [(WALKING_STOPPED_TITLE, WALKING_STOPPED_BODY)]

    def test_no_start_without_sensor_and_no_reset(self, detector, clock, flags, channel) -> None:
        flags.connected = False
        t0 = clock.now
        assert detector.process(walking(t0 + 60)) == Transition.NONE
        assert channel.delivered == []

        flags.connected = True
        assert detector.process(walking(t0 + 61)) == Transition.WALKING_STARTED

    def test_no_start_when_location_disabled(self, detector, clock, location) -> None:
        location.set_disabled(True)
        assert detector.process(walking(clock.now + 60)) == Transition.NONE

    def test_reminder_suppressed_outside_daytime(self, detector, clock, channel, flags) -> None:
        flags.hour = 20
        assert detector.process(walking(clock.now + 45)) == Transition.WALKING_STARTED
        assert channel.delivered == []

    def test_all_day_setting_overrides_daytime_window(self, detector, clock, channel, flags, settings) -> None:
        settings.update(walking_detection_all_day_enabled=True)
        flags.hour = 3
        detector.process(walking(clock.now + 45))
        assert len(channel.delivered) == 1

    def test_no_reminder_when_notifications_disabled(self, detector, clock, channel, settings) -> None:
        settings.update(walking_detection_notifications_enabled=False)
        assert detector.process(walking(clock.now + 45)) == Transition.WALKING_STARTED
        assert channel.delivered == []

    def test_sensitivity_is_read_fresh(self, detector, clock, settings) -> None:
        settings.update(walking_detection_sensitivity_seconds=10)
        assert detector.process(walking(clock.now + 10)) == Transition.WALKING_STARTED

    def test_disabled_detector_ignores_events(self, detector, clock) -> None:
        detector.set_enabled(False)
        assert detector.process(walking(clock.now + 100)) == Transition.NONE

    def test_events_before_initialize_are_ignored(self, settings, gate, location, dispatcher, clock) -> None:
        det = WalkingDetector(
            settings=settings,
            gate=gate,
            location=location,
            dispatcher=dispatcher,
            is_connected=lambda: True,
            is_recording=lambda: False,
            clock=clock,
        )
        assert det.process(walking(clock.now + 100)) == Transition.NONE

    def test_listeners_receive_start_and_stop_transitions(self, detector, clock, flags) -> None:
        transitions: List[Transition] = []
        detector.add_listener(transitions.append)
        t0 = clock.now

        detector.process(walking(t0 + 45))
        flags.recording = True
        detector.process(stationary(t0 + 90))

        assert transitions == [Transition.WALKING_STARTED, Transition.WALKING_STOPPED]

    def test_failing_listener_does_not_block_others(self, detector, clock) -> None:
        transitions: List[Transition] = []

        def broken(transition: Transition) -> None:
            raise RuntimeError("listener down")

        detector.add_listener(broken)
        detector.add_listener(transitions.append)

        assert detector.process(walking(clock.now + 45)) == Transition.WALKING_STARTED
        assert transitions == [Transition.WALKING_STARTED]

    def test_no_transition_is_not_published(self, detector, clock) -> None:
        transitions: List[Transition] = []
        detector.add_listener(transitions.append)
        detector.process(walking(clock.now + 10))
        assert transitions == []

    def test_initialize_runs_once_and_starts_location(self, detector, location, clock) -> None:
        assert location.recording
        location.stop_recording()
        clock.advance(100)
        detector.initialize()
        assert not location.recording
        assert detector.classifier.state.last_walking != clock.now


class TestNotificationGate:
    def test_unlimited_alerts_always_deliver(self, gate, channel) -> None:
        assert gate.notify("a", "t", "b")
        assert gate.notify("a", "t", "b")
        assert len(channel.delivered) == 2

    def test_rate_limit_per_key(self, gate, channel, clock) -> None:
        assert gate.notify("a", "t", "b", rate_limit_seconds=60)
        assert not gate.notify("a", "t", "b", rate_limit_seconds=60)
        assert gate.notify("other", "t", "b", rate_limit_seconds=60)
        clock.advance(60)
        assert gate.notify("a", "t", "b", rate_limit_seconds=60)

    def test_shared_rate_limit_key(self, gate, clock) -> None:
        assert gate.notify("a", "t", "b", rate_limit_seconds=60, rate_limit_key="shared")
        assert not gate.notify("b", "t", "b", rate_limit_seconds=60, rate_limit_key="shared")

    def test_failing_channel_reports_not_delivered(self, clock) -> None:
        gate = NotificationGate(RecordingAlertChannel(fail=True), clock=clock)
        assert gate.notify("a", "t", "b", rate_limit_seconds=60) is False
        assert gate.history() == []

    def test_history_is_bounded(self, channel, clock) -> None:
        gate = NotificationGate(channel, clock=clock, history_size=3)
        for i in range(5):
            gate.notify(f"k{i}", "t", "b")
        assert [h["key"] for h in gate.history()] == ["k2", "k3", "k4"]
