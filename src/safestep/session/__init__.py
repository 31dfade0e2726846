"""Walking session recording for SafeStep."""

from .recorder import SessionPhase, SessionRecorder, SessionState

__all__ = ["SessionPhase", "SessionRecorder", "SessionState"]
