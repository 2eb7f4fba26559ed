"""Session controller and its results."""

from .controller import ProfilerSlot, SessionController
from .result import Outcome, SessionResult

__all__ = ["SessionController", "ProfilerSlot", "SessionResult", "Outcome"]
