"""Core utilities."""

from .config import AppConfig, OnActiveStart
from .errors import CaptureError, ConfigError, PprofError, SessionActiveError, StorageError
from .kinds import START_ORDER, STOP_ORDER, ProfileKind

__all__ = [
    "AppConfig",
    "OnActiveStart",
    "PprofError",
    "ConfigError",
    "StorageError",
    "CaptureError",
    "SessionActiveError",
    "ProfileKind",
    "START_ORDER",
    "STOP_ORDER",
]
