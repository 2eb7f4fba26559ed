"""Custom exception hierarchy."""

from __future__ import annotations

from typing import Optional


class PprofError(Exception):
    """Base error."""


class ConfigError(PprofError):
    """Invalid configuration."""


class StorageError(PprofError):
    """Directory or artifact file could not be created, written or removed."""

    def __init__(self, reason: str, kind: Optional[str] = None):
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind}: {reason}" if kind else reason)


class CaptureError(PprofError):
    """A profiler refused to start, stop or write."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"{kind}: {reason}")


class SessionActiveError(PprofError):
    """Start rejected because a session is already active."""
