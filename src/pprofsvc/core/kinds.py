"""Profiler kinds and their fixed processing orders."""

from __future__ import annotations

from enum import Enum


class ProfileKind(str, Enum):
    CPU = "cpu"
    MEM = "mem"
    TRACE = "trace"
    BLOCK = "block"

    def filename(self, extension: str) -> str:
        return f"{self.value}.{extension}" if extension else self.value


START_ORDER = (ProfileKind.CPU, ProfileKind.MEM, ProfileKind.TRACE, ProfileKind.BLOCK)
# Streaming profilers are stopped before snapshot artifacts are closed.
STOP_ORDER = (ProfileKind.CPU, ProfileKind.TRACE, ProfileKind.BLOCK, ProfileKind.MEM)
