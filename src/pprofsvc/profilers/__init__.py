"""Profiler adapters, one per artifact kind."""

from pprofsvc.core.config import AppConfig

from .base import SubProfiler
from .block import BlockProfiler
from .cpu import CpuProfiler
from .heap import HeapProfiler
from .trace import TraceProfiler


def build_profilers(config: AppConfig) -> list[SubProfiler]:
    return [
        CpuProfiler(interval_seconds=config.cpu.interval_seconds),
        HeapProfiler(),
        TraceProfiler(calls=config.trace.calls),
        BlockProfiler(),
    ]


__all__ = [
    "SubProfiler",
    "CpuProfiler",
    "HeapProfiler",
    "TraceProfiler",
    "BlockProfiler",
    "build_profilers",
]
