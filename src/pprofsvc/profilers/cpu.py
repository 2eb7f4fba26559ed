"""Sampling CPU profiler writing folded stacks."""

from __future__ import annotations

import logging
import os
import sys
import threading
from types import FrameType
from typing import Optional, TextIO

from pprofsvc.core.errors import CaptureError
from pprofsvc.core.kinds import ProfileKind

from .base import INTERNAL_THREAD_PREFIX, SubProfiler, internal_thread_idents, thread_names

logger = logging.getLogger(__name__)


def _frame_label(frame: FrameType) -> str:
    code = frame.f_code
    return f"{code.co_name} ({os.path.basename(code.co_filename)}:{frame.f_lineno})"


def fold_stack(frame: Optional[FrameType]) -> str:
    """Render a frame chain root-first, ``;``-separated."""
    labels = []
    while frame is not None:
        labels.append(_frame_label(frame).replace(";", ":"))
        frame = frame.f_back
    return ";".join(reversed(labels))


class CpuProfiler(SubProfiler):
    """Samples every thread's stack at a fixed interval until ``end``.

    Each sample is one line ``<thread>;<root>;...;<leaf> 1`` so the
    artifact can be fed directly to flamegraph tooling.
    """

    kind = ProfileKind.CPU
    streaming = True

    def __init__(self, interval_seconds: float = 0.01):
        self.interval_seconds = interval_seconds
        self._out: Optional[TextIO] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._error: Optional[str] = None
        self.samples = 0

    @property
    def running(self) -> bool:
        return self._thread is not None

    def begin(self, out: TextIO) -> None:
        if self._thread is not None:
            raise CaptureError(self.kind.value, "cpu profiling already in use")
        self._out = out
        self._error = None
        self.samples = 0
        self._stop = threading.Event()
        try:
            self._sample()
        except (OSError, ValueError) as exc:
            self._out = None
            raise CaptureError(self.kind.value, str(exc)) from exc
        self._thread = threading.Thread(
            target=self._run, name=f"{INTERNAL_THREAD_PREFIX}cpu-sampler", daemon=True
        )
        self._thread.start()
        logger.debug("CPU sampler started: interval=%.4fs", self.interval_seconds)

    def end(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join()
        self._thread = None
        out, self._out = self._out, None
        if self._error is None and out is not None:
            try:
                out.flush()
            except (OSError, ValueError) as exc:
                self._error = str(exc)
        logger.debug("CPU sampler stopped: samples=%d", self.samples)
        if self._error is not None:
            raise CaptureError(self.kind.value, self._error)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self._sample()
            except (OSError, ValueError) as exc:
                self._error = str(exc)
                logger.warning("CPU sampler write failed, stopping: %s", exc)
                return

    def _sample(self) -> None:
        skip = internal_thread_idents()
        names = thread_names()
        lines = []
        for ident, frame in sys._current_frames().items():
            if ident in skip:
                continue
            name = names.get(ident, f"thread-{ident}").replace(";", ":")
            lines.append(f"{name};{fold_stack(frame)} 1\n")
        self._out.write("".join(lines))
        self.samples += 1
