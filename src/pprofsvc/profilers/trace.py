"""Execution trace streamed as Chrome trace-event JSON."""

from __future__ import annotations

import gc
import json
import logging
import os
import sys
import threading
import time
from types import FrameType
from typing import Any, Optional, TextIO

from pprofsvc.core.errors import CaptureError
from pprofsvc.core.kinds import ProfileKind

from .base import SubProfiler, thread_names

logger = logging.getLogger(__name__)


class TraceProfiler(SubProfiler):
    """Streams runtime events until ``end``.

    Garbage-collection phases are always recorded.  With ``calls`` enabled
    Python function calls and returns are recorded too, which is far
    heavier.  On 3.12+ that covers every thread; older interpreters can only
    hook the thread calling ``begin`` and threads started afterwards.  The
    artifact loads in ``chrome://tracing`` and Perfetto.
    """

    kind = ProfileKind.TRACE
    streaming = True

    def __init__(self, calls: bool = False):
        self.calls = calls
        self._lock = threading.RLock()
        self._writing = False
        self._pending: list[dict[str, Any]] = []
        self._out: Optional[TextIO] = None
        self._origin = 0
        self._first = True
        self._error: Optional[str] = None
        self._pid = os.getpid()
        self.events = 0

    @property
    def running(self) -> bool:
        return self._out is not None

    def begin(self, out: TextIO) -> None:
        with self._lock:
            if self._out is not None:
                raise CaptureError(self.kind.value, "tracing already enabled")
            self._origin = time.perf_counter_ns()
            self._first = True
            self._error = None
            self._pending = []
            self.events = 0
            try:
                out.write("[\n")
            except (OSError, ValueError) as exc:
                raise CaptureError(self.kind.value, str(exc)) from exc
            self._out = out
        self._emit({"name": "process_name", "ph": "M", "pid": self._pid, "tid": 0,
                    "args": {"name": sys.argv[0] if sys.argv and sys.argv[0] else "python"}})
        for ident, name in thread_names().items():
            self._emit({"name": "thread_name", "ph": "M", "pid": self._pid, "tid": ident,
                        "args": {"name": name}})
        gc.callbacks.append(self._on_gc)
        if self.calls:
            self._set_profile(self._on_call)
        if self._error is not None:
            self._detach()
            self._out = None
            raise CaptureError(self.kind.value, self._error)
        logger.debug("Trace started: calls=%s", self.calls)

    def end(self) -> None:
        if self._out is None:
            return
        self._detach()
        with self._lock:
            out, self._out = self._out, None
            if self._error is None:
                try:
                    out.write("\n]\n")
                    out.flush()
                except (OSError, ValueError) as exc:
                    self._error = str(exc)
        logger.debug("Trace stopped: events=%d", self.events)
        if self._error is not None:
            raise CaptureError(self.kind.value, self._error)

    def _detach(self) -> None:
        if self.calls:
            self._set_profile(None)
        try:
            gc.callbacks.remove(self._on_gc)
        except ValueError:
            pass

    @staticmethod
    def _set_profile(func) -> None:
        if hasattr(threading, "setprofile_all_threads"):
            threading.setprofile_all_threads(func)
        else:
            if func is not None:
                logger.warning("Call tracing limited to the current and new threads before Python 3.12")
            threading.setprofile(func)
            sys.setprofile(func)

    def _timestamp(self) -> float:
        return (time.perf_counter_ns() - self._origin) / 1000.0

    def _emit(self, event: dict[str, Any]) -> None:
        with self._lock:
            if self._out is None or self._error is not None:
                return
            # A collection can start while an event is being serialized;
            # its callback re-enters on the same thread and must not interleave.
            if self._writing:
                self._pending.append(event)
                return
            self._writing = True
            try:
                self._write(event)
                while self._pending:
                    self._write(self._pending.pop(0))
            finally:
                self._writing = False

    def _write(self, event: dict[str, Any]) -> None:
        if self._error is not None:
            return
        try:
            sep = "" if self._first else ",\n"
            self._out.write(sep + json.dumps(event, default=str))
        except (OSError, ValueError) as exc:
            self._error = str(exc)
            return
        self._first = False
        self.events += 1

    def _on_gc(self, phase: str, info: dict[str, Any]) -> None:
        event = {
            "name": f"gc gen{info.get('generation', '?')}",
            "cat": "gc",
            "ph": "B" if phase == "start" else "E",
            "ts": self._timestamp(),
            "pid": self._pid,
            "tid": threading.get_ident(),
        }
        if phase == "stop":
            event["args"] = {"collected": info.get("collected"), "uncollectable": info.get("uncollectable")}
        self._emit(event)

    def _on_call(self, frame: FrameType, event: str, arg: Any) -> None:
        if event not in ("call", "return"):
            return
        code = frame.f_code
        self._emit({
            "name": code.co_name,
            "cat": "call",
            "ph": "B" if event == "call" else "E",
            "ts": self._timestamp(),
            "pid": self._pid,
            "tid": threading.get_ident(),
            "args": {"file": code.co_filename, "line": code.co_firstlineno},
        })
