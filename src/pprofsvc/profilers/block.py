"""Snapshot of threads currently blocked on synchronization."""

from __future__ import annotations

import dis
import logging
import os
import sys
import threading
import traceback
from types import FrameType
from typing import TextIO

from pprofsvc.core.errors import CaptureError
from pprofsvc.core.kinds import ProfileKind

from .base import SubProfiler, internal_thread_idents, thread_names

logger = logging.getLogger(__name__)

BLOCKING_MODULES = {"threading.py", "queue.py", "selectors.py", "subprocess.py"}
BLOCKING_FUNCTIONS = {
    "wait",
    "wait_for",
    "acquire",
    "join",
    "_wait_for_tstate_lock",
    "get",
    "put",
    "select",
    "communicate",
    "_communicate",
    "__enter__",
}
# Calls into C lock primitives made directly from application code.
LOCK_CALLS = {"acquire", "__enter__"}
_WITH_OPS = {"SETUP_WITH", "BEFORE_WITH"}
_ATTR_OPS = {"LOAD_ATTR", "LOAD_METHOD", "LOAD_SPECIAL"}


def pending_call(frame: FrameType) -> str | None:
    """Name of the C-level call the frame is currently executing, if known.

    The frame is blocked in native code when its last instruction is a call
    (or a ``with`` entry); the callee name is the nearest preceding attribute
    load.
    """
    lasti = frame.f_lasti
    previous = []
    current = None
    for ins in dis.get_instructions(frame.f_code):
        if ins.offset > lasti:
            break
        if ins.offset == lasti:
            current = ins
            break
        previous.append(ins)
    if current is None:
        return None
    if current.opname in _WITH_OPS:
        return "__enter__"
    if not current.opname.startswith("CALL"):
        return None
    for ins in reversed(previous):
        if ins.opname == "LOAD_SPECIAL":
            return "__enter__" if "enter" in f"{ins.argval} {ins.argrepr}" else "__exit__"
        if ins.opname in _ATTR_OPS:
            return str(ins.argval)
    return None


def blocked_on(frame: FrameType) -> str | None:
    """Describe the wait if the innermost frame is blocked, else ``None``.

    Covers waits inside the stdlib synchronization modules and direct
    ``lock.acquire()`` or ``with lock:`` in application code.
    """
    code = frame.f_code
    module = os.path.basename(code.co_filename)
    if module in BLOCKING_MODULES and code.co_name in BLOCKING_FUNCTIONS:
        return f"{module[:-3]}.{code.co_name}"
    call = pending_call(frame)
    if call in LOCK_CALLS:
        return f"{code.co_name} -> lock.{call}"
    return None


class BlockProfiler(SubProfiler):
    """Records, once at ``begin``, every thread parked in a blocking call.

    The artifact is empty when no thread is waiting.
    """

    kind = ProfileKind.BLOCK
    streaming = False

    def begin(self, out: TextIO) -> None:
        skip = internal_thread_idents() | {threading.get_ident()}
        names = thread_names()
        records = []
        for ident, frame in sys._current_frames().items():
            if ident in skip:
                continue
            where = blocked_on(frame)
            if where is None:
                continue
            records.append((names.get(ident, f"thread-{ident}"), ident, where, frame))
        records.sort(key=lambda r: (r[0], r[1]))
        try:
            for name, ident, where, frame in records:
                out.write(f"thread {name} ({ident}) waiting in {where}\n")
                out.write("".join(traceback.format_list(traceback.extract_stack(frame))))
                out.write("\n")
            out.flush()
        except (OSError, ValueError) as exc:
            raise CaptureError(self.kind.value, str(exc)) from exc
        logger.debug("Block snapshot written: waiting_threads=%d", len(records))

    def end(self) -> None:
        pass
