"""Common interface for the four profiler adapters."""

from __future__ import annotations

import threading
from typing import TextIO

from pprofsvc.core.kinds import ProfileKind

# Threads owned by this package are left out of captured stacks.
INTERNAL_THREAD_PREFIX = "pprofsvc-"


class SubProfiler:
    """Capture adapter bound to one artifact stream.

    ``begin`` receives an open text stream owned by the caller and either
    starts writing to it continuously (streaming kinds) or writes a full
    snapshot before returning (snapshot kinds).  ``end`` stops a stream;
    for snapshot kinds it does nothing.  Both raise ``CaptureError``.
    """

    kind: ProfileKind
    streaming: bool = False

    def begin(self, out: TextIO) -> None:
        raise NotImplementedError

    def end(self) -> None:
        raise NotImplementedError


def internal_thread_idents() -> set[int]:
    return {
        t.ident
        for t in threading.enumerate()
        if t.ident is not None and t.name.startswith(INTERNAL_THREAD_PREFIX)
    }


def thread_names() -> dict[int, str]:
    return {t.ident: t.name for t in threading.enumerate() if t.ident is not None}
