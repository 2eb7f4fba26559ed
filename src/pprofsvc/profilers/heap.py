"""Point-in-time heap snapshot."""

from __future__ import annotations

import gc
import logging
import sys
import tracemalloc
from collections import defaultdict
from typing import TextIO

from pprofsvc.core.errors import CaptureError
from pprofsvc.core.kinds import ProfileKind

from .base import SubProfiler

logger = logging.getLogger(__name__)


def _sizeof(obj: object) -> int:
    # Host objects may define a __sizeof__ that raises; count those as zero.
    try:
        return sys.getsizeof(obj, 0)
    except Exception:
        return 0


class HeapProfiler(SubProfiler):
    """Writes one heap snapshot at ``begin``; ``end`` never re-snapshots.

    With ``tracemalloc`` tracing, allocation sites are reported by
    traceback.  Otherwise live objects tracked by the collector are
    grouped by type.
    """

    kind = ProfileKind.MEM
    streaming = False

    def __init__(self, limit: int = 0):
        self.limit = limit

    def begin(self, out: TextIO) -> None:
        try:
            if tracemalloc.is_tracing():
                self._write_tracemalloc(out)
            else:
                self._write_census(out)
            out.flush()
        except (OSError, ValueError, RuntimeError) as exc:
            raise CaptureError(self.kind.value, str(exc)) from exc

    def end(self) -> None:
        pass

    def _write_tracemalloc(self, out: TextIO) -> None:
        snapshot = tracemalloc.take_snapshot()
        current, peak = tracemalloc.get_traced_memory()
        stats = snapshot.statistics("traceback")
        if self.limit:
            stats = stats[: self.limit]
        out.write(f"# heap profile: tracemalloc current={current} peak={peak} sites={len(stats)}\n")
        for stat in stats:
            where = ";".join(f"{frame.filename}:{frame.lineno}" for frame in reversed(stat.traceback))
            out.write(f"{stat.size} {stat.count} {where}\n")
        logger.debug("Heap snapshot written from tracemalloc: sites=%d", len(stats))

    def _write_census(self, out: TextIO) -> None:
        sizes: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = defaultdict(int)
        objects = gc.get_objects()
        for obj in objects:
            tp = type(obj)
            name = f"{tp.__module__}.{tp.__qualname__}"
            sizes[name] += _sizeof(obj)
            counts[name] += 1
        del objects
        rows = sorted(sizes.items(), key=lambda item: item[1], reverse=True)
        if self.limit:
            rows = rows[: self.limit]
        total = sum(sizes.values())
        out.write(f"# heap profile: census objects={sum(counts.values())} bytes={total} types={len(sizes)}\n")
        for name, size in rows:
            out.write(f"{size} {counts[name]} {name}\n")
        logger.debug("Heap census written: types=%d bytes=%d", len(sizes), total)
