"""Profiling session state machine.

One controller instance owns the four profiler slots and the
active/idle flag.  Every operation runs under a single lock, so a start,
stop or GC request never overlaps another one.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, TextIO

from pprofsvc.core.config import AppConfig, OnActiveStart
from pprofsvc.core.errors import CaptureError, SessionActiveError, StorageError
from pprofsvc.core.kinds import START_ORDER, STOP_ORDER, ProfileKind
from pprofsvc.profilers import SubProfiler, build_profilers
from pprofsvc.storage.artifact_store import ArtifactStore

from . import gc_control
from .result import Outcome, SessionResult

logger = logging.getLogger(__name__)


@dataclass
class ProfilerSlot:
    profiler: SubProfiler
    path: Path
    handle: Optional[TextIO] = None
    last_error: Optional[str] = None

    @property
    def kind(self) -> ProfileKind:
        return self.profiler.kind


class SessionController:
    def __init__(
        self,
        store: ArtifactStore,
        profilers: Iterable[SubProfiler],
        *,
        on_active_start: OnActiveStart = OnActiveStart.RESET,
        revert_on_total_failure: bool = False,
        max_capture_seconds: Optional[float] = None,
    ):
        self.store = store
        self.on_active_start = OnActiveStart(on_active_start)
        self.revert_on_total_failure = revert_on_total_failure
        self.max_capture_seconds = max_capture_seconds
        self._slots: dict[ProfileKind, ProfilerSlot] = {}
        for profiler in profilers:
            if profiler.kind in self._slots:
                raise ValueError(f"duplicate profiler for kind {profiler.kind.value}")
            self._slots[profiler.kind] = ProfilerSlot(profiler, store.path_for(profiler.kind))
        missing = [k.value for k in ProfileKind if k not in self._slots]
        if missing:
            raise ValueError(f"missing profilers for kinds: {', '.join(missing)}")
        self._lock = threading.Lock()
        self._active = False
        self._started_at: Optional[dt.datetime] = None
        self._generation = 0
        self._timer: Optional[threading.Timer] = None
        self._restore_gc = False

    @classmethod
    def from_config(cls, config: AppConfig) -> "SessionController":
        store = ArtifactStore(config.storage.output_dir, extension=config.storage.extension)
        return cls(
            store,
            build_profilers(config),
            on_active_start=config.session.on_active_start,
            revert_on_total_failure=config.session.revert_on_total_failure,
            max_capture_seconds=config.session.max_capture_seconds,
        )

    @property
    def active(self) -> bool:
        return self._active

    @property
    def started_at(self) -> Optional[dt.datetime]:
        return self._started_at

    def slot(self, kind: ProfileKind) -> ProfilerSlot:
        return self._slots[kind]

    def start(self, *, disable_gc: bool = False) -> SessionResult:
        """Provision and begin every profiler, resetting an active session.

        Raises ``SessionActiveError`` only when configured to reject a start
        while active; per-kind failures are reported in the result.
        """
        with self._lock:
            if self._active:
                if self.on_active_start is OnActiveStart.REJECT:
                    raise SessionActiveError("profiling session already active")
                logger.info("Profile start while active: resetting session")
                self._stop_locked()
            logger.info("recv profile start: disable_gc=%s", disable_gc)
            if disable_gc:
                gc_control.set_enabled(False)
                self._restore_gc = True
            elif self._restore_gc:
                gc_control.set_enabled(True)
                self._restore_gc = False

            outcomes = tuple((kind, self._begin(self._slots[kind])) for kind in START_ORDER)
            result = SessionResult("start", outcomes)

            if self.revert_on_total_failure and len(result.failed) == len(outcomes):
                logger.warning("Every profiler failed to start; session stays idle")
                self._restore_gc_locked()
                return result
            self._active = True
            self._started_at = dt.datetime.now(dt.timezone.utc)
            self._generation += 1
            self._arm_timer(self._generation)
            if not result.ok:
                logger.warning("Profile session started with failures: %s", [k.value for k in result.failed])
            return result

    def stop(self) -> SessionResult:
        """Stop streams and close every open artifact; safe when idle."""
        with self._lock:
            logger.info("recv profile stop")
            return self._stop_locked()

    def collect_garbage(self) -> int:
        with self._lock:
            return gc_control.collect()

    def set_gc_enabled(self, enabled: bool) -> bool:
        with self._lock:
            self._restore_gc = False
            return gc_control.set_enabled(enabled)

    def status(self) -> dict:
        with self._lock:
            return {
                "active": self._active,
                "started_at": self._started_at.isoformat() if self._started_at else None,
                "gc_enabled": gc_control.is_enabled(),
                "artifacts": {
                    kind: {**entry, "open": self._slots[ProfileKind(kind)].handle is not None}
                    for kind, entry in self.store.describe().items()
                },
            }

    def close(self) -> None:
        """Stop any active session; used on host shutdown."""
        if self._active or any(s.handle is not None for s in self._slots.values()):
            self.stop()

    def _begin(self, slot: ProfilerSlot) -> Outcome:
        kind = slot.kind
        slot.last_error = None
        try:
            handle = self.store.provision(kind)
        except StorageError as exc:
            slot.last_error = exc.reason
            logger.warning("generate %s failed: %s", slot.path.name, exc.reason)
            return Outcome(False, f"generate {slot.path.name} failed: {exc.reason}")
        try:
            slot.profiler.begin(handle)
        except CaptureError as exc:
            reason = exc.reason
        except Exception as exc:
            logger.exception("start %s profile raised", kind.value)
            reason = f"{type(exc).__name__}: {exc}"
        else:
            reason = None
        if reason is not None:
            slot.last_error = reason
            logger.warning("start %s profile failed: %s", kind.value, reason)
            self._release_quietly(handle)
            return Outcome(False, f"start {kind.value} profile failed: {reason}")
        slot.handle = handle
        return Outcome(True, f"{kind.value} profile start success")

    def _end(self, slot: ProfilerSlot) -> Outcome:
        kind = slot.kind
        if slot.handle is None:
            return Outcome(True, f"{kind.value} profile not running")
        errors = []
        try:
            slot.profiler.end()
        except CaptureError as exc:
            errors.append(exc.reason)
        except Exception as exc:
            logger.exception("stop %s profile raised", kind.value)
            errors.append(f"{type(exc).__name__}: {exc}")
        finally:
            try:
                self.store.release(slot.handle)
            except StorageError as exc:
                errors.append(exc.reason)
            slot.handle = None
        if errors:
            slot.last_error = "; ".join(errors)
            logger.warning("stop %s profile failed: %s", kind.value, slot.last_error)
            return Outcome(False, f"stop {kind.value} profile failed: {slot.last_error}")
        return Outcome(True, f"{kind.value} profile stop success")

    def _stop_locked(self) -> SessionResult:
        self._cancel_timer()
        outcomes = tuple((kind, self._end(self._slots[kind])) for kind in STOP_ORDER)
        self._restore_gc_locked()
        self._active = False
        self._started_at = None
        return SessionResult("stop", outcomes)

    def _restore_gc_locked(self) -> None:
        if self._restore_gc:
            gc_control.set_enabled(True)
            self._restore_gc = False

    def _release_quietly(self, handle: TextIO) -> None:
        try:
            self.store.release(handle)
        except StorageError as exc:
            logger.warning("Releasing artifact after failed start: %s", exc)

    def _arm_timer(self, generation: int) -> None:
        if not self.max_capture_seconds:
            return
        timer = threading.Timer(self.max_capture_seconds, self._expire, args=(generation,))
        timer.name = "pprofsvc-capture-timer"
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self, generation: int) -> None:
        with self._lock:
            if not self._active or generation != self._generation:
                return
            logger.warning("Profile session exceeded %.1fs; stopping", self.max_capture_seconds)
            self._stop_locked()
