from __future__ import annotations

import gc
import json
import sys
import threading
import time
import tracemalloc
from pathlib import Path

import pytest

from pprofsvc.core.errors import CaptureError
from pprofsvc.profilers import BlockProfiler, CpuProfiler, HeapProfiler, TraceProfiler
from pprofsvc.profilers.block import blocked_on


def _open(path: Path):
    return path.open("w", encoding="utf-8")


def test_cpu_profiler_streams_samples(tmp_path: Path) -> None:
    path = tmp_path / "cpu.pprof"
    profiler = CpuProfiler(interval_seconds=0.002)
    with _open(path) as out:
        profiler.begin(out)
        assert profiler.running
        time.sleep(0.05)
        profiler.end()
    assert not profiler.running
    assert profiler.samples > 1
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines
    assert all(line.endswith(" 1") for line in lines)
    assert any("test_cpu_profiler_streams_samples" in line for line in lines)
    assert not any("pprofsvc-cpu-sampler" in line for line in lines)


def test_cpu_profiler_rejects_second_stream(tmp_path: Path) -> None:
    profiler = CpuProfiler(interval_seconds=0.01)
    with _open(tmp_path / "a") as first, _open(tmp_path / "b") as second:
        profiler.begin(first)
        try:
            with pytest.raises(CaptureError):
                profiler.begin(second)
        finally:
            profiler.end()


def test_cpu_profiler_end_without_begin_is_noop() -> None:
    CpuProfiler().end()


def test_heap_census_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "mem.pprof"
    profiler = HeapProfiler()
    with _open(path) as out:
        profiler.begin(out)
        written = path.stat().st_size
        profiler.end()
    assert written > 0
    assert path.stat().st_size == written
    header, *rows = path.read_text(encoding="utf-8").splitlines()
    assert header.startswith("# heap profile: census")
    assert any(row.endswith("builtins.dict") for row in rows)


def test_heap_tracemalloc_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "mem.pprof"
    tracemalloc.start()
    try:
        keep = [bytearray(1024) for _ in range(10)]
        with _open(path) as out:
            HeapProfiler(limit=50).begin(out)
    finally:
        tracemalloc.stop()
    assert keep
    header = path.read_text(encoding="utf-8").splitlines()[0]
    assert header.startswith("# heap profile: tracemalloc")


def test_trace_records_gc_and_closes_array(tmp_path: Path) -> None:
    path = tmp_path / "trace.pprof"
    profiler = TraceProfiler()
    with _open(path) as out:
        profiler.begin(out)
        gc.collect()
        profiler.end()
    events = json.loads(path.read_text(encoding="utf-8"))
    assert events[0]["name"] == "process_name"
    gc_events = [e for e in events if e.get("cat") == "gc"]
    assert {e["ph"] for e in gc_events} == {"B", "E"}
    assert profiler._on_gc not in gc.callbacks


def _traced_marker() -> int:
    return 1


def test_trace_records_calls_when_enabled(tmp_path: Path) -> None:
    path = tmp_path / "trace.pprof"
    profiler = TraceProfiler(calls=True)
    with _open(path) as out:
        profiler.begin(out)
        _traced_marker()
        profiler.end()
    events = json.loads(path.read_text(encoding="utf-8"))
    names = [(e["name"], e["ph"]) for e in events if e.get("cat") == "call"]
    assert ("_traced_marker", "B") in names
    assert ("_traced_marker", "E") in names


def test_trace_rejects_second_stream(tmp_path: Path) -> None:
    profiler = TraceProfiler()
    with _open(tmp_path / "a") as first, _open(tmp_path / "b") as second:
        profiler.begin(first)
        try:
            with pytest.raises(CaptureError):
                profiler.begin(second)
        finally:
            profiler.end()


def test_block_profile_records_waiting_thread(tmp_path: Path) -> None:
    path = tmp_path / "block.pprof"
    release = threading.Event()
    waiter = threading.Thread(target=release.wait, name="waiter", daemon=True)
    waiter.start()
    time.sleep(0.1)
    try:
        with _open(path) as out:
            BlockProfiler().begin(out)
    finally:
        release.set()
        waiter.join()
    text = path.read_text(encoding="utf-8")
    assert "thread waiter" in text
    assert "threading.wait" in text


def test_blocked_on_ignores_running_frames() -> None:
    assert blocked_on(sys._getframe()) is None


def _contend(target, name: str) -> tuple[threading.Lock, threading.Thread]:
    lock = threading.Lock()
    lock.acquire()
    thread = threading.Thread(target=target, args=(lock,), name=name, daemon=True)
    thread.start()
    time.sleep(0.1)
    return lock, thread


def _enter_lock(lock: threading.Lock) -> None:
    with lock:
        pass


def _acquire_lock(lock: threading.Lock) -> None:
    lock.acquire()
    lock.release()


@pytest.mark.parametrize("target", [_enter_lock, _acquire_lock])
def test_block_profile_records_contended_lock(tmp_path: Path, target) -> None:
    path = tmp_path / "block.pprof"
    lock, contender = _contend(target, "contender")
    try:
        with _open(path) as out:
            BlockProfiler().begin(out)
    finally:
        lock.release()
        contender.join()
    text = path.read_text(encoding="utf-8")
    assert "thread contender" in text
    assert f"{target.__name__} -> lock." in text


def test_trace_without_argv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", [])
    path = tmp_path / "trace.pprof"
    profiler = TraceProfiler()
    with _open(path) as out:
        profiler.begin(out)
        profiler.end()
    events = json.loads(path.read_text(encoding="utf-8"))
    assert events[0]["args"] == {"name": "python"}


def test_trace_calls_warns_without_all_thread_hook(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.delattr(threading, "setprofile_all_threads", raising=False)
    path = tmp_path / "trace.pprof"
    profiler = TraceProfiler(calls=True)
    with caplog.at_level("WARNING", logger="pprofsvc.profilers.trace"):
        with _open(path) as out:
            profiler.begin(out)
            _traced_marker()
            profiler.end()
    assert "current and new threads" in caplog.text
    assert sys.getprofile() is None
    events = json.loads(path.read_text(encoding="utf-8"))
    assert ("_traced_marker", "B") in [(e["name"], e["ph"]) for e in events if e.get("cat") == "call"]
