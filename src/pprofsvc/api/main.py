"""FastAPI application exposing the profiling session controls."""

from __future__ import annotations

import io
import logging
import time
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from pprofsvc.core.config import AppConfig
from pprofsvc.core.errors import CaptureError, SessionActiveError
from pprofsvc.profilers import BlockProfiler, CpuProfiler, HeapProfiler, SubProfiler
from pprofsvc.session import SessionController, SessionResult

logger = logging.getLogger(__name__)


class ProfileMessages(BaseModel):
    cpu: str = ""
    mem: str = ""
    trace: str = ""
    block: str = ""


def _respond(result: SessionResult) -> JSONResponse:
    body = ProfileMessages(**result.messages())
    status = 200 if result.ok else 500
    if not result.ok:
        logger.warning("profile %s finished with failures: %s", result.operation, [k.value for k in result.failed])
    return JSONResponse(status_code=status, content=body.model_dump())


def _snapshot(profiler: SubProfiler, seconds: float = 0.0) -> PlainTextResponse:
    """Capture into memory without touching the session or its artifacts."""
    buf = io.StringIO()
    try:
        profiler.begin(buf)
        if seconds:
            time.sleep(seconds)
        profiler.end()
    except CaptureError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return PlainTextResponse(buf.getvalue())


def create_app(
    config: Optional[AppConfig] = None,
    controller: Optional[SessionController] = None,
) -> FastAPI:
    """Build the control API around ``controller`` (created from ``config`` if absent)."""
    if controller is None:
        controller = SessionController.from_config(config or AppConfig())

    app = FastAPI(title="pprofsvc", version="0.1.0")
    app.state.controller = controller
    cpu_interval = (config or AppConfig()).cpu.interval_seconds

    def get_controller(request: Request) -> SessionController:
        return request.app.state.controller

    def _start(request: Request, disable_gc: bool) -> JSONResponse:
        try:
            result = get_controller(request).start(disable_gc=disable_gc)
        except SessionActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _respond(result)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/status")
    def status(request: Request) -> dict:
        return get_controller(request).status()

    @app.post("/start", response_model=ProfileMessages)
    def start(request: Request) -> JSONResponse:
        return _start(request, disable_gc=False)

    @app.post("/startnogc", response_model=ProfileMessages)
    def start_without_gc(request: Request) -> JSONResponse:
        return _start(request, disable_gc=True)

    @app.post("/stop", response_model=ProfileMessages)
    def stop(request: Request) -> JSONResponse:
        return _respond(get_controller(request).stop())

    @app.post("/gc", status_code=204)
    def collect_garbage(request: Request) -> Response:
        get_controller(request).collect_garbage()
        return Response(status_code=204)

    @app.post("/gc/enable")
    def enable_gc(request: Request) -> dict:
        previous = get_controller(request).set_gc_enabled(True)
        return {"gc_enabled": True, "previous": previous}

    @app.post("/gc/disable")
    def disable_gc(request: Request) -> dict:
        previous = get_controller(request).set_gc_enabled(False)
        return {"gc_enabled": False, "previous": previous}

    @app.get("/debug/pprof/")
    def debug_index() -> dict:
        return {
            "heap": "/debug/pprof/heap",
            "block": "/debug/pprof/block",
            "profile": "/debug/pprof/profile?seconds=5",
        }

    @app.get("/debug/pprof/heap", response_class=PlainTextResponse)
    def debug_heap() -> PlainTextResponse:
        return _snapshot(HeapProfiler())

    @app.get("/debug/pprof/block", response_class=PlainTextResponse)
    def debug_block() -> PlainTextResponse:
        return _snapshot(BlockProfiler())

    @app.get("/debug/pprof/profile", response_class=PlainTextResponse)
    def debug_cpu(seconds: float = Query(5.0, gt=0, le=120)) -> PlainTextResponse:
        return _snapshot(CpuProfiler(interval_seconds=cpu_interval), seconds=seconds)

    return app
