"""CLI entrypoint using Typer."""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx
import typer
import uvicorn

from pprofsvc.api.main import create_app
from pprofsvc.core.config import AppConfig

app = typer.Typer(help="Remote-controlled profiling sessions")

DEFAULT_URL = "http://localhost:6060"


def _load_config(path: Optional[str]) -> AppConfig:
    return AppConfig.from_yaml(path) if path else AppConfig()


def _call(method: str, url: str, path: str, timeout: float) -> None:
    try:
        resp = httpx.request(method, url.rstrip("/") + path, timeout=timeout)
    except httpx.HTTPError as exc:
        typer.echo(f"request failed: {exc}", err=True)
        raise typer.Exit(code=1)
    if resp.content:
        try:
            typer.echo(json.dumps(resp.json(), indent=2))
        except ValueError:
            typer.echo(resp.text)
    if resp.is_error:
        raise typer.Exit(code=1)


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, help="Path to config YAML"),
    port: Optional[int] = typer.Option(None, help="Override server.port"),
) -> None:
    # Demo: pprofsvc serve --config configs/app.yaml
    # Purpose: run the control API in the foreground (standalone or for trying it out).
    logging.basicConfig(level=logging.INFO)
    cfg = _load_config(config)
    if port is not None:
        cfg.server.port = port
    uvicorn.run(
        create_app(cfg),
        host=cfg.server.host,
        port=cfg.server.port,
        log_level=cfg.server.log_level,
    )


@app.command()
def start(
    url: str = typer.Option(DEFAULT_URL, help="Control API base URL"),
    no_gc: bool = typer.Option(False, "--no-gc", help="Disable automatic GC until stop"),
    timeout: float = typer.Option(10.0, help="Request timeout in seconds"),
) -> None:
    # Demo: pprofsvc start --url http://localhost:6060 --no-gc
    _call("POST", url, "/startnogc" if no_gc else "/start", timeout)


@app.command()
def stop(
    url: str = typer.Option(DEFAULT_URL, help="Control API base URL"),
    timeout: float = typer.Option(10.0, help="Request timeout in seconds"),
) -> None:
    _call("POST", url, "/stop", timeout)


@app.command()
def gc(
    url: str = typer.Option(DEFAULT_URL, help="Control API base URL"),
    timeout: float = typer.Option(30.0, help="Request timeout in seconds"),
) -> None:
    _call("POST", url, "/gc", timeout)


@app.command()
def status(
    url: str = typer.Option(DEFAULT_URL, help="Control API base URL"),
    timeout: float = typer.Option(10.0, help="Request timeout in seconds"),
) -> None:
    _call("GET", url, "/status", timeout)


if __name__ == "__main__":
    app()
