"""Configuration loading and normalization.

Settings live in a YAML file (see ``configs/app.yaml``).  This module turns
it into typed objects the controller and the HTTP layer can rely on.
Environment variables in YAML values are expanded before parsing.
"""

from __future__ import annotations

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)


def _expand_env(text: str) -> str:
    """Expand ${VARS} inside YAML text."""
    return os.path.expandvars(text)


class OnActiveStart(str, Enum):
    RESET = "reset"
    REJECT = "reject"


class ServerConfig(BaseModel):
    host: str = "localhost"
    port: int = Field(default=6060, ge=0, le=65535)
    log_level: str = "info"


class StorageConfig(BaseModel):
    output_dir: Path = Field(default_factory=lambda: Path.cwd() / "pprof")
    extension: str = "pprof"


class CpuConfig(BaseModel):
    interval_seconds: float = Field(default=0.01, gt=0)


class TraceConfig(BaseModel):
    calls: bool = False


class SessionConfig(BaseModel):
    on_active_start: OnActiveStart = OnActiveStart.RESET
    revert_on_total_failure: bool = False
    max_capture_seconds: Optional[float] = Field(default=None, gt=0)


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cpu: CpuConfig = Field(default_factory=CpuConfig)
    trace: TraceConfig = Field(default_factory=TraceConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AppConfig":
        raw = load_yaml(path)
        normalized = normalize_raw_config(raw)
        try:
            return cls(**normalized)
        except ValidationError as exc:
            raise ConfigError(f"invalid config {path}: {exc}") from exc


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load YAML and expand environment variables."""
    p = Path(path)
    try:
        text = _expand_env(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read config {p}: {exc}") from exc
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse config {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {p} must be a mapping, got {type(data).__name__}")
    logger.debug("Loaded YAML: path=%s keys=%s", p, list(data.keys()))
    return data


def normalize_raw_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Accept the short ``pprof:`` shape and map it to AppConfig fields.

    Relative output directories resolve against the process working
    directory, matching where the profiled process is launched from.
    """
    merged = dict(raw)
    legacy = merged.pop("pprof", None) or {}
    if legacy:
        logger.debug("Normalizing legacy pprof section: keys=%s", list(legacy.keys()))
        if "port" in legacy:
            merged.setdefault("server", {})["port"] = legacy["port"]
        if "dir" in legacy:
            merged.setdefault("storage", {})["output_dir"] = legacy["dir"]

    storage_cfg = merged.get("storage") or {}
    output_dir = storage_cfg.get("output_dir")
    if output_dir is not None:
        path = Path(output_dir).expanduser()
        if not path.is_absolute():
            path = Path.cwd() / path
        storage_cfg = {**storage_cfg, "output_dir": path}
        merged["storage"] = storage_cfg
    ext = storage_cfg.get("extension")
    if isinstance(ext, str):
        merged["storage"]["extension"] = ext.lstrip(".")
    return merged
