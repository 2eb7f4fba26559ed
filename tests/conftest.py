from __future__ import annotations

import gc
from pathlib import Path

import pytest

from pprofsvc.core.config import AppConfig
from pprofsvc.session import SessionController


@pytest.fixture(autouse=True)
def _restore_gc():
    yield
    gc.enable()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        storage={"output_dir": tmp_path / "pprof"},
        cpu={"interval_seconds": 0.005},
    )


@pytest.fixture
def controller(config: AppConfig):
    ctl = SessionController.from_config(config)
    yield ctl
    ctl.close()
