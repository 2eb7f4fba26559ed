from __future__ import annotations

from pathlib import Path

import pytest

from pprofsvc.core.config import AppConfig, OnActiveStart, load_yaml
from pprofsvc.core.errors import ConfigError


def test_defaults() -> None:
    cfg = AppConfig()
    assert cfg.server.host == "localhost"
    assert cfg.server.port == 6060
    assert cfg.storage.output_dir == Path.cwd() / "pprof"
    assert cfg.storage.extension == "pprof"
    assert cfg.session.on_active_start is OnActiveStart.RESET
    assert cfg.session.revert_on_total_failure is False
    assert cfg.session.max_capture_seconds is None
    assert cfg.trace.calls is False


def test_from_yaml_with_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PPROF_TEST_PORT", "7070")
    path = tmp_path / "app.yaml"
    path.write_text(
        "server:\n"
        "  port: ${PPROF_TEST_PORT}\n"
        "storage:\n"
        f"  output_dir: {tmp_path / 'out'}\n"
        "  extension: .prof\n"
        "session:\n"
        "  on_active_start: reject\n"
        "  max_capture_seconds: 30\n",
        encoding="utf-8",
    )
    cfg = AppConfig.from_yaml(path)
    assert cfg.server.port == 7070
    assert cfg.storage.output_dir == tmp_path / "out"
    assert cfg.storage.extension == "prof"
    assert cfg.session.on_active_start is OnActiveStart.REJECT
    assert cfg.session.max_capture_seconds == 30


def test_relative_output_dir_resolves_against_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "app.yaml"
    path.write_text("storage:\n  output_dir: profiles\n", encoding="utf-8")
    cfg = AppConfig.from_yaml(path)
    assert cfg.storage.output_dir == tmp_path / "profiles"


def test_short_pprof_section(tmp_path: Path) -> None:
    path = tmp_path / "app.yaml"
    path.write_text(f"pprof:\n  port: 9999\n  dir: {tmp_path / 'p'}\n", encoding="utf-8")
    cfg = AppConfig.from_yaml(path)
    assert cfg.server.port == 9999
    assert cfg.storage.output_dir == tmp_path / "p"


def test_invalid_values_raise_config_error(tmp_path: Path) -> None:
    path = tmp_path / "app.yaml"
    path.write_text("session:\n  on_active_start: sometimes\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        AppConfig.from_yaml(path)


def test_non_mapping_yaml_rejected(tmp_path: Path) -> None:
    path = tmp_path / "app.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_yaml(path)


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        AppConfig.from_yaml(tmp_path / "nope.yaml")
