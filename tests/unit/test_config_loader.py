from __future__ import annotations

from pathlib import Path

import pytest

from bomsync.config.loader import ConfigError, default_config, load_config


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.storage_directory == Path("./store")
    assert cfg.logs_directory == Path("./logs")
    assert cfg.project_limit == 10
    assert cfg.autosave_delay_seconds == 0.5


def test_omitted_keys_use_defaults(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "bomsync.yml"
    cfg_path.write_text("project_limit: 3\n", encoding="utf-8")

    cfg = load_config(cfg_path)

    assert cfg.project_limit == 3
    assert cfg.autosave_delay_seconds == default_config().autosave_delay_seconds
    assert cfg.storage_directory == default_config().storage_directory


def test_empty_file_is_all_defaults(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "bomsync.yml"
    cfg_path.write_text("", encoding="utf-8")
    assert load_config(cfg_path) == default_config()


def test_env_overrides_storage_directory(write_config: Path, monkeypatch):
    monkeypatch.setenv("BOMSYNC_STORAGE_DIR", "/var/lib/bomsync")
    assert load_config(write_config).storage_directory == Path("/var/lib/bomsync")


def test_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(temp_workdir / "config" / "missing.yml")


def test_invalid_yaml(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "bomsync.yml"
    cfg_path.write_text("project_limit: [1, 2\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(cfg_path)


def test_root_must_be_mapping(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "bomsync.yml"
    cfg_path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(cfg_path)


@pytest.mark.parametrize(
    "body",
    [
        "project_limit: 0\n",
        "project_limit: ten\n",
        "autosave:\n  delay_seconds: 0\n",
        "autosave:\n  interval: 3\n",
        "database:\n  host: localhost\n",
    ],
)
def test_schema_violations(temp_workdir: Path, body: str):
    cfg_path = temp_workdir / "config" / "bomsync.yml"
    cfg_path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(cfg_path)
