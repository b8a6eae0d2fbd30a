from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..schemas import load_schema

"""Config loader.

Responsibilities:
- Load YAML config (config/bomsync.yml)
- Validate against the packaged config_schema.json
- Apply defaults for every omitted key
- BOMSYNC_STORAGE_DIR (環境変数 / .env) が storage_directory より優先
"""

__all__ = [
    "ConfigError",
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "STORAGE_DIR_ENV",
    "default_config",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/bomsync.yml")
STORAGE_DIR_ENV = "BOMSYNC_STORAGE_DIR"

DEFAULT_STORAGE_DIRECTORY = "./.bomsync"
DEFAULT_LOGS_DIRECTORY = "./logs"
DEFAULT_PROJECT_LIMIT = 50
DEFAULT_AUTOSAVE_DELAY = 1.5


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class AppConfig:
    storage_directory: Path
    logs_directory: Path
    project_limit: int
    autosave_delay_seconds: float


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Raise ConfigError when ``data`` violates the config schema."""
    try:
        schema = load_schema("config_schema")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build(data: dict[str, Any]) -> AppConfig:
    storage = os.environ.get(STORAGE_DIR_ENV) or data.get("storage_directory", DEFAULT_STORAGE_DIRECTORY)
    autosave = data.get("autosave") or {}
    return AppConfig(
        storage_directory=Path(storage),
        logs_directory=Path(data.get("logs_directory", DEFAULT_LOGS_DIRECTORY)),
        project_limit=int(data.get("project_limit", DEFAULT_PROJECT_LIMIT)),
        autosave_delay_seconds=float(autosave.get("delay_seconds", DEFAULT_AUTOSAVE_DELAY)),
    )


def default_config() -> AppConfig:
    """Configuration used when no config file is present."""
    return _build({})


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)
    return _build(data)
