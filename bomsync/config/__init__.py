from __future__ import annotations

from .loader import AppConfig, ConfigError, default_config, load_config

__all__ = ["AppConfig", "ConfigError", "default_config", "load_config"]
