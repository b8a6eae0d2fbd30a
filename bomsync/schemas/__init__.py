from __future__ import annotations

import json
from functools import cache
from pathlib import Path
from typing import Any

"""JSON schemas shipped with the package (config, activity log, backup files)."""

__all__ = ["SCHEMA_DIR", "load_schema"]

SCHEMA_DIR = Path(__file__).parent


@cache
def load_schema(name: str) -> dict[str, Any]:
    """Load ``<name>.json`` from the package schema directory."""
    return json.loads((SCHEMA_DIR / f"{name}.json").read_text(encoding="utf-8"))
