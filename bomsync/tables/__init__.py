from __future__ import annotations

from .normalizer import (
    canonical_label,
    normalize_snapshot,
    role_assignments,
    set_column_role,
)
from .reader import SUPPORTED_EXTENSIONS, guess_column_role, parse_table

__all__ = [
    "canonical_label",
    "normalize_snapshot",
    "role_assignments",
    "set_column_role",
    "SUPPORTED_EXTENSIONS",
    "guess_column_role",
    "parse_table",
]
