from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Comparison result models.

DiffRow references rows by index into the compared snapshots instead of
copying cell data; the status string is whatever the backend emitted and is
normalized client-side into DiffStatus.
"""

__all__ = [
    "DiffStatus",
    "DiffRow",
    "ResultMode",
]


class DiffStatus(str, Enum):
    """Closed set of normalized comparison statuses."""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    OTHER = "other"


class ResultMode(str, Enum):
    COMPARISON = "comparison"
    REPLACEMENT = "replacement"


@dataclass(frozen=True)
class DiffRow:
    status: str  # raw backend status
    ref_value: str
    a_index: int | None = None
    b_index: int | None = None
    changed_columns: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "ref_value": self.ref_value,
            "a_index": self.a_index,
            "b_index": self.b_index,
            "changed_columns": list(self.changed_columns),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DiffRow:
        a_index = data.get("a_index")
        b_index = data.get("b_index")
        return DiffRow(
            status=str(data.get("status") or ""),
            ref_value=str(data.get("ref_value") or ""),
            a_index=a_index if isinstance(a_index, int) else None,
            b_index=b_index if isinstance(b_index, int) else None,
            changed_columns=tuple(str(c) for c in (data.get("changed_columns") or [])),
        )
