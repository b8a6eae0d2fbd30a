from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..models.diff import DiffStatus, ResultMode

"""SUMMARY line rendering.

Format:
SUMMARY mode={comparison|replacement} rows={n} added={n} removed={n}
modified={n} unchanged={n} other={n}
"""

__all__ = [
    "StatusCounts",
    "count_statuses",
    "render_summary_line",
]


@dataclass(frozen=True)
class StatusCounts:
    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return self.added + self.removed + self.modified + self.unchanged + self.other

    @property
    def has_differences(self) -> bool:
        return self.total != self.unchanged


def count_statuses(statuses: Iterable[DiffStatus | str]) -> StatusCounts:
    """Count normalized statuses (values outside the closed set count as other)."""
    counts = {status.value: 0 for status in DiffStatus}
    for status in statuses:
        key = status.value if isinstance(status, DiffStatus) else str(status)
        counts[key if key in counts else DiffStatus.OTHER.value] += 1
    return StatusCounts(**counts)


def render_summary_line(mode: ResultMode | str, rows: int, counts: StatusCounts) -> str:
    """Render the SUMMARY line.

    >>> render_summary_line("comparison", 3, StatusCounts(added=1, removed=1, unchanged=1))
    'SUMMARY mode=comparison rows=3 added=1 removed=1 modified=0 unchanged=1 other=0'
    """
    mode_value = mode.value if isinstance(mode, ResultMode) else mode
    return (
        f"SUMMARY mode={mode_value} "
        f"rows={rows} "
        f"added={counts.added} "
        f"removed={counts.removed} "
        f"modified={counts.modified} "
        f"unchanged={counts.unchanged} "
        f"other={counts.other}"
    )
