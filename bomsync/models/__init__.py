"""Domain models for the BOM comparison workspace.

Dataset snapshots, comparison results, persisted project records and
activity log entries.
"""

from .activity_record import ActivityRecord
from .dataset import ColumnMeta, ColumnRole, DatasetSnapshot, ParseIssue
from .diff import DiffRow, DiffStatus, ResultMode
from .project import ProjectPayload, ProjectRecord

__all__ = [
    # Dataset models
    "ColumnMeta",
    "ColumnRole",
    "DatasetSnapshot",
    "ParseIssue",
    # Comparison models
    "DiffRow",
    "DiffStatus",
    "ResultMode",
    # Session models
    "ProjectPayload",
    "ProjectRecord",
    "ActivityRecord",
]
