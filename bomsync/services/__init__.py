from __future__ import annotations

from .autosave import TimerQueue
from .orchestrator import (
    ComparisonOrchestrator,
    PreconditionNotMet,
    ReplacementResult,
    derive_replacement_statuses,
    normalize_status,
)
from .session_store import SessionStore
from .session_sync import SessionSyncBridge
from .workspace import DatasetSlot, Workspace

__all__ = [
    "TimerQueue",
    "ComparisonOrchestrator",
    "PreconditionNotMet",
    "ReplacementResult",
    "derive_replacement_statuses",
    "normalize_status",
    "SessionStore",
    "SessionSyncBridge",
    "DatasetSlot",
    "Workspace",
]
