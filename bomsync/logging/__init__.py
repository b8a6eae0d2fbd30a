from __future__ import annotations

from .activity_log import ActivityLogBuffer
from .init import get_logger, log_summary, reset_logging, setup_logging

__all__ = [
    "ActivityLogBuffer",
    "get_logger",
    "log_summary",
    "reset_logging",
    "setup_logging",
]
