from __future__ import annotations

from .adapter import FileStorage, MemoryStorage, PersistenceAdapter, StorageHub
from .repository import (
    ACTIVE_PROJECT_KEY,
    FAVORITE_ARCHIVE_KEY,
    FAVORITES_KEY,
    PROJECTS_KEY,
    SESSION_KEYS,
    ProjectRepository,
)

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "PersistenceAdapter",
    "StorageHub",
    "ACTIVE_PROJECT_KEY",
    "FAVORITE_ARCHIVE_KEY",
    "FAVORITES_KEY",
    "PROJECTS_KEY",
    "SESSION_KEYS",
    "ProjectRepository",
]
