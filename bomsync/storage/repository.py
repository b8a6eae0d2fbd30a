from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..models.project import ProjectRecord
from .adapter import PersistenceAdapter

"""Typed access to the four persisted session keys.

Each key decodes on its own: a corrupt or malformed value degrades to the
key's empty default (logged as a warning) without touching the other keys.
"""

__all__ = [
    "PROJECTS_KEY",
    "ACTIVE_PROJECT_KEY",
    "FAVORITES_KEY",
    "FAVORITE_ARCHIVE_KEY",
    "SESSION_KEYS",
    "ProjectRepository",
    "decode_projects",
    "decode_archive",
]

logger = logging.getLogger(__name__)

PROJECTS_KEY = "bomsync_projects"
ACTIVE_PROJECT_KEY = "bomsync_active_project"
FAVORITES_KEY = "bomsync_favorite_projects"
FAVORITE_ARCHIVE_KEY = "bomsync_favorite_archive"

SESSION_KEYS = (PROJECTS_KEY, ACTIVE_PROJECT_KEY, FAVORITES_KEY, FAVORITE_ARCHIVE_KEY)


def decode_projects(raw: Any) -> list[ProjectRecord]:
    """Decode a stored project list, skipping entries that cannot be decoded."""
    if not isinstance(raw, list):
        return []
    records: list[ProjectRecord] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        try:
            record = ProjectRecord.from_dict(item)
        except ValueError as e:
            logger.warning("skipping stored project: %s", e)
            continue
        if record.id in seen:
            continue
        seen.add(record.id)
        records.append(record)
    return records


def decode_archive(raw: Any) -> dict[str, ProjectRecord]:
    if not isinstance(raw, Mapping):
        return {}
    archive: dict[str, ProjectRecord] = {}
    for project_id, item in raw.items():
        if not isinstance(item, Mapping):
            continue
        try:
            archive[str(project_id)] = ProjectRecord.from_dict(item)
        except ValueError as e:
            logger.warning("skipping archived project %s: %s", project_id, e)
    return archive


class ProjectRepository:
    def __init__(self, adapter: PersistenceAdapter) -> None:
        self.adapter = adapter

    def _read(self, key: str) -> Any:
        try:
            return self.adapter.read(key)
        except (ValueError, TypeError) as e:
            logger.warning("stored value for %s is corrupt, using default: %s", key, e)
            return None

    # ---- projects -----------------------------------------------------
    def load_projects(self) -> list[ProjectRecord]:
        return decode_projects(self._read(PROJECTS_KEY))

    def save_projects(self, projects: Iterable[ProjectRecord]) -> None:
        self.adapter.write(PROJECTS_KEY, [record.to_dict() for record in projects])

    # ---- active pointer -----------------------------------------------
    def load_active_id(self) -> str | None:
        raw = self._read(ACTIVE_PROJECT_KEY)
        return raw if isinstance(raw, str) and raw else None

    def save_active_id(self, project_id: str | None) -> None:
        self.adapter.write(ACTIVE_PROJECT_KEY, project_id or None)

    # ---- favorites ----------------------------------------------------
    def load_favorites(self) -> list[str]:
        raw = self._read(FAVORITES_KEY)
        if not isinstance(raw, list):
            return []
        favorites: list[str] = []
        for item in raw:
            if isinstance(item, str) and item and item not in favorites:
                favorites.append(item)
        return favorites

    def save_favorites(self, favorites: Iterable[str]) -> None:
        self.adapter.write(FAVORITES_KEY, list(favorites))

    def load_archive(self) -> dict[str, ProjectRecord]:
        return decode_archive(self._read(FAVORITE_ARCHIVE_KEY))

    def save_archive(self, archive: Mapping[str, ProjectRecord]) -> None:
        self.adapter.write(
            FAVORITE_ARCHIVE_KEY,
            {project_id: record.to_dict() for project_id, record in archive.items()},
        )
