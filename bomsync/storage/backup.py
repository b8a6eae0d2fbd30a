from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError

from ..backend import Backend, FileIOFailed
from ..models.project import ProjectRecord, utc_now_iso
from ..schemas import load_schema
from .repository import ProjectRepository, decode_archive, decode_projects

"""Backup and session file import / export.

- backup: every persisted session key in one JSON document
  {version, exportedAt, projects, favoriteProjects, favoriteArchive, activeProjectId}
- session file: a single project {version, exportedAt, project}

Files go through the backend's text file operations. Imports are validated
(JSON + jsonschema) before anything is written, so a rejected file never
changes the stored state.
"""

__all__ = [
    "BACKUP_VERSION",
    "BackupContents",
    "build_backup",
    "export_backup",
    "import_backup",
    "export_project",
    "import_project",
]

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


@dataclass(frozen=True)
class BackupContents:
    projects: list[ProjectRecord]
    favorites: list[str]
    archive: dict[str, ProjectRecord]
    active_id: str | None


def _load_document(files: Backend, path: Path, schema_name: str) -> dict[str, Any]:
    content = files.read_text_file(path)
    try:
        document = json.loads(content)
    except json.JSONDecodeError as e:
        raise FileIOFailed(f"{path} is not valid JSON: {e}") from e
    try:
        jsonschema.validate(document, load_schema(schema_name))
    except ValidationError as e:
        raise FileIOFailed(f"{path} is not a valid {schema_name.removesuffix('_schema')} file: {e.message}") from e
    return document


def build_backup(repository: ProjectRepository) -> dict[str, Any]:
    archive = repository.load_archive()
    return {
        "version": BACKUP_VERSION,
        "exportedAt": utc_now_iso(),
        "projects": [record.to_dict() for record in repository.load_projects()],
        "favoriteProjects": repository.load_favorites(),
        "favoriteArchive": {pid: record.to_dict() for pid, record in archive.items()},
        "activeProjectId": repository.load_active_id(),
    }


def export_backup(repository: ProjectRepository, path: Path, files: Backend) -> Path:
    payload = build_backup(repository)
    files.write_text_file(Path(path), json.dumps(payload, ensure_ascii=False, indent=2))
    logger.info("backup written: %s projects=%d", path, len(payload["projects"]))
    return Path(path)


def import_backup(repository: ProjectRepository, path: Path, files: Backend) -> BackupContents:
    """Replace every stored session key with the backup's content."""
    document = _load_document(files, Path(path), "backup_schema")
    contents = BackupContents(
        projects=decode_projects(document.get("projects")),
        favorites=[f for f in dict.fromkeys(document.get("favoriteProjects") or []) if f],
        archive=decode_archive(document.get("favoriteArchive")),
        active_id=document.get("activeProjectId") or None,
    )
    repository.save_projects(contents.projects)
    repository.save_favorites(contents.favorites)
    repository.save_archive(contents.archive)
    repository.save_active_id(contents.active_id)
    logger.info("backup restored: %s projects=%d", path, len(contents.projects))
    return contents


def export_project(record: ProjectRecord, path: Path, files: Backend) -> Path:
    payload = {
        "version": BACKUP_VERSION,
        "exportedAt": utc_now_iso(),
        "project": record.to_dict(),
    }
    files.write_text_file(Path(path), json.dumps(payload, ensure_ascii=False, indent=2))
    return Path(path)


def import_project(path: Path, files: Backend) -> ProjectRecord:
    document = _load_document(files, Path(path), "project_schema")
    try:
        return ProjectRecord.from_dict(document["project"])
    except ValueError as e:
        raise FileIOFailed(f"{path}: {e}") from e
