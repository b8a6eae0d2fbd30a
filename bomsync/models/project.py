from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from .dataset import DatasetSnapshot, coerce_role

"""Project (tab) records persisted by the session store.

ProjectRecord.data is a ProjectPayload holding both dataset slots at the time
of the last save. The persisted layout uses camelCase keys (bomA, columnRolesA,
savedAt, ...) so existing stores and backups stay loadable.
"""

__all__ = [
    "PAYLOAD_VERSION",
    "ProjectPayload",
    "ProjectRecord",
    "utc_now_iso",
    "decode_column_roles",
]

PAYLOAD_VERSION = 1


def utc_now_iso() -> str:
    """ISO8601 UTC timestamp with 'Z' suffix and millisecond precision."""
    now = datetime.now(UTC)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def decode_column_roles(raw: Any) -> dict[str, str]:
    """Keep only column id -> known role entries."""
    if not isinstance(raw, Mapping):
        return {}
    result: dict[str, str] = {}
    for column_id, role in raw.items():
        coerced = coerce_role(role)
        if coerced is not None:
            result[str(column_id)] = coerced.value
    return result


def _decode_snapshot(raw: Any) -> DatasetSnapshot | None:
    if not isinstance(raw, Mapping):
        return None
    return DatasetSnapshot.from_dict(raw)


@dataclass(frozen=True)
class ProjectPayload:
    saved_at: str
    bom_a: DatasetSnapshot | None = None
    bom_b: DatasetSnapshot | None = None
    column_roles_a: Mapping[str, str] = field(default_factory=dict)
    column_roles_b: Mapping[str, str] = field(default_factory=dict)
    file_name_a: str | None = None
    file_name_b: str | None = None
    version: int = PAYLOAD_VERSION

    @staticmethod
    def empty(saved_at: str | None = None) -> ProjectPayload:
        return ProjectPayload(saved_at=saved_at or utc_now_iso())

    @property
    def is_empty(self) -> bool:
        return self.bom_a is None and self.bom_b is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "savedAt": self.saved_at,
            "bomA": self.bom_a.to_dict() if self.bom_a is not None else None,
            "bomB": self.bom_b.to_dict() if self.bom_b is not None else None,
            "columnRolesA": dict(self.column_roles_a),
            "columnRolesB": dict(self.column_roles_b),
            "fileNameA": self.file_name_a,
            "fileNameB": self.file_name_b,
        }

    @staticmethod
    def from_dict(data: Any, fallback_saved_at: str = "") -> ProjectPayload:
        """Decode a stored payload; a missing savedAt becomes ``fallback_saved_at``."""
        if not isinstance(data, Mapping):
            return ProjectPayload(saved_at=fallback_saved_at)
        version = data.get("version")
        return ProjectPayload(
            saved_at=str(data.get("savedAt") or fallback_saved_at),
            bom_a=_decode_snapshot(data.get("bomA")),
            bom_b=_decode_snapshot(data.get("bomB")),
            column_roles_a=decode_column_roles(data.get("columnRolesA")),
            column_roles_b=decode_column_roles(data.get("columnRolesB")),
            file_name_a=data.get("fileNameA") if isinstance(data.get("fileNameA"), str) else None,
            file_name_b=data.get("fileNameB") if isinstance(data.get("fileNameB"), str) else None,
            version=version if isinstance(version, int) else PAYLOAD_VERSION,
        )


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    name: str | None
    created_at: str
    updated_at: str
    data: ProjectPayload

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or "Untitled tab"

    def evolve(self, **changes: Any) -> ProjectRecord:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "data": self.data.to_dict(),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ProjectRecord:
        """Decode a stored record. Raises ValueError when the id is missing."""
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("project record without id")
        name = data.get("name")
        # 時刻欠落の古いレコード: 読み込みのたびに変わる値 (現在時刻) は使わない
        created = str(data.get("createdAt") or data.get("updatedAt") or "")
        updated = str(data.get("updatedAt") or created)
        return ProjectRecord(
            id=record_id,
            name=name if isinstance(name, str) else None,
            created_at=created,
            updated_at=updated,
            data=ProjectPayload.from_dict(data.get("data"), updated),
        )
