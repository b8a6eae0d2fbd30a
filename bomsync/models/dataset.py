from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

"""Dataset snapshot model for the BOM comparison workspace.

A DatasetSnapshot is the parsed shape of one part-list table: positional rows of
string cells plus the column schema that makes them addressable (descriptors,
display order and the semantic role map).

The persisted (JSON) representation keeps the snake_case keys used by the
parser backend so that stored projects stay readable across versions.
"""

__all__ = [
    "ColumnRole",
    "ColumnMeta",
    "ParseIssue",
    "DatasetSnapshot",
    "ROLE_VALUES",
    "coerce_role",
]


class ColumnRole(str, Enum):
    """Semantic role of a column.

    REF / PART_NO / MANUFACTURER are the three visible roles; IGNORE marks a
    column the operator explicitly excluded.
    """
    REF = "ref"
    PART_NO = "part_no"
    MANUFACTURER = "manufacturer"
    IGNORE = "ignore"


ROLE_VALUES = frozenset(role.value for role in ColumnRole)

# 並び順: ref -> part_no -> manufacturer
SEMANTIC_ROLES: tuple[ColumnRole, ...] = (
    ColumnRole.REF,
    ColumnRole.PART_NO,
    ColumnRole.MANUFACTURER,
)


def coerce_role(value: Any) -> ColumnRole | None:
    """Return the ColumnRole for a stored value, or None when it is not a known role."""
    if isinstance(value, ColumnRole):
        return value
    if isinstance(value, str) and value in ROLE_VALUES:
        return ColumnRole(value)
    return None


@dataclass(frozen=True)
class ColumnMeta:
    id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class ParseIssue:
    """Structured issue attached to a snapshot (row/column are 0-based, optional)."""
    message: str
    severity: str = "warning"  # error | warning | info
    row: int | None = None
    column: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message, "severity": self.severity}
        if self.row is not None:
            data["row"] = self.row
        if self.column is not None:
            data["column"] = self.column
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ParseIssue:
        severity = data.get("severity") or "warning"
        if severity not in ("error", "warning", "info"):
            severity = "warning"
        row = data.get("row")
        column = data.get("column")
        return ParseIssue(
            message=str(data.get("message", "")),
            severity=severity,
            row=row if isinstance(row, int) else None,
            column=column if isinstance(column, int) else None,
        )


@dataclass(frozen=True)
class DatasetSnapshot:
    """Immutable parsed table.

    Attributes:
        rows: Positional rows; cell i belongs to columns[i]
        columns: Column descriptors (positional)
        column_roles: role -> column ids
        column_order: Display order of column ids
        guessed_roles: column id -> role guessed by header name
        guessed_columns: role -> column index guessed by position
        headers: Header cells as read from the source
        row_numbers: Source line number of each row (1-based)
        errors: Plain issue messages
        structured_errors: Issues with severity and optional cell position
    """
    rows: tuple[tuple[str, ...], ...] = ()
    columns: tuple[ColumnMeta, ...] = ()
    column_roles: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    column_order: tuple[str, ...] = ()
    guessed_roles: Mapping[str, str] = field(default_factory=dict)
    guessed_columns: Mapping[str, int] = field(default_factory=dict)
    headers: tuple[str, ...] = ()
    row_numbers: tuple[int, ...] = ()
    errors: tuple[str, ...] = ()
    structured_errors: tuple[ParseIssue, ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_ids(self) -> list[str]:
        return [column.id for column in self.columns]

    def column_index(self, column_id: str) -> int | None:
        for index, column in enumerate(self.columns):
            if column.id == column_id:
                return index
        return None

    def role_indices(self, role: ColumnRole | str) -> list[int]:
        """Descriptor indices holding ``role`` in display order."""
        key = role.value if isinstance(role, ColumnRole) else role
        indices = []
        for column_id in self.column_roles.get(key, ()):
            index = self.column_index(column_id)
            if index is not None:
                indices.append(index)
        return indices

    def cell(self, row_index: int, column_index: int) -> str:
        if row_index < 0 or row_index >= len(self.rows):
            return ""
        row = self.rows[row_index]
        return row[column_index] if column_index < len(row) else ""

    def evolve(self, **changes: Any) -> DatasetSnapshot:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [list(row) for row in self.rows],
            "columns": [column.to_dict() for column in self.columns],
            "column_roles": {role: list(ids) for role, ids in self.column_roles.items()},
            "column_order": list(self.column_order),
            "guessed_roles": dict(self.guessed_roles),
            "guessed_columns": dict(self.guessed_columns),
            "headers": list(self.headers),
            "row_numbers": list(self.row_numbers),
            "errors": list(self.errors),
            "structured_errors": [issue.to_dict() for issue in self.structured_errors],
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DatasetSnapshot:
        """Build a snapshot from its persisted dict, tolerating missing or malformed keys."""
        rows = tuple(
            tuple("" if cell is None else str(cell) for cell in row)
            for row in (data.get("rows") or [])
            if isinstance(row, (list, tuple))
        )
        columns = tuple(
            ColumnMeta(id=str(c.get("id")), name=str(c.get("name") or ""))
            for c in (data.get("columns") or [])
            if isinstance(c, Mapping) and c.get("id") is not None
        )
        raw_roles = data.get("column_roles") or {}
        column_roles: dict[str, tuple[str, ...]] = {}
        if isinstance(raw_roles, Mapping):
            for role, ids in raw_roles.items():
                if role in ROLE_VALUES and isinstance(ids, (list, tuple)):
                    column_roles[role] = tuple(str(i) for i in ids)
        raw_guessed_roles = data.get("guessed_roles") or {}
        guessed_roles = {
            str(k): v for k, v in raw_guessed_roles.items()
            if isinstance(v, str) and v in ROLE_VALUES
        } if isinstance(raw_guessed_roles, Mapping) else {}
        raw_guessed_columns = data.get("guessed_columns") or {}
        guessed_columns = {
            k: v for k, v in raw_guessed_columns.items()
            if k in ROLE_VALUES and isinstance(v, int) and not isinstance(v, bool)
        } if isinstance(raw_guessed_columns, Mapping) else {}
        return DatasetSnapshot(
            rows=rows,
            columns=columns,
            column_roles=column_roles,
            column_order=tuple(str(i) for i in (data.get("column_order") or [])),
            guessed_roles=guessed_roles,
            guessed_columns=guessed_columns,
            headers=tuple("" if h is None else str(h) for h in (data.get("headers") or [])),
            row_numbers=tuple(n for n in (data.get("row_numbers") or []) if isinstance(n, int)),
            errors=tuple(str(e) for e in (data.get("errors") or [])),
            structured_errors=tuple(
                ParseIssue.from_dict(e)
                for e in (data.get("structured_errors") or [])
                if isinstance(e, Mapping)
            ),
        )

    @staticmethod
    def from_rows(
        rows: list[list[str]],
        headers: list[str] | None = None,
        roles: Mapping[str, list[str]] | None = None,
    ) -> DatasetSnapshot:
        """Convenience constructor: positional ``col-<i>`` ids named after ``headers``."""
        width = max([len(headers or [])] + [len(r) for r in rows]) if (rows or headers) else 0
        names = list(headers or [])
        columns = tuple(
            ColumnMeta(id=f"col-{i}", name=names[i] if i < len(names) else f"Column {i + 1}")
            for i in range(width)
        )
        return DatasetSnapshot(
            rows=tuple(tuple(row) for row in rows),
            columns=columns,
            column_roles={k: tuple(v) for k, v in (roles or {}).items()},
            column_order=tuple(c.id for c in columns),
            headers=tuple(c.name for c in columns),
            row_numbers=tuple(range(1, len(rows) + 1)),
        )
