from __future__ import annotations

import logging
from pathlib import Path

from ..models.dataset import SEMANTIC_ROLES, ColumnRole, DatasetSnapshot
from ..models.diff import DiffRow
from ..tables.reader import parse_table
from . import BackendOperationFailed, FileIOFailed

"""In-process reference backend.

compare:
    rows are keyed by their ref value (first non-empty ref cell). A rows come
    first in A order (unchanged / modified / removed), then B rows without a
    partner in B order (added).
merge_and_append:
    A rows are updated from their partner B row (non-blank B cells overwrite),
    every other A row is kept and unmatched B rows are appended in B order,
    projected onto A's column layout.

Partners are paired first-come: an A row takes the first B row with the same
ref that no earlier A row has taken.
"""

__all__ = ["LocalBackend", "match_columns"]

logger = logging.getLogger(__name__)


def _ref_indices(snapshot: DatasetSnapshot, label: str) -> list[int]:
    indices = snapshot.role_indices(ColumnRole.REF)
    if not indices:
        raise BackendOperationFailed(f"dataset {label} has no ref column")
    return indices


def _ref_value(snapshot: DatasetSnapshot, row_index: int, ref_indices: list[int]) -> str:
    for column_index in ref_indices:
        value = snapshot.cell(row_index, column_index).strip()
        if value:
            return value
    return ""


def match_columns(snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot) -> dict[int, int]:
    """Map A descriptor index -> B descriptor index.

    Role columns pair up by their position inside the role; the remaining
    columns pair up by case-insensitive display name.
    """
    mapping: dict[int, int] = {}
    used_b: set[int] = set()
    for role in SEMANTIC_ROLES:
        for a_index, b_index in zip(
            snapshot_a.role_indices(role), snapshot_b.role_indices(role), strict=False
        ):
            mapping[a_index] = b_index
            used_b.add(b_index)

    ignored_a = set(snapshot_a.role_indices(ColumnRole.IGNORE))
    b_by_name: dict[str, int] = {}
    for b_index, column in enumerate(snapshot_b.columns):
        if b_index in used_b:
            continue
        b_by_name.setdefault(column.name.strip().lower(), b_index)
    for a_index, column in enumerate(snapshot_a.columns):
        if a_index in mapping or a_index in ignored_a:
            continue
        b_index = b_by_name.pop(column.name.strip().lower(), None)
        if b_index is not None:
            mapping[a_index] = b_index
    return mapping


def _pair_rows(
    snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot
) -> tuple[list[int | None], list[int]]:
    """Partner B index for every A row, plus the unmatched B indices in B order."""
    refs_a = _ref_indices(snapshot_a, "A")
    refs_b = _ref_indices(snapshot_b, "B")

    available: dict[str, list[int]] = {}
    for b_index in range(snapshot_b.row_count):
        available.setdefault(_ref_value(snapshot_b, b_index, refs_b), []).append(b_index)

    partners: list[int | None] = []
    used: set[int] = set()
    for a_index in range(snapshot_a.row_count):
        candidates = available.get(_ref_value(snapshot_a, a_index, refs_a))
        if candidates:
            b_index = candidates.pop(0)
            used.add(b_index)
            partners.append(b_index)
        else:
            partners.append(None)
    unmatched = [b_index for b_index in range(snapshot_b.row_count) if b_index not in used]
    return partners, unmatched


class LocalBackend:
    """Backend implementation running parse/compare/merge in-process."""

    def parse(self, path: Path) -> DatasetSnapshot:
        return parse_table(Path(path))

    def compare(self, snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot) -> list[DiffRow]:
        partners, unmatched = _pair_rows(snapshot_a, snapshot_b)
        columns = match_columns(snapshot_a, snapshot_b)
        refs_a = snapshot_a.role_indices(ColumnRole.REF)
        refs_b = snapshot_b.role_indices(ColumnRole.REF)
        compared = [i for i in sorted(columns) if i not in refs_a]

        diffs: list[DiffRow] = []
        for a_index, b_index in enumerate(partners):
            ref = _ref_value(snapshot_a, a_index, refs_a)
            if b_index is None:
                diffs.append(DiffRow(status="removed", ref_value=ref, a_index=a_index))
                continue
            changed = tuple(
                snapshot_a.columns[i].name
                for i in compared
                if snapshot_a.cell(a_index, i).strip() != snapshot_b.cell(b_index, columns[i]).strip()
            )
            diffs.append(DiffRow(
                status="modified" if changed else "unchanged",
                ref_value=ref,
                a_index=a_index,
                b_index=b_index,
                changed_columns=changed,
            ))
        for b_index in unmatched:
            diffs.append(DiffRow(
                status="added",
                ref_value=_ref_value(snapshot_b, b_index, refs_b),
                b_index=b_index,
            ))
        logger.debug("compare: %d A rows, %d B rows -> %d diffs",
                     snapshot_a.row_count, snapshot_b.row_count, len(diffs))
        return diffs

    def merge_and_append(
        self, snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot
    ) -> DatasetSnapshot:
        partners, unmatched = _pair_rows(snapshot_a, snapshot_b)
        columns = match_columns(snapshot_a, snapshot_b)
        width = len(snapshot_a.columns)

        merged: list[tuple[str, ...]] = []
        for a_index, b_index in enumerate(partners):
            row = [snapshot_a.cell(a_index, i) for i in range(width)]
            if b_index is not None:
                for i, j in columns.items():
                    value = snapshot_b.cell(b_index, j)
                    if value.strip():
                        row[i] = value
            merged.append(tuple(row))
        for b_index in unmatched:
            merged.append(tuple(
                snapshot_b.cell(b_index, columns[i]) if i in columns else ""
                for i in range(width)
            ))

        return snapshot_a.evolve(
            rows=tuple(merged),
            row_numbers=tuple(range(1, len(merged) + 1)),
            errors=(),
            structured_errors=(),
        )

    def read_text_file(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileIOFailed(f"failed to read {path}: {e}") from e

    def write_text_file(self, path: Path, content: str) -> None:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FileIOFailed(f"failed to write {path}: {e}") from e
