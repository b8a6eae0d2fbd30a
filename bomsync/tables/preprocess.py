from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from ..backend import BackendOperationFailed
from ..models.dataset import ColumnRole, DatasetSnapshot

"""Per-dataset preprocessing.

Steps run in a fixed order, each one optional:

1. expand_ref   "C1-C5" -> C1, C2, C3, C4, C5 (one row each)
2. split_ref    "C1, C2" -> one row per reference
3. fill_blank   blank cells take the value above them (every column but Ref)
4. cleanse      drop parentheses, full-width ASCII -> half-width

Rows created from one source row keep its line number. The result is a raw
snapshot; the caller re-normalizes it with the slot's role edits.
"""

__all__ = [
    "PreprocessError",
    "PreprocessOptions",
    "expand_reference",
    "split_reference_rows",
    "fill_blank_cells",
    "cleanse_text",
    "cleanse_snapshot",
    "apply_preprocess",
]

logger = logging.getLogger(__name__)


class PreprocessError(BackendOperationFailed):
    """A preprocessing step rejected the data (e.g. an inverted Ref range)."""


@dataclass(frozen=True)
class PreprocessOptions:
    expand_ref: bool = False
    split_ref: bool = False
    fill_blank: bool = False
    cleanse: bool = False

    @property
    def any_enabled(self) -> bool:
        return self.expand_ref or self.split_ref or self.fill_blank or self.cleanse


_RANGE = re.compile(r"^([A-Za-z]*)([0-9]+)-([A-Za-z]*)([0-9]+)$")

# 括弧 (半角/全角) は削除、全角 ASCII (U+FF01-FF5E) と全角スペースは半角へ
_CLEANSE_TABLE = {ord(c): None for c in "()（）"}
_CLEANSE_TABLE.update({code: code - 0xFEE0 for code in range(0xFF01, 0xFF5F)})
_CLEANSE_TABLE[0x3000] = ord(" ")


def _ref_index(snapshot: DatasetSnapshot) -> int | None:
    indices = snapshot.role_indices(ColumnRole.REF)
    return indices[0] if indices else None


def _row_numbers(snapshot: DatasetSnapshot) -> list[int]:
    numbers = list(snapshot.row_numbers[: snapshot.row_count])
    numbers.extend(range(len(numbers) + 1, snapshot.row_count + 1))
    return numbers


def _with_ref(row: tuple[str, ...], index: int, value: str) -> tuple[str, ...]:
    cells = list(row) + [""] * (index + 1 - len(row))
    cells[index] = value
    return tuple(cells)


def _parse_range(value: str) -> tuple[str, int, int] | None:
    m = _RANGE.match(value)
    if m is None:
        return None
    start_prefix, start, end_prefix, end = m.groups()
    prefix = start_prefix or end_prefix
    if not prefix:
        return None
    if end_prefix and end_prefix != prefix:
        return None
    return prefix, int(start), int(end)


def _rebuild(
    snapshot: DatasetSnapshot, rows: Iterator[tuple[int, tuple[str, ...]]]
) -> DatasetSnapshot:
    new_rows: list[tuple[str, ...]] = []
    new_numbers: list[int] = []
    for number, row in rows:
        new_numbers.append(number)
        new_rows.append(row)
    return snapshot.evolve(rows=tuple(new_rows), row_numbers=tuple(new_numbers))


def expand_reference(snapshot: DatasetSnapshot) -> DatasetSnapshot:
    """Expand "C1-C5" style Ref ranges into one row per reference.

    Raises PreprocessError when a range runs backwards ("C5-C1").
    """
    index = _ref_index(snapshot)
    if index is None:
        return snapshot

    def rows() -> Iterator[tuple[int, tuple[str, ...]]]:
        for number, row in zip(_row_numbers(snapshot), snapshot.rows):
            raw = row[index] if index < len(row) else ""
            parsed = _parse_range(raw.replace(" ", ""))
            if parsed is None:
                yield number, row
                continue
            prefix, start, end = parsed
            if end < start:
                raise PreprocessError(f"invalid Ref range: {raw}")
            for n in range(start, end + 1):
                yield number, _with_ref(row, index, f"{prefix}{n}")

    return _rebuild(snapshot, rows())


def split_reference_rows(snapshot: DatasetSnapshot) -> DatasetSnapshot:
    """One row per comma-separated reference ("C1, C2" -> 2 rows)."""
    index = _ref_index(snapshot)
    if index is None:
        return snapshot

    def rows() -> Iterator[tuple[int, tuple[str, ...]]]:
        for number, row in zip(_row_numbers(snapshot), snapshot.rows):
            raw = row[index] if index < len(row) else ""
            references = [part.strip() for part in raw.split(",") if part.strip()]
            if len(references) <= 1:
                yield number, row
                continue
            for reference in references:
                yield number, _with_ref(row, index, reference)

    return _rebuild(snapshot, rows())


def fill_blank_cells(snapshot: DatasetSnapshot) -> DatasetSnapshot:
    """Fill blank cells with the last non-blank value of the same column (Ref excluded)."""
    ref_columns = set(snapshot.role_indices(ColumnRole.REF))
    previous: dict[int, str] = {}
    rows: list[tuple[str, ...]] = []
    for row in snapshot.rows:
        cells = list(row)
        for i, value in enumerate(cells):
            if i in ref_columns:
                continue
            if value.strip() == "":
                if i in previous:
                    cells[i] = previous[i]
            else:
                previous[i] = value
        rows.append(tuple(cells))
    return snapshot.evolve(rows=tuple(rows))


def cleanse_text(value: str) -> str:
    return value.translate(_CLEANSE_TABLE)


def cleanse_snapshot(snapshot: DatasetSnapshot) -> DatasetSnapshot:
    rows = tuple(tuple(cleanse_text(cell) for cell in row) for row in snapshot.rows)
    return snapshot.evolve(rows=rows)


def apply_preprocess(snapshot: DatasetSnapshot, options: PreprocessOptions) -> DatasetSnapshot:
    """Run the enabled steps in order and return the processed snapshot."""
    result = snapshot
    if options.expand_ref:
        result = expand_reference(result)
    if options.split_ref:
        result = split_reference_rows(result)
    if options.fill_blank:
        result = fill_blank_cells(result)
    if options.cleanse:
        result = cleanse_snapshot(result)
    logger.debug("preprocess %s rows %d -> %d", options, snapshot.row_count, result.row_count)
    return result
