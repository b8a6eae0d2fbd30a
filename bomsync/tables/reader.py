from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pandas as pd

from ..backend import BackendOperationFailed
from ..models.dataset import ColumnMeta, ColumnRole, DatasetSnapshot, ParseIssue

"""Part-list table reader (in-process implementation of ``parse``).

- 最初の空でない行をヘッダ行、それ以降の空でない行をデータ行として扱う
- 全セルを文字列として保持 (NA 変換なし、空セルは "")
- ヘッダ名から role を推定 (guessed_roles / guessed_columns)
"""

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "guess_column_role",
    "read_table_frame",
    "frame_to_snapshot",
    "parse_table",
]

CSV_EXTENSIONS = {".csv": ",", ".tsv": "\t", ".txt": None}
EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}
SUPPORTED_EXTENSIONS = frozenset(CSV_EXTENSIONS) | EXCEL_EXTENSIONS

_REF_NAMES = {"ref", "reference", "refdesignator", "designator", "refdes"}
_PART_NAMES = {"partno", "partnumber", "partnr", "part", "mpn"}
_MANUFACTURER_NAMES = {"manufacturer", "mfr", "mfg", "maker", "vendor"}
_NAME_NOISE = re.compile(r"[\s_\-]+")


def guess_column_role(name: str) -> ColumnRole:
    """Guess a column role from its header name (IGNORE when nothing matches)."""
    key = _NAME_NOISE.sub("", str(name)).lower()
    if not key:
        return ColumnRole.IGNORE
    if key in _REF_NAMES or (key.startswith("ref") and len(key) <= 5):
        return ColumnRole.REF
    if key in _PART_NAMES:
        return ColumnRole.PART_NO
    if key in _MANUFACTURER_NAMES:
        return ColumnRole.MANUFACTURER
    return ColumnRole.IGNORE


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        # Excel の整数セル (100.0) は "100" として扱う
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def read_table_frame(path: Path) -> pd.DataFrame:
    """Read the raw grid (no header handling) of a CSV/TSV/Excel file."""
    suffix = path.suffix.lower()
    try:
        if suffix in CSV_EXTENSIONS:
            sep = CSV_EXTENSIONS[suffix]
            return pd.read_csv(
                path,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                sep=sep,
                engine="python" if sep is None else "c",
                encoding="utf-8-sig",
            )
        if suffix in EXCEL_EXTENSIONS:
            return pd.read_excel(path, sheet_name=0, header=None, engine="openpyxl")
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except (OSError, ValueError, pd.errors.ParserError) as e:
        raise BackendOperationFailed(f"failed to read {path.name}: {e}") from e
    raise BackendOperationFailed(f"unsupported file type: {path.name}")


def frame_to_snapshot(df: pd.DataFrame) -> DatasetSnapshot:
    """Build the raw snapshot from a header-less grid.

    Steps:
    1. Skip leading blank rows; the first non-blank row is the header
    2. Remaining non-blank rows become data rows (source line kept in row_numbers)
    3. Guess roles by header name
    4. Report blank / duplicated ref values as warnings
    """
    lines: list[tuple[int, list[str]]] = []
    for position, raw in enumerate(df.itertuples(index=False, name=None)):
        cells = [_cell_text(value) for value in raw]
        while cells and cells[-1] == "":
            cells.pop()
        if cells:
            lines.append((position + 1, cells))

    if not lines:
        return DatasetSnapshot(
            structured_errors=(ParseIssue(message="no header row found", severity="info"),),
            errors=("no header row found",),
        )

    _, header_cells = lines[0]
    data = lines[1:]
    width = max(len(cells) for _, cells in lines)

    columns = tuple(
        ColumnMeta(
            id=f"col-{index}",
            name=(header_cells[index] if index < len(header_cells) else "") or f"Column {index + 1}",
        )
        for index in range(width)
    )
    guessed_roles: dict[str, str] = {}
    guessed_columns: dict[str, int] = {}
    for index, column in enumerate(columns):
        header = header_cells[index] if index < len(header_cells) else ""
        role = guess_column_role(header)
        if role is ColumnRole.IGNORE:
            continue
        guessed_roles[column.id] = role.value
        guessed_columns.setdefault(role.value, index)

    rows = tuple(tuple(cells) + ("",) * (width - len(cells)) for _, cells in data)

    issues: list[ParseIssue] = []
    ref_index = guessed_columns.get(ColumnRole.REF.value)
    if ref_index is not None:
        seen: dict[str, int] = {}
        for row_index, row in enumerate(rows):
            ref = row[ref_index]
            if ref == "":
                issues.append(ParseIssue(
                    message=f"row {data[row_index][0]}: ref is empty",
                    row=row_index, column=ref_index,
                ))
            elif ref in seen:
                issues.append(ParseIssue(
                    message=f"row {data[row_index][0]}: duplicated ref '{ref}'",
                    row=row_index, column=ref_index,
                ))
            else:
                seen[ref] = row_index

    return DatasetSnapshot(
        rows=rows,
        columns=columns,
        column_order=tuple(column.id for column in columns),
        guessed_roles=guessed_roles,
        guessed_columns=guessed_columns,
        headers=tuple(column.name for column in columns),
        row_numbers=tuple(line for line, _ in data),
        errors=tuple(issue.message for issue in issues),
        structured_errors=tuple(issues),
    )


def parse_table(path: Path) -> DatasetSnapshot:
    """Parse ``path`` into a raw (not yet normalized) snapshot."""
    path = Path(path)
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise BackendOperationFailed(f"unsupported file type: {path.name}")
    if not path.is_file():
        raise BackendOperationFailed(f"file not found: {path}")
    return frame_to_snapshot(read_table_frame(path))
