from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from ..models.dataset import (
    SEMANTIC_ROLES,
    ColumnMeta,
    ColumnRole,
    DatasetSnapshot,
    coerce_role,
)

"""Column-role normalization.

Turns a raw parsed snapshot plus role evidence into a canonical snapshot:

1. Resolve every column (positional: descriptor i <-> row cell i), including
   the ones implied by the widest row / header count and evidence-only ids
2. Reconcile role evidence, highest precedence first:
   explicit edits > snapshot role map > guessed by name > guessed by index
3. Build the display order: ref, part_no, manufacturer groups, then the input
   order, then remaining role-evidence columns, then the rest
4. Display names: a blank or "Column N" source header of a role column shows
   the role label; ``headers`` keeps the source cells so the label follows
   later role changes

Every function here is pure; a new DatasetSnapshot is returned and the input is
never touched.
"""

__all__ = [
    "CANONICAL_LABELS",
    "canonical_label",
    "display_name",
    "resolve_columns",
    "reconcile_roles",
    "build_column_order",
    "normalize_snapshot",
    "set_column_role",
    "role_assignments",
]

CANONICAL_LABELS: dict[ColumnRole, str] = {
    ColumnRole.REF: "Ref",
    ColumnRole.PART_NO: "Part_No",
    ColumnRole.MANUFACTURER: "Manufacturer",
}

_PLACEHOLDER_NAME = re.compile(r"^column\s*\d+$", re.IGNORECASE)

# role map の走査順 (同一列が複数 role に載っている場合は先勝ち)
_ROLE_SCAN_ORDER: tuple[ColumnRole, ...] = SEMANTIC_ROLES + (ColumnRole.IGNORE,)


def canonical_label(role: ColumnRole | str) -> str | None:
    coerced = coerce_role(role)
    if coerced is None:
        return None
    return CANONICAL_LABELS.get(coerced)


def _is_placeholder(name: str) -> bool:
    stripped = name.strip()
    return stripped == "" or _PLACEHOLDER_NAME.match(stripped) is not None


def display_name(source: str, role: ColumnRole | None, index: int) -> str:
    """Name shown for a column whose source header is ``source``."""
    if not _is_placeholder(source):
        return source
    label = CANONICAL_LABELS.get(role) if role is not None else None
    if label is not None:
        return label
    return source if source.strip() else f"Column {index + 1}"


def _unique_id(candidate: str, taken: set[str]) -> str:
    if candidate not in taken:
        return candidate
    suffix = 1
    while f"{candidate}-{suffix}" in taken:
        suffix += 1
    return f"{candidate}-{suffix}"


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for column_id in ids:
        if column_id not in seen:
            seen.add(column_id)
            result.append(column_id)
    return result


def _evidence_ids(snapshot: DatasetSnapshot) -> list[str]:
    ids: list[str] = []
    for role in _ROLE_SCAN_ORDER:
        ids.extend(snapshot.column_roles.get(role.value, ()))
    ids.extend(snapshot.guessed_roles)
    return _dedupe(ids)


def resolve_columns(snapshot: DatasetSnapshot) -> list[ColumnMeta]:
    """Every column of ``snapshot``, with its source header as the name.

    Descriptors come first, then one column per index implied by the widest
    row, the header count or (without descriptors) the order length, then ids
    that only appear in the snapshot's own role evidence.
    """
    headers = snapshot.headers
    order = () if snapshot.columns else snapshot.column_order

    columns: list[ColumnMeta] = []
    taken: set[str] = set()
    for index, column in enumerate(snapshot.columns):
        name = headers[index] if index < len(headers) else column.name
        columns.append(ColumnMeta(id=column.id, name=name))
        taken.add(column.id)

    width = max([len(columns), len(headers), len(order)] + [len(row) for row in snapshot.rows])
    for index in range(len(columns), width):
        column_id = _unique_id(order[index] if index < len(order) else f"col-{index}", taken)
        taken.add(column_id)
        if index < len(headers):
            name = headers[index]
        elif index < len(order):
            name = order[index]
        else:
            name = ""
        columns.append(ColumnMeta(id=column_id, name=name))

    # role evidence only (descriptor 無し) の列は末尾に追加
    for column_id in _evidence_ids(snapshot):
        if column_id not in taken:
            taken.add(column_id)
            columns.append(ColumnMeta(id=column_id, name=""))
    return columns


def reconcile_roles(
    snapshot: DatasetSnapshot,
    columns: list[ColumnMeta],
    explicit_roles: Mapping[str, ColumnRole | str | None] | None = None,
) -> dict[str, ColumnRole]:
    """Merge role evidence into one column id -> role assignment.

    ``columns`` must come from :func:`resolve_columns`. Earlier sources are
    never overwritten by later ones; explicit edits for ids outside
    ``columns`` are dropped.
    """
    known = {column.id for column in columns}
    assignments: dict[str, ColumnRole] = {}

    for column_id, role in (explicit_roles or {}).items():
        if column_id not in known:
            continue
        resolved = ColumnRole.IGNORE if role is None else coerce_role(role)
        if resolved is not None:
            assignments[column_id] = resolved

    for role in _ROLE_SCAN_ORDER:
        for column_id in snapshot.column_roles.get(role.value, ()):
            assignments.setdefault(column_id, role)

    for column_id, raw_role in snapshot.guessed_roles.items():
        role = coerce_role(raw_role)
        if role is not None:
            assignments.setdefault(column_id, role)

    for raw_role, index in snapshot.guessed_columns.items():
        role = coerce_role(raw_role)
        if role is None or not isinstance(index, int):
            continue
        if 0 <= index < len(columns):
            assignments.setdefault(columns[index].id, role)

    return assignments


def build_column_order(
    columns: list[ColumnMeta],
    assignments: Mapping[str, ColumnRole],
    original_order: Iterable[str],
) -> list[str]:
    """Display order over ``columns`` (which must already cover every assignment)."""
    known = {column.id for column in columns}
    input_order = [cid for cid in _dedupe(original_order) if cid in known]
    sequence = _dedupe(input_order + [column.id for column in columns])

    order: list[str] = []
    placed: set[str] = set()

    def place(column_id: str) -> None:
        if column_id not in placed:
            placed.add(column_id)
            order.append(column_id)

    for role in SEMANTIC_ROLES:
        for column_id in sequence:
            if assignments.get(column_id) == role:
                place(column_id)
    for column_id in input_order:
        place(column_id)
    for column_id in assignments:
        if column_id in known:
            place(column_id)
    for column in columns:
        place(column.id)
    return order


def normalize_snapshot(
    snapshot: DatasetSnapshot,
    explicit_roles: Mapping[str, ColumnRole | str | None] | None = None,
) -> DatasetSnapshot:
    """Run one normalization pass and return the canonical snapshot."""
    sources = resolve_columns(snapshot)
    assignments = reconcile_roles(snapshot, sources, explicit_roles)

    named = [
        ColumnMeta(id=column.id, name=display_name(column.name, assignments.get(column.id), index))
        for index, column in enumerate(sources)
    ]

    order = build_column_order(named, assignments, snapshot.column_order)
    position = {column_id: index for index, column_id in enumerate(order)}

    column_roles: dict[str, tuple[str, ...]] = {}
    for role in _ROLE_SCAN_ORDER:
        ids = sorted(
            (cid for cid, assigned in assignments.items() if assigned == role),
            key=position.__getitem__,
        )
        if ids:
            column_roles[role.value] = tuple(ids)

    guessed_roles = {
        cid: assignments[cid].value for cid in order if cid in assignments
    }
    guessed_columns: dict[str, int] = {}
    for index, column in enumerate(named):
        role = assignments.get(column.id)
        if role is not None and role.value not in guessed_columns:
            guessed_columns[role.value] = index

    total = len(named)
    rows = tuple(
        tuple(row) if len(row) == total else tuple(row) + ("",) * (total - len(row))
        for row in snapshot.rows
    )
    row_numbers = list(snapshot.row_numbers[: len(rows)])
    row_numbers.extend(range(len(row_numbers) + 1, len(rows) + 1))

    return DatasetSnapshot(
        rows=rows,
        columns=tuple(named),
        column_roles=column_roles,
        column_order=tuple(order),
        guessed_roles=guessed_roles,
        guessed_columns=guessed_columns,
        headers=tuple(column.name for column in sources),
        row_numbers=tuple(row_numbers),
        errors=snapshot.errors,
        structured_errors=snapshot.structured_errors,
    )


def role_assignments(snapshot: DatasetSnapshot) -> dict[str, str]:
    """Column id -> role value as recorded in the snapshot's role map."""
    result: dict[str, str] = {}
    for role in _ROLE_SCAN_ORDER:
        for column_id in snapshot.column_roles.get(role.value, ()):
            result.setdefault(column_id, role.value)
    return result


def set_column_role(
    snapshot: DatasetSnapshot,
    column_id: str,
    role: ColumnRole | str | None,
    explicit_roles: Mapping[str, ColumnRole | str | None] | None = None,
) -> DatasetSnapshot:
    """Assign ``role`` to ``column_id`` (None clears it to ignore) and re-normalize.

    ``explicit_roles`` carries earlier edits of the session so they keep their
    precedence. Unknown column ids leave the snapshot unchanged.
    """
    if snapshot.column_index(column_id) is None:
        return snapshot
    edits = dict(explicit_roles or {})
    edits[column_id] = ColumnRole.IGNORE if role is None else role
    return normalize_snapshot(snapshot, edits)
