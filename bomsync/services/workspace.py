from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from ..models.dataset import ColumnRole, DatasetSnapshot, coerce_role
from ..models.project import utc_now_iso
from ..tables.normalizer import normalize_snapshot, role_assignments, set_column_role
from ..tables.preprocess import PreprocessOptions, apply_preprocess

"""Workspace: the two live dataset slots ("a" and "b") of one window.

Every component gets the Workspace injected. Only the session store writes
slots wholesale (restore / clear / file name hints, reason "restore"); the
orchestrator, the role editor and preprocessing change the snapshot content of
a slot.
"""

__all__ = [
    "SLOT_KEYS",
    "DatasetSlot",
    "Workspace",
    "WorkspaceListener",
]

logger = logging.getLogger(__name__)

SLOT_KEYS = ("a", "b")

# (slot key, reason) reason: load | roles | preprocess | replace | restore
WorkspaceListener = Callable[[str, str], None]


@dataclass(frozen=True)
class DatasetSlot:
    """State of one dataset slot.

    Attributes:
        snapshot: Normalized snapshot, None when nothing is loaded
        file_name: Display file name
        file_path: Source path of the last load (None after restore)
        last_updated: ISO timestamp of the last content change
        explicit_roles: Column role edits made by the operator (column id -> role)
        loading: True only while a file load is in flight
    """
    snapshot: DatasetSnapshot | None = None
    file_name: str | None = None
    file_path: str | None = None
    last_updated: str | None = None
    explicit_roles: Mapping[str, str] = field(default_factory=dict)
    loading: bool = False

    @property
    def loaded(self) -> bool:
        return self.snapshot is not None

    @property
    def column_roles(self) -> dict[str, str]:
        """Effective column id -> role map of the current snapshot."""
        if self.snapshot is None:
            return {}
        return role_assignments(self.snapshot)


def _check_key(key: str) -> str:
    if key not in SLOT_KEYS:
        raise KeyError(f"unknown dataset slot: {key!r}")
    return key


class Workspace:
    def __init__(self) -> None:
        self._slots: dict[str, DatasetSlot] = {key: DatasetSlot() for key in SLOT_KEYS}
        self._listeners: list[WorkspaceListener] = []

    # ---- observation -------------------------------------------------
    def slot(self, key: str) -> DatasetSlot:
        return self._slots[_check_key(key)]

    def snapshot(self, key: str) -> DatasetSnapshot | None:
        return self.slot(key).snapshot

    def both_loaded(self) -> bool:
        return all(slot.loaded for slot in self._slots.values())

    def any_loaded(self) -> bool:
        return any(slot.loaded for slot in self._slots.values())

    def add_listener(self, listener: WorkspaceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set(self, key: str, slot: DatasetSlot, reason: str) -> None:
        self._slots[key] = slot
        for listener in list(self._listeners):
            listener(key, reason)

    # ---- content changes (orchestrator / role editor) ----------------
    def set_loading(self, key: str, loading: bool) -> None:
        key = _check_key(key)
        self._slots[key] = replace(self._slots[key], loading=loading)

    def load_snapshot(
        self,
        key: str,
        snapshot: DatasetSnapshot,
        file_name: str | None,
        file_path: str | None = None,
    ) -> DatasetSnapshot:
        """Normalize a freshly parsed snapshot into the slot; earlier role edits are dropped."""
        key = _check_key(key)
        normalized = normalize_snapshot(snapshot)
        self._set(key, replace(
            self._slots[key],
            snapshot=normalized,
            file_name=file_name,
            file_path=file_path,
            last_updated=utc_now_iso(),
            explicit_roles={},
        ), "load")
        return normalized

    def set_column_role(self, key: str, column_id: str, role: ColumnRole | str | None) -> bool:
        """Record an explicit role edit. Returns False (no-op) for an empty slot or unknown column."""
        key = _check_key(key)
        current = self._slots[key]
        if current.snapshot is None or current.snapshot.column_index(column_id) is None:
            logger.debug("role edit ignored slot=%s column=%s", key, column_id)
            return False
        resolved = ColumnRole.IGNORE if role is None else coerce_role(role)
        if resolved is None:
            raise ValueError(f"unknown column role: {role!r}")
        edits = dict(current.explicit_roles)
        edits[column_id] = resolved.value
        updated = set_column_role(current.snapshot, column_id, resolved, edits)
        self._set(key, replace(
            current, snapshot=updated, explicit_roles=edits, last_updated=utc_now_iso()
        ), "roles")
        return True

    def apply_preprocess(self, key: str, options: PreprocessOptions) -> DatasetSnapshot | None:
        """Preprocess the slot's rows and re-normalize them with the slot's role edits.

        Returns None (no-op) for an empty slot. PreprocessError leaves the slot as it was.
        """
        key = _check_key(key)
        current = self._slots[key]
        if current.snapshot is None or not options.any_enabled:
            return current.snapshot
        processed = apply_preprocess(current.snapshot, options)
        normalized = normalize_snapshot(processed, current.explicit_roles)
        self._set(key, replace(current, snapshot=normalized, last_updated=utc_now_iso()), "preprocess")
        return normalized

    def replace_snapshot(self, key: str, snapshot: DatasetSnapshot) -> DatasetSnapshot:
        """Replace the slot content with a computed snapshot (keeps file name and role edits)."""
        key = _check_key(key)
        current = self._slots[key]
        normalized = normalize_snapshot(snapshot, current.explicit_roles)
        self._set(key, replace(current, snapshot=normalized, last_updated=utc_now_iso()), "replace")
        return normalized

    # ---- wholesale writes (session store only) -----------------------
    def restore(
        self,
        key: str,
        snapshot: DatasetSnapshot | None,
        roles: Mapping[str, Any] | None = None,
        file_name: str | None = None,
        saved_at: str | None = None,
    ) -> None:
        key = _check_key(key)
        edits: dict[str, str] = {}
        for column_id, role in (roles or {}).items():
            resolved = coerce_role(role)
            if resolved is not None:
                edits[column_id] = resolved.value
        normalized = normalize_snapshot(snapshot, edits) if snapshot is not None else None
        self._set(key, DatasetSlot(
            snapshot=normalized,
            file_name=file_name if normalized is not None else None,
            last_updated=saved_at if normalized is not None else None,
            explicit_roles=edits if normalized is not None else {},
            loading=self._slots[key].loading,
        ), "restore")

    def clear(self, key: str) -> None:
        key = _check_key(key)
        self._set(key, DatasetSlot(loading=self._slots[key].loading), "restore")

    def set_file_name_hint(self, key: str, file_name: str | None) -> None:
        key = _check_key(key)
        current = self._slots[key]
        if current.snapshot is None or current.file_name == file_name:
            return
        self._set(key, replace(current, file_name=file_name), "restore")
