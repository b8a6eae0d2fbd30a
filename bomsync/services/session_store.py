from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from ..logging.activity_log import ActivityLogBuffer
from ..models.project import ProjectPayload, ProjectRecord, utc_now_iso
from ..storage.repository import (
    ACTIVE_PROJECT_KEY,
    FAVORITE_ARCHIVE_KEY,
    FAVORITES_KEY,
    PROJECTS_KEY,
    ProjectRepository,
)
from .autosave import DEFAULT_AUTOSAVE_DELAY, TimerQueue
from .workspace import Workspace

"""Project session store.

Owns the project (tab) list, the active project pointer, favorites with their
tombstone archive, debounced autosave and reconciliation with other windows
writing the same storage.

Invariants kept here:
- every favorited id resolves to a live or an archived record
- once a project exists, deleting projects never leaves a null pointer
  (the last delete creates a fresh empty project)
- the store is the only writer of whole workspace slots

Reconciliation with other windows never raises; stale or missing data falls
back to the first project, or to an empty state with a null pointer.
"""

__all__ = [
    "DEFAULT_PROJECT_LIMIT",
    "AUTOSAVE_TIMER_ID",
    "SessionStore",
    "SessionListener",
]

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_LIMIT = 50
AUTOSAVE_TIMER_ID = "autosave"
PROJECT_ID_PREFIX = "project-"
_NO_AUTOSAVE_REASONS = frozenset({"restore", "replace"})

SessionListener = Callable[[ProjectRecord | None], None]


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(
        self,
        repository: ProjectRepository,
        workspace: Workspace,
        timers: TimerQueue | None = None,
        *,
        autosave_delay: float = DEFAULT_AUTOSAVE_DELAY,
        project_limit: int = DEFAULT_PROJECT_LIMIT,
        activity: ActivityLogBuffer | None = None,
        id_clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self.repository = repository
        self.workspace = workspace
        self.timers = timers or TimerQueue()
        self.autosave_delay = autosave_delay
        self.project_limit = max(1, project_limit)
        self.activity = activity or ActivityLogBuffer()
        self._id_clock = id_clock

        self._projects: list[ProjectRecord] = []
        self._active_id: str | None = None
        self._favorites: list[str] = []
        self._archive: dict[str, ProjectRecord] = {}
        self._applied_saved_at: str | None = None
        self._listeners: list[SessionListener] = []

        self._unsubscribe_storage = repository.adapter.on_change(None, self._on_storage_change)
        self._unsubscribe_workspace = workspace.add_listener(self._on_workspace_change)

    # ---- observation -------------------------------------------------
    @property
    def projects(self) -> list[ProjectRecord]:
        return list(self._projects)

    @property
    def active_project_id(self) -> str | None:
        return self._active_id

    @property
    def active_project(self) -> ProjectRecord | None:
        return self.get_project(self._active_id) if self._active_id else None

    @property
    def favorites(self) -> list[str]:
        return list(self._favorites)

    @property
    def archive(self) -> dict[str, ProjectRecord]:
        return dict(self._archive)

    def get_project(self, project_id: str) -> ProjectRecord | None:
        for record in self._projects:
            if record.id == project_id:
                return record
        return None

    def is_favorite(self, project_id: str) -> bool:
        return project_id in self._favorites

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        active = self.active_project
        for listener in list(self._listeners):
            listener(active)

    def _record_activity(self, project_id: str | None, action: str, message: str) -> None:
        self.activity.record(project_id, action, message)
        logger.info(message)

    # ---- internal helpers --------------------------------------------
    def _new_id(self) -> str:
        taken = {record.id for record in self._projects} | set(self._archive)
        stamp = self._id_clock()
        while f"{PROJECT_ID_PREFIX}{stamp}" in taken:
            stamp += 1
        return f"{PROJECT_ID_PREFIX}{stamp}"

    def _default_name(self) -> str:
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        file_name = self.workspace.slot("a").file_name
        return f"{file_name} {stamp}" if file_name else f"Tab {stamp}"

    def _build_payload(self) -> ProjectPayload:
        slot_a = self.workspace.slot("a")
        slot_b = self.workspace.slot("b")
        return ProjectPayload(
            saved_at=utc_now_iso(),
            bom_a=slot_a.snapshot,
            bom_b=slot_b.snapshot,
            column_roles_a=dict(slot_a.explicit_roles),
            column_roles_b=dict(slot_b.explicit_roles),
            file_name_a=slot_a.file_name if slot_a.loaded else None,
            file_name_b=slot_b.file_name if slot_b.loaded else None,
        )

    def _set_active(self, project_id: str | None) -> None:
        if project_id != self._active_id:
            self.cancel_autosave()
        self._active_id = project_id
        self.repository.save_active_id(project_id)

    def _apply_record(self, record: ProjectRecord) -> None:
        """Overwrite both slots with the record's saved data."""
        self.cancel_autosave()
        data = record.data
        self.workspace.restore("a", data.bom_a, data.column_roles_a, data.file_name_a, data.saved_at)
        self.workspace.restore("b", data.bom_b, data.column_roles_b, data.file_name_b, data.saved_at)
        self._applied_saved_at = data.saved_at

    def _reset_slots(self) -> None:
        self.cancel_autosave()
        self.workspace.clear("a")
        self.workspace.clear("b")
        self._applied_saved_at = None

    def _persist_projects(self) -> None:
        self.repository.save_projects(self._projects)

    def _upsert_archive(self, record: ProjectRecord) -> None:
        self._archive[record.id] = record
        self.repository.save_archive(self._archive)

    def _enforce_limit(self, keep: str | None = None) -> None:
        excess = len(self._projects) - self.project_limit
        if excess <= 0:
            return
        protected = {self._active_id, keep}
        candidates = sorted(
            (record for record in self._projects if record.id not in protected),
            key=lambda record: record.updated_at,
        )
        dropped = {record.id for record in candidates[:excess]}
        for record in candidates[:excess]:
            if self.is_favorite(record.id):
                self._archive[record.id] = record
            logger.warning("project limit %d reached, dropping '%s'",
                           self.project_limit, record.display_name)
        self._projects = [record for record in self._projects if record.id not in dropped]
        if any(self.is_favorite(project_id) for project_id in dropped):
            self.repository.save_archive(self._archive)

    def _new_record(self, name: str | None) -> ProjectRecord:
        now = utc_now_iso()
        trimmed = (name or "").strip()
        return ProjectRecord(
            id=self._new_id(),
            name=trimmed or self._default_name(),
            created_at=now,
            updated_at=now,
            data=ProjectPayload.empty(now),
        )

    # ---- lifecycle ----------------------------------------------------
    def initialize(self) -> ProjectRecord | None:
        """Load persisted state and adopt the stored pointer (or the first project)."""
        self._projects = self.repository.load_projects()
        self._favorites = self.repository.load_favorites()
        self._archive = self.repository.load_archive()

        stored_id = self.repository.load_active_id()
        record = self.get_project(stored_id) if stored_id else None
        if record is None and self._projects:
            record = self._projects[0]
        if record is not None:
            self._apply_record(record)
            self._set_active(record.id)
        else:
            self._reset_slots()
            self._set_active(None)
        logger.debug("session initialized projects=%d active=%s", len(self._projects), self._active_id)
        self._notify()
        return record

    def close(self) -> None:
        """Commit a pending autosave and detach from storage / workspace."""
        self.flush_autosave()
        self._unsubscribe_storage()
        self._unsubscribe_workspace()

    # ---- operations ---------------------------------------------------
    def create_project(self, name: str | None = None) -> ProjectRecord:
        record = self._new_record(name)
        self._projects.append(record)
        self._enforce_limit(keep=record.id)
        self._persist_projects()
        self._reset_slots()
        self._set_active(record.id)
        self._record_activity(record.id, "created", f"created tab '{record.display_name}'")
        self._notify()
        return record

    def save_project(self, name: str | None = None, *, autosave: bool = False) -> ProjectRecord:
        """Save both slots into the active project (or a new one when none resolves)."""
        self.cancel_autosave()
        trimmed = (name or "").strip()
        index = next(
            (i for i, record in enumerate(self._projects) if record.id == self._active_id), -1
        )
        if index >= 0 and trimmed:
            # rename と同じく読み込み済みスロットの表示名をタブ名に合わせる
            self.workspace.set_file_name_hint("a", trimmed)
            self.workspace.set_file_name_hint("b", trimmed)
        payload = self._build_payload()
        if index >= 0:
            current = self._projects[index]
            record = current.evolve(
                name=trimmed or current.name,
                updated_at=payload.saved_at,
                data=payload,
            )
            self._projects[index] = record
        else:
            record = ProjectRecord(
                id=self._new_id(),
                name=trimmed or self._default_name(),
                created_at=payload.saved_at,
                updated_at=payload.saved_at,
                data=payload,
            )
            self._projects.append(record)

        self._enforce_limit(keep=record.id)
        self._persist_projects()
        if record.id != self._active_id:
            self._set_active(record.id)
        self._applied_saved_at = payload.saved_at
        if self.is_favorite(record.id):
            self._upsert_archive(record)
        prefix = "autosaved" if autosave else "saved"
        self._record_activity(record.id, "saved", f"{prefix} tab '{record.display_name}'")
        self._notify()
        return record

    def load_project(self, project_id: str) -> ProjectRecord | None:
        """Activate a project; a deleted favorite is restored from the archive."""
        record = self.get_project(project_id)
        restored = False
        if record is None:
            archived = self._archive.get(project_id)
            if archived is None:
                logger.warning("project not found: %s", project_id)
                return None
            self._upsert_archive(archived)
            self._projects.append(archived)
            self._enforce_limit(keep=archived.id)
            self._persist_projects()
            record = archived
            restored = True

        self._apply_record(record)
        self._set_active(record.id)
        if restored:
            self._record_activity(record.id, "restored", f"restored '{record.display_name}' from favorites")
        else:
            self._record_activity(record.id, "loaded", f"loaded tab '{record.display_name}'")
        self._notify()
        return record

    def delete_project(self, project_id: str) -> bool:
        target = self.get_project(project_id)
        if target is None:
            return False
        if self.is_favorite(project_id):
            self._upsert_archive(target)

        self._projects = [record for record in self._projects if record.id != project_id]
        self._record_activity(project_id, "deleted", f"deleted tab '{target.display_name}'")

        if project_id == self._active_id:
            if self._projects:
                successor = self._projects[0]
                self._persist_projects()
                self._apply_record(successor)
                self._set_active(successor.id)
            else:
                fresh = self._new_record(None)
                self._projects = [fresh]
                self._persist_projects()
                self._reset_slots()
                self._set_active(fresh.id)
                self._record_activity(fresh.id, "created", f"created tab '{fresh.display_name}'")
        else:
            self._persist_projects()
        self._notify()
        return True

    def rename_project(self, project_id: str, name: str) -> bool:
        """Rename a project. Returns False when the project does not exist."""
        index = next((i for i, record in enumerate(self._projects) if record.id == project_id), -1)
        if index < 0:
            return False
        current = self._projects[index]
        normalized = name.strip() or None
        if current.name == normalized:
            return True

        record = current.evolve(name=normalized, updated_at=utc_now_iso())
        self._projects[index] = record
        self._persist_projects()
        if project_id == self._active_id and normalized is not None:
            self.workspace.set_file_name_hint("a", normalized)
            self.workspace.set_file_name_hint("b", normalized)
        if self.is_favorite(project_id):
            self._upsert_archive(record)
        self._record_activity(project_id, "renamed", f"renamed tab to '{record.display_name}'")
        self._notify()
        return True

    def reorder_project(self, project_id: str, target_index: int) -> bool:
        """Move a project so it ends up at ``target_index`` (clamped)."""
        current_index = next(
            (i for i, record in enumerate(self._projects) if record.id == project_id), -1
        )
        if current_index < 0:
            return False
        clamped = max(0, min(target_index, len(self._projects) - 1))
        if clamped == current_index:
            return True
        moved = self._projects.pop(current_index)
        self._projects.insert(clamped, moved)
        self._persist_projects()
        self._notify()
        return True

    def toggle_favorite(self, project_id: str) -> bool:
        """Star / unstar a project. Returns the new favorite state."""
        if self.is_favorite(project_id):
            self._favorites.remove(project_id)
            self.repository.save_favorites(self._favorites)
            if project_id in self._archive:
                del self._archive[project_id]
                self.repository.save_archive(self._archive)
            self._record_activity(project_id, "unfavorited", "removed from favorites")
            return False

        record = self.get_project(project_id) or self._archive.get(project_id)
        if record is None:
            logger.warning("cannot favorite unknown project: %s", project_id)
            return False
        self._favorites.append(project_id)
        self.repository.save_favorites(self._favorites)
        self._upsert_archive(record)
        self._record_activity(project_id, "favorited", f"added '{record.display_name}' to favorites")
        return True

    # ---- autosave -----------------------------------------------------
    def schedule_autosave(self) -> None:
        self.timers.schedule(AUTOSAVE_TIMER_ID, self.autosave_delay, self._autosave)

    def cancel_autosave(self) -> bool:
        return self.timers.cancel(AUTOSAVE_TIMER_ID)

    def flush_autosave(self) -> bool:
        return self.timers.flush(AUTOSAVE_TIMER_ID)

    def autosave_pending(self) -> bool:
        return self.timers.pending(AUTOSAVE_TIMER_ID)

    def _autosave(self) -> None:
        if not self.workspace.any_loaded():
            logger.debug("autosave skipped: no dataset loaded")
            return
        self.save_project(autosave=True)

    def _on_workspace_change(self, key: str, reason: str) -> None:
        # restore はストア自身の書き込み、replace は保存要否を orchestrator が判断する
        if reason in _NO_AUTOSAVE_REASONS:
            return
        self.schedule_autosave()

    # ---- cross-window reconciliation ----------------------------------
    def _on_storage_change(self, key: str) -> None:
        if key == PROJECTS_KEY:
            self._reconcile_projects()
        elif key == ACTIVE_PROJECT_KEY:
            self._reconcile_active_pointer()
        elif key == FAVORITES_KEY:
            self._favorites = self.repository.load_favorites()
            self._notify()
        elif key == FAVORITE_ARCHIVE_KEY:
            self._archive = self.repository.load_archive()

    def _fallback(self) -> None:
        if self._projects:
            first = self._projects[0]
            if first.id != self._active_id:
                self._apply_record(first)
            self._set_active(first.id)
        else:
            self._reset_slots()
            self._set_active(None)

    def _reconcile_projects(self) -> None:
        self._projects = self.repository.load_projects()

        changed = False
        for favorite_id in self._favorites:
            live = self.get_project(favorite_id)
            if live is not None and self._archive.get(favorite_id) != live:
                self._archive[favorite_id] = live
                changed = True
        if changed:
            self.repository.save_archive(self._archive)

        active = self.get_project(self._active_id) if self._active_id else None
        if active is None:
            logger.debug("active project %s no longer resolves, falling back", self._active_id)
            self._fallback()
        elif active.data.saved_at != self._applied_saved_at:
            self._apply_record(active)
        self._notify()

    def _reconcile_active_pointer(self) -> None:
        next_id = self.repository.load_active_id()
        if next_id == self._active_id:
            return
        self._projects = self.repository.load_projects()
        record = self.get_project(next_id) if next_id else None
        if record is None:
            # null / 未知の pointer はそのまま採用しない (projects があれば先頭へ)
            logger.debug("external pointer %s does not resolve, falling back", next_id)
            self._fallback()
        else:
            self._apply_record(record)
            self._active_id = next_id
        self._notify()
