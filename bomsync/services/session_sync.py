from __future__ import annotations

import logging
from collections.abc import Callable

from ..models.project import ProjectRecord
from .orchestrator import ComparisonOrchestrator
from .session_store import SessionStore

"""Session sync bridge.

Keeps the comparison results consistent with the active project:
- a different project became active -> drop the previous results
- the same project was saved in place (autosave) -> keep live state and results,
  only remember the new savedAt
- no active project -> drop results
"""

__all__ = ["SessionSyncBridge"]

logger = logging.getLogger(__name__)


class SessionSyncBridge:
    def __init__(self, store: SessionStore, orchestrator: ComparisonOrchestrator) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.last_synced_id: str | None = None
        self.last_synced_saved_at: str | None = None
        self._remove: Callable[[], None] | None = store.add_listener(self.sync)

    @property
    def active_project(self) -> ProjectRecord | None:
        return self.store.active_project

    def sync(self, active: ProjectRecord | None) -> None:
        if active is None:
            if self.last_synced_id is not None or self.orchestrator.has_result:
                logger.debug("no active project, results cleared")
            self.orchestrator.reset_results()
            self.last_synced_id = None
            self.last_synced_saved_at = None
            return

        saved_at = active.data.saved_at
        if active.id == self.last_synced_id:
            self.last_synced_saved_at = saved_at
            return

        logger.debug("active project switched %s -> %s", self.last_synced_id, active.id)
        self.orchestrator.reset_results()
        self.last_synced_id = active.id
        self.last_synced_saved_at = saved_at

    def detach(self) -> None:
        if self._remove is not None:
            self._remove()
            self._remove = None
