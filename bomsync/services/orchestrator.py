from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from ..backend import Backend, BackendOperationFailed, FileIOFailed
from ..models.dataset import DatasetSnapshot
from ..models.diff import DiffRow, DiffStatus, ResultMode
from ..tables.preprocess import PreprocessOptions
from .summary import StatusCounts, count_statuses
from .workspace import Workspace

"""Comparison orchestration.

Drives the two backend operations (compare / merge_and_append) for the two
workspace slots and keeps the UI-facing result state:

- compare:  both slots loaded -> backend.compare -> diff rows, mode=comparison
- replace:  both slots loaded -> compare + merge_and_append -> merged snapshot
            written to slot A with a derived per-row status, mode=replacement
- preprocess: Ref expansion / splitting, blank filling, cleansing of one slot
- export:   current result -> CSV (pandas)

Backend failures propagate to the caller as BackendOperationFailed and leave the
previous results untouched; nothing partial is ever committed.
"""

__all__ = [
    "PreconditionNotMet",
    "ReplacementResult",
    "ComparisonOrchestrator",
    "STATUS_ALIASES",
    "normalize_status",
    "derive_replacement_statuses",
]

logger = logging.getLogger(__name__)


class PreconditionNotMet(Exception):
    """Operation invoked without the data it needs (both datasets, a result, ...)."""


STATUS_ALIASES: dict[str, DiffStatus] = {
    "added": DiffStatus.ADDED,
    "remove": DiffStatus.REMOVED,
    "removed": DiffStatus.REMOVED,
    "delete": DiffStatus.REMOVED,
    "deleted": DiffStatus.REMOVED,
    "modified": DiffStatus.MODIFIED,
    "modify": DiffStatus.MODIFIED,
    "change": DiffStatus.MODIFIED,
    "changed": DiffStatus.MODIFIED,
    "diff": DiffStatus.MODIFIED,
    "same": DiffStatus.UNCHANGED,
    "identical": DiffStatus.UNCHANGED,
    "unchanged": DiffStatus.UNCHANGED,
    # 旧バックエンドの日本語ステータス
    "追加": DiffStatus.ADDED,
    "削除": DiffStatus.REMOVED,
    "変更": DiffStatus.MODIFIED,
    "同一": DiffStatus.UNCHANGED,
}


def normalize_status(status: Any) -> DiffStatus:
    """Map a backend status string to the closed status set (unknown -> OTHER)."""
    if not isinstance(status, str):
        return DiffStatus.OTHER
    return STATUS_ALIASES.get(status.strip().lower(), DiffStatus.OTHER)


def derive_replacement_statuses(
    diffs: Sequence[DiffRow], base_row_count: int, merged_row_count: int
) -> list[DiffStatus]:
    """Per-row status of a merged snapshot.

    Steps:
    1. Every row starts as unchanged
    2. Diffs pointing at a base (A) row write their status in place
    3. Added diffs, sorted by b_index, fill the appended rows from base_row_count on
    """
    statuses = [DiffStatus.UNCHANGED] * merged_row_count
    for diff in diffs:
        a_index = diff.a_index
        if a_index is not None and 0 <= a_index < base_row_count and a_index < merged_row_count:
            statuses[a_index] = normalize_status(diff.status)

    added = sorted(
        (diff for diff in diffs if normalize_status(diff.status) is DiffStatus.ADDED),
        key=lambda diff: diff.b_index if diff.b_index is not None else -1,
    )
    position = base_row_count
    for _ in added:
        if position >= merged_row_count:
            break
        statuses[position] = DiffStatus.ADDED
        position += 1
    return statuses


@dataclass(frozen=True)
class ReplacementResult:
    snapshot: DatasetSnapshot
    statuses: tuple[DiffStatus, ...]
    diffs: tuple[DiffRow, ...]

    @property
    def has_changes(self) -> bool:
        return any(normalize_status(diff.status) is not DiffStatus.UNCHANGED for diff in self.diffs)


class ComparisonOrchestrator:
    """Result state and backend calls for one window.

    ``processing`` is advisory: callers check it before starting an action, the
    orchestrator itself does not refuse overlapping calls.
    """

    def __init__(
        self,
        backend: Backend,
        workspace: Workspace,
        save_session: Callable[[], Any] | None = None,
    ) -> None:
        self.backend = backend
        self.workspace = workspace
        self.save_session = save_session
        self.processing = False
        self.result_mode: ResultMode | None = None
        self.diff_results: list[DiffRow] | None = None
        self.replacement: ReplacementResult | None = None
        self.last_error: str | None = None

    # ---- derived state -----------------------------------------------
    def is_loading(self, key: str) -> bool:
        return self.workspace.slot(key).loading

    @property
    def has_result(self) -> bool:
        return self.diff_results is not None or self.replacement is not None

    def status_counts(self) -> StatusCounts:
        if self.result_mode is ResultMode.REPLACEMENT and self.replacement is not None:
            return count_statuses(self.replacement.statuses)
        if self.diff_results is not None:
            return count_statuses(normalize_status(diff.status) for diff in self.diff_results)
        return StatusCounts()

    def result_row_count(self) -> int:
        if self.result_mode is ResultMode.REPLACEMENT and self.replacement is not None:
            return self.replacement.snapshot.row_count
        return len(self.diff_results or ())

    def reset_results(self) -> None:
        self.result_mode = None
        self.diff_results = None
        self.replacement = None
        self.last_error = None

    # ---- helpers ------------------------------------------------------
    @contextmanager
    def _processing(self) -> Iterator[None]:
        self.processing = True
        try:
            yield
        finally:
            self.processing = False

    def _call(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except BackendOperationFailed as e:
            self.last_error = str(e)
            logger.error("%s failed: %s", operation, e)
            raise
        except Exception as e:
            self.last_error = str(e)
            logger.error("%s failed: %s", operation, e)
            raise BackendOperationFailed(str(e)) from e

    def _require_both(self) -> tuple[DatasetSnapshot, DatasetSnapshot]:
        snapshot_a = self.workspace.snapshot("a")
        snapshot_b = self.workspace.snapshot("b")
        if snapshot_a is None or snapshot_b is None:
            raise PreconditionNotMet("load both datasets (A and B) first")
        return snapshot_a, snapshot_b

    # ---- operations ---------------------------------------------------
    def load_file(self, key: str, path: Path, display_name: str | None = None) -> DatasetSnapshot:
        """Parse ``path`` into slot ``key``. The loading flag is cleared whatever happens."""
        path = Path(path)
        self.workspace.set_loading(key, True)
        try:
            raw = self._call("parse", self.backend.parse, path)
            snapshot = self.workspace.load_snapshot(
                key, raw, display_name or path.name, file_path=str(path)
            )
        finally:
            self.workspace.set_loading(key, False)
        self.reset_results()
        logger.info("loaded %s into slot %s rows=%d columns=%d",
                    path.name, key.upper(), snapshot.row_count, len(snapshot.columns))
        for issue in snapshot.structured_errors:
            if issue.severity == "error":
                logger.warning("%s: %s", path.name, issue.message)
            else:
                logger.debug("%s: %s", path.name, issue.message)
        return snapshot

    def preprocess(self, key: str, options: PreprocessOptions) -> DatasetSnapshot:
        """Preprocess slot ``key``; earlier results no longer match the data and are reset."""
        if self.workspace.snapshot(key) is None:
            raise PreconditionNotMet(f"load dataset {key.upper()} first")
        with self._processing():
            snapshot = self._call("preprocess", self.workspace.apply_preprocess, key, options)
        self.reset_results()
        logger.info("preprocessed slot %s rows=%d", key.upper(), snapshot.row_count)
        return snapshot

    def compare(self) -> list[DiffRow]:
        snapshot_a, snapshot_b = self._require_both()
        with self._processing():
            diffs = list(self._call("compare", self.backend.compare, snapshot_a, snapshot_b))
        self.diff_results = diffs
        self.replacement = None
        self.result_mode = ResultMode.COMPARISON
        self.last_error = None
        logger.info("compare finished diffs=%d", len(diffs))
        return diffs

    def replace(self) -> ReplacementResult:
        snapshot_a, snapshot_b = self._require_both()
        with self._processing():
            diffs = list(self._call("compare", self.backend.compare, snapshot_a, snapshot_b))
            merged = self._call("merge", self.backend.merge_and_append, snapshot_a, snapshot_b)

        base_rows = snapshot_a.row_count
        added = sum(1 for diff in diffs if normalize_status(diff.status) is DiffStatus.ADDED)
        appended = merged.row_count - base_rows
        if appended != added:
            logger.warning(
                "merge appended %d rows but compare reported %d added rows; "
                "row statuses may be misaligned", appended, added,
            )
        statuses = derive_replacement_statuses(diffs, base_rows, merged.row_count)

        committed = self.workspace.replace_snapshot("a", merged)
        result = ReplacementResult(snapshot=committed, statuses=tuple(statuses), diffs=tuple(diffs))
        self.replacement = result
        self.diff_results = None
        self.result_mode = ResultMode.REPLACEMENT
        self.last_error = None
        logger.info("replace finished rows=%d appended=%d", merged.row_count, appended)

        if result.has_changes and self.save_session is not None:
            self.save_session()
        return result

    def report_frame(self) -> pd.DataFrame:
        """Current result as a DataFrame (diff report or merged rows with status)."""
        if self.result_mode is ResultMode.REPLACEMENT and self.replacement is not None:
            snapshot = self.replacement.snapshot
            order = [snapshot.column_index(cid) for cid in snapshot.column_order]
            indices = [i for i in order if i is not None]
            frame = pd.DataFrame(
                [[row[i] for i in indices] for row in snapshot.rows],
                columns=[snapshot.columns[i].name for i in indices],
                dtype=str,
            )
            frame.insert(0, "status", [status.value for status in self.replacement.statuses])
            return frame
        if self.diff_results is not None:
            return pd.DataFrame(
                [
                    {
                        "status": normalize_status(diff.status).value,
                        "ref": diff.ref_value,
                        "a_row": "" if diff.a_index is None else diff.a_index + 1,
                        "b_row": "" if diff.b_index is None else diff.b_index + 1,
                        "changed_columns": "; ".join(diff.changed_columns),
                    }
                    for diff in self.diff_results
                ],
                columns=["status", "ref", "a_row", "b_row", "changed_columns"],
            )
        raise PreconditionNotMet("no comparison or replacement result to export")

    def export_report(self, path: Path) -> Path:
        frame = self.report_frame()
        path = Path(path)
        with self._processing():
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                frame.to_csv(path, index=False, encoding="utf-8-sig")
            except OSError as e:
                raise FileIOFailed(f"failed to write report {path}: {e}") from e
        logger.info("report written: %s rows=%d", path, len(frame))
        return path
