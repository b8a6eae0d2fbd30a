from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.activity_record import ActivityRecord

"""Session activity log (JSON Lines).

- 固定スキーマ (activity_log_schema.json, 追加キー禁止)
- 起動ごとに `logs/activity-YYYYMMDD-HHMMSS.log` (UTC) を生成 (初回 flush 時)
- append() でバッファし、flush() でまとめて追記
"""

__all__ = [
    "ActivityRecord",
    "ActivityLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ActivityLogBuffer:
    """In-memory buffer of ActivityRecord; flush() appends them as JSON Lines."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ActivityRecord] = []
        self._logs_dir = Path(logs_dir) if logs_dir is not None else LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"activity-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ActivityRecord]:
        return list(self._records)

    def append(self, record: ActivityRecord) -> None:
        self._records.append(record)

    def record(self, project_id: str | None, action: str, message: str) -> ActivityRecord:
        entry = ActivityRecord.create(project_id, action, message)
        self._records.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records; returns the log path, or None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
