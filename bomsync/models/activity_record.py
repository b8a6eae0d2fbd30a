from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ActivityRecord model for the session activity log.

Each record is one operator-visible session event (tab created, project
loaded, favorite restored, ...). Serialized as one JSON Lines entry with a
fixed key set (see bomsync/schemas/activity_log_schema.json).
"""

__all__ = [
    "ActivityRecord",
]


@dataclass(frozen=True)
class ActivityRecord:
    """Structured activity entry.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        project_id: Project the event refers to, empty string when none
        action: Event classification in lower_snake_case (created, loaded, ...)
        message: Human readable description
    """
    timestamp: str
    project_id: str
    action: str
    message: str

    @staticmethod
    def create(project_id: str | None, action: str, message: str) -> ActivityRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ActivityRecord(
            timestamp=ts,
            project_id=project_id or "",
            action=action,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
