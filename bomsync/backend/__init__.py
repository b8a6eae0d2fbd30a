from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from ..models.dataset import DatasetSnapshot
from ..models.diff import DiffRow

"""Backend bridge: the opaque request/response operations the engine consumes.

parse / compare / merge_and_append work on DatasetSnapshot values; the text
file operations back session and backup import/export.
"""

__all__ = [
    "Backend",
    "BackendOperationFailed",
    "FileIOFailed",
]


class BackendOperationFailed(Exception):
    """parse / compare / merge_and_append rejected. The message is shown verbatim."""


class FileIOFailed(Exception):
    """Reading or writing a session / backup file failed."""


@runtime_checkable
class Backend(Protocol):
    def parse(self, path: Path) -> DatasetSnapshot: ...

    def compare(self, snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot) -> list[DiffRow]: ...

    def merge_and_append(
        self, snapshot_a: DatasetSnapshot, snapshot_b: DatasetSnapshot
    ) -> DatasetSnapshot: ...

    def read_text_file(self, path: Path) -> str: ...

    def write_text_file(self, path: Path, content: str) -> None: ...
