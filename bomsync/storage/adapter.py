from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

"""Persistence adapters: key/value storage plus "this key changed" broadcast.

Values are JSON-compatible objects. Change notifications carry only the key;
subscribers re-read the value from storage.

- MemoryStorage: one channel (window) of an in-process StorageHub. A write
  notifies the subscribers of every *other* channel, and only when the stored
  value actually changed.
- FileStorage: one JSON file per key inside a directory. Writes are atomic
  (temp file + os.replace); poll() reports files changed by other processes.
"""

__all__ = [
    "ChangeCallback",
    "PersistenceAdapter",
    "StorageHub",
    "MemoryStorage",
    "FileStorage",
]

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str], None]


@runtime_checkable
class PersistenceAdapter(Protocol):
    def read(self, key: str) -> Any | None: ...

    def write(self, key: str, value: Any | None) -> None: ...

    def on_change(self, key: str | None, callback: ChangeCallback) -> Callable[[], None]: ...


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class _Subscribers:
    """Callback registry shared by the adapters (key None = every key)."""

    def __init__(self) -> None:
        self._callbacks: list[tuple[str | None, ChangeCallback]] = []

    def on_change(self, key: str | None, callback: ChangeCallback) -> Callable[[], None]:
        entry = (key, callback)
        self._callbacks.append(entry)

        def unsubscribe() -> None:
            if entry in self._callbacks:
                self._callbacks.remove(entry)

        return unsubscribe

    def _notify(self, key: str) -> None:
        for wanted, callback in list(self._callbacks):
            if wanted is not None and wanted != key:
                continue
            try:
                callback(key)
            except Exception:
                logger.exception("storage change handler failed key=%s", key)


class StorageHub:
    """Shared in-process store that the MemoryStorage channels write through."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._channels: list[MemoryStorage] = []
        self._queue: deque[tuple[str, MemoryStorage | None]] = deque()
        self._dispatching = False

    def channel(self) -> MemoryStorage:
        return MemoryStorage(self)

    def _attach(self, channel: MemoryStorage) -> None:
        self._channels.append(channel)

    def _detach(self, channel: MemoryStorage) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    def raw(self, key: str) -> str | None:
        return self._data.get(key)

    def put_raw(self, key: str, text: str | None, origin: MemoryStorage | None = None) -> bool:
        """Store the encoded value; returns False (and stays silent) when unchanged."""
        if self._data.get(key) == text:
            return False
        if text is None:
            self._data.pop(key, None)
        else:
            self._data[key] = text
        self._publish(key, origin)
        return True

    def _publish(self, key: str, origin: MemoryStorage | None) -> None:
        # ハンドラ内での書き込みはキューに積み、外側のループで順に配送する
        self._queue.append((key, origin))
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                changed, source = self._queue.popleft()
                for channel in list(self._channels):
                    if channel is not source:
                        channel._notify(changed)
        finally:
            self._dispatching = False


class MemoryStorage(_Subscribers):
    """One window's view of a StorageHub."""

    def __init__(self, hub: StorageHub | None = None) -> None:
        super().__init__()
        self.hub = hub or StorageHub()
        self.hub._attach(self)

    def read(self, key: str) -> Any | None:
        text = self.hub.raw(key)
        if text is None:
            return None
        return json.loads(text)

    def write(self, key: str, value: Any | None) -> None:
        self.hub.put_raw(key, None if value is None else _encode(value), origin=self)

    def close(self) -> None:
        self.hub._detach(self)


class FileStorage(_Subscribers):
    """Directory-backed storage, one ``<key>.json`` file per key."""

    def __init__(self, directory: Path | str) -> None:
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._signatures: dict[str, tuple[int, int] | None] = {}
        for path in self.directory.glob("*.json"):
            self._signatures[path.stem] = self._signature(path.stem)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _signature(self, key: str) -> tuple[int, int] | None:
        try:
            stat = self._path(key).stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def read(self, key: str) -> Any | None:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return json.loads(text)

    def write(self, key: str, value: Any | None) -> None:
        path = self._path(key)
        if value is None:
            path.unlink(missing_ok=True)
        else:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(_encode(value))
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        self._signatures[key] = self._signature(key)

    def poll(self) -> list[str]:
        """Notify subscribers about keys another process changed since the last look."""
        keys = set(self._signatures) | {path.stem for path in self.directory.glob("*.json")}
        changed = []
        for key in sorted(keys):
            current = self._signature(key)
            if current != self._signatures.get(key):
                self._signatures[key] = current
                changed.append(key)
        for key in changed:
            logger.debug("external change detected key=%s", key)
            self._notify(key)
        return changed
