# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import pytest

from bomsync.logging.activity_log import ActivityLogBuffer
from bomsync.logging.init import reset_logging
from bomsync.models.dataset import DatasetSnapshot
from bomsync.services.autosave import TimerQueue
from bomsync.services.session_store import SessionStore
from bomsync.services.workspace import Workspace
from bomsync.storage.adapter import MemoryStorage, StorageHub
from bomsync.storage.repository import ProjectRepository


class FakeClock:
    """Manually advanced monotonic clock for TimerQueue."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Window:
    """One simulated window: its own workspace, timers and storage channel."""

    def __init__(self, hub: StorageHub, logs_dir: Path, start_ms: int) -> None:
        self.clock = FakeClock()
        self.storage = MemoryStorage(hub)
        self.repository = ProjectRepository(self.storage)
        self.workspace = Workspace()
        self.timers = TimerQueue(self.clock)
        ticks = iter(range(start_ms, start_ms + 1_000_000))
        self.store = SessionStore(
            self.repository,
            self.workspace,
            self.timers,
            autosave_delay=1.5,
            activity=ActivityLogBuffer(logs_dir),
            id_clock=lambda: next(ticks),
        )

    def tick(self, seconds: float) -> int:
        self.clock.advance(seconds)
        return self.timers.run_due()


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("BOMSYNC_STORAGE_DIR", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """storage_directory: ./store
logs_directory: ./logs
project_limit: 10
autosave:
  delay_seconds: 0.5
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "bomsync.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def write_csv(temp_workdir: Path) -> Callable[[str, str], Path]:
    def _write(name: str, text: str) -> Path:
        path = temp_workdir / "data" / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture()
def bom_a() -> DatasetSnapshot:
    return DatasetSnapshot.from_rows(
        [["R1", "100"], ["R2", "200"]],
        headers=["Ref", "Part_No"],
        roles={"ref": ["col-0"], "part_no": ["col-1"]},
    )


@pytest.fixture()
def bom_b() -> DatasetSnapshot:
    return DatasetSnapshot.from_rows(
        [["R1", "100"], ["R3", "300"]],
        headers=["Ref", "Part_No"],
        roles={"ref": ["col-0"], "part_no": ["col-1"]},
    )


@pytest.fixture()
def hub() -> StorageHub:
    return StorageHub()


@pytest.fixture()
def make_window(hub: StorageHub, tmp_path: Path) -> Callable[[], Window]:
    counter = iter(range(1, 100))

    def _make() -> Window:
        # ウィンドウごとに ID 空間をずらして衝突を避ける
        return Window(hub, tmp_path / "logs", 1_700_000_000_000 + next(counter) * 10_000_000)
    return _make


@pytest.fixture()
def window(make_window) -> Window:
    return make_window()
