from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
import threading
import time

import pytest
from PySide6.QtCore import QCoreApplication

from core.backups.directory_index import SaveDirectoryIndex
from core.backups.manager import BackupManager
from core.backups.models import BackupInfo, BackupMode
from core.backups.store import BackupStore
from core.game.world_service import WorldHandle


def make_save(saves_root: Path, world: str, save: str, files: dict[str, bytes] | None = None) -> Path:
    save_dir = saves_root / world / save
    save_dir.mkdir(parents=True, exist_ok=True)
    for name, content in (files or {"main.ttw": b"world-state", "Player/1.ttp": b"player"}).items():
        path = save_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return save_dir


def snapshot_tree(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@dataclass
class FakeWorldService:
    saves_root: Path
    current: tuple[str, str] | None = None
    fail_on: set[str] = field(default_factory=set)
    calls: list[tuple[str, ...]] = field(default_factory=list)

    def get_current_world(self) -> WorldHandle | None:
        if self.current is None:
            return None
        world, save = self.current
        return WorldHandle(world_name=world, save_name=save, save_dir=self.saves_root / world / save)

    def save_all(self) -> None:
        self.calls.append(("save_all",))
        if "save_all" in self.fail_on:
            raise OSError("save hook exited with status 1")

    def suspend_save(self, world_name: str, save_name: str) -> None:
        self.calls.append(("suspend", world_name, save_name))
        if "suspend" in self.fail_on:
            raise OSError("suspend hook timed out")

    def resume_save(self, world_name: str, save_name: str) -> None:
        self.calls.append(("resume", world_name, save_name))


class SpyStore(BackupStore):
    """Records every physical operation; optionally slows writes down to expose overlap."""

    def __init__(self, *args, write_delay: float = 0.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.write_delay = write_delay
        self.events: list[tuple[str, str]] = []
        self._events_lock = threading.Lock()

    def _record(self, kind: str, detail: str) -> None:
        with self._events_lock:
            self.events.append((kind, detail))

    @property
    def writes(self) -> list[str]:
        return [detail for kind, detail in self.events if kind == "write-start"]

    def write(self, world_name, save_name, source_dir, label, mode=BackupMode.BACKUP_ONLY) -> BackupInfo:
        self._record("write-start", label)
        if self.write_delay:
            time.sleep(self.write_delay)
        try:
            return super().write(world_name, save_name, source_dir, label, mode)
        finally:
            self._record("write-end", label)

    def delete(self, backup_path: Path) -> None:
        self._record("delete", Path(backup_path).name)
        super().delete(backup_path)

    def staged_restore(self, backup_path: Path, target_save_dir: Path, keep_previous: bool = True):
        self._record("restore", Path(backup_path).name)
        return super().staged_restore(backup_path, target_save_dir, keep_previous)


class InlineRunner:
    """Task runner stand-in that runs each operation to completion on submit."""

    def __init__(self) -> None:
        self.submitted: list[str] = []

    def submit(self, name, factory, on_success, on_error) -> int:
        self.submitted.append(name)
        try:
            result = asyncio.run(factory(threading.Event()))
        except Exception as error:
            on_error(error)
        else:
            on_success(result)
        return len(self.submitted)


@pytest.fixture
def saves_root(tmp_path: Path) -> Path:
    root = tmp_path / "Saves"
    root.mkdir()
    return root


@pytest.fixture
def backup_root(tmp_path: Path) -> Path:
    root = tmp_path / "Backups"
    root.mkdir()
    return root


@pytest.fixture
def store(backup_root: Path) -> SpyStore:
    return SpyStore(backup_root)


@pytest.fixture
def directory_index(saves_root: Path, store: SpyStore) -> SaveDirectoryIndex:
    return SaveDirectoryIndex(saves_root, store)


@pytest.fixture
def world_service(saves_root: Path) -> FakeWorldService:
    return FakeWorldService(saves_root=saves_root)


@pytest.fixture
def manager(directory_index: SaveDirectoryIndex, store: SpyStore, world_service: FakeWorldService) -> BackupManager:
    return BackupManager(
        directory_index=directory_index,
        store=store,
        world_service=world_service,
        wait_timeout=10.0,
    )


@pytest.fixture(scope="session")
def qt_app() -> QCoreApplication:
    return QCoreApplication.instance() or QCoreApplication([])


def run(coroutine):
    return asyncio.run(coroutine)
