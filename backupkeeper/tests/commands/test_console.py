from __future__ import annotations

import io
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication, QEventLoop, QTimer

from conftest import FakeWorldService, InlineRunner, SpyStore, make_save
from core.backups.directory_index import SaveDirectoryIndex
from core.backups.manager import BackupManager
from core.backups.task_runner import BackupTaskRunner
from core.commands.backup_command import BackupConsoleCommand
from core.commands.console import BackupConsole

LOGGER_NAME = "backupkeeper.console"


def _run_console(console: BackupConsole, timeout_ms: int = 10000) -> bool:
    finished: list[bool] = []
    loop = QEventLoop()
    console.finished.connect(lambda: finished.append(True))
    console.finished.connect(loop.quit)
    QTimer.singleShot(timeout_ms, loop.quit)
    console.start()
    loop.exec()
    return bool(finished)


def test_lines_are_routed_to_the_backup_command(
    manager: BackupManager,
    world_service: FakeWorldService,
    saves_root: Path,
    caplog,
) -> None:
    make_save(saves_root, "Navezgane", "MySave")
    world_service.current = ("Navezgane", "MySave")
    runner = InlineRunner()
    command = BackupConsoleCommand(manager=manager, world_service=world_service, runner=runner)
    console = BackupConsole(command=command, runner=runner)
    caplog.set_level("INFO", logger=LOGGER_NAME)

    assert console.handle_line("backup") is True
    assert console.handle_line("bp delete 0 0 0") is True
    assert console.handle_line("   ") is False
    assert console.handle_line("save-world now") is False
    assert console.handle_line('backup "unterminated') is False

    assert runner.submitted == ["create", "delete"]
    assert manager.backup_count() == 0
    messages = [record.getMessage() for record in caplog.records if record.name == LOGGER_NAME]
    assert messages[0] == "Unknown command 'save-world'. Available commands: backup, bp"


def test_one_console_serializes_operations_and_finishes_after_them(
    qt_app: QCoreApplication,
    backup_root: Path,
    world_service: FakeWorldService,
    saves_root: Path,
) -> None:
    make_save(saves_root, "Navezgane", "MySave")
    world_service.current = ("Navezgane", "MySave")
    store = SpyStore(backup_root, write_delay=0.2)
    manager = BackupManager(SaveDirectoryIndex(saves_root, store), store, world_service, wait_timeout=10.0)
    runner = BackupTaskRunner()
    command = BackupConsoleCommand(manager=manager, world_service=world_service, runner=runner)
    console = BackupConsole(command=command, runner=runner, stream=io.StringIO("backup\nbp\nquit\nbackup\n"))

    assert _run_console(console)

    assert runner.is_idle()
    assert runner.failed_count == 0
    kinds = [kind for kind, _ in store.events]
    assert kinds == ["write-start", "write-end", "write-start", "write-end"]
    assert manager.backup_count() == 2


@pytest.mark.parametrize("script", ["", "quit\n", "\n\nexit\n"])
def test_console_finishes_when_input_ends(
    qt_app: QCoreApplication,
    manager: BackupManager,
    world_service: FakeWorldService,
    script: str,
) -> None:
    runner = BackupTaskRunner()
    command = BackupConsoleCommand(manager=manager, world_service=world_service, runner=runner)
    console = BackupConsole(command=command, runner=runner, stream=io.StringIO(script))

    assert _run_console(console)
    assert runner.is_idle()
