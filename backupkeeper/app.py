from __future__ import annotations

from pathlib import Path
import sys

from PySide6.QtCore import QCoreApplication

from core.backups.archive import get_codec
from core.backups.directory_index import SaveDirectoryIndex
from core.backups.gate import LOCK_FILE_NAME, OperationGate
from core.backups.manager import BackupManager
from core.backups.store import BackupStore
from core.backups.task_runner import BackupTaskRunner
from core.commands.backup_command import BackupConsoleCommand
from core.commands.console import BackupConsole
from core.config import AppConfig
from core.game.world_service import LocalWorldService
from core.logging import setup_logging
from core.notifications import ConsoleChatService
from core.paths import ensure_runtime_directories
from i18n.i18n import initialize_i18n


def main(argv: list[str] | None = None) -> int:
    arguments = list(sys.argv if argv is None else argv)
    ensure_runtime_directories()

    config = AppConfig()
    initialize_i18n(config.get_language())
    logger = setup_logging(config.get_log_level())

    app = QCoreApplication(arguments)

    backup_root = Path(config.get_backup_root_dir())
    backup_root.mkdir(parents=True, exist_ok=True)
    store = BackupStore(
        backup_root=backup_root,
        codec=get_codec(config.get_backup_format()),
        logger=logger.getChild("backups.store"),
    )
    directory_index = SaveDirectoryIndex(
        saves_root=Path(config.get_saves_root()),
        store=store,
        logger=logger.getChild("backups.index"),
    )
    world_service = LocalWorldService(config=config, logger=logger.getChild("game"))
    chat_service = ConsoleChatService() if config.get_chat_echo_enabled() else None
    manager = BackupManager(
        directory_index=directory_index,
        store=store,
        world_service=world_service,
        chat_service=chat_service,
        gate=OperationGate(lock_path=backup_root / LOCK_FILE_NAME),
        logger=logger.getChild("backups.manager"),
        backup_limit=config.get_backup_limit(),
        keep_previous=config.get_restore_keep_previous(),
        wait_timeout=config.get_operation_wait_timeout(),
    )
    runner = BackupTaskRunner(logger=logger.getChild("backups.runner"))
    command = BackupConsoleCommand(
        manager=manager,
        world_service=world_service,
        runner=runner,
        logger=logger.getChild("commands.backup"),
    )

    app.aboutToQuit.connect(runner.cancel_pending)

    if len(arguments) <= 1:
        console = BackupConsole(command=command, runner=runner, logger=logger.getChild("console"))
        console.finished.connect(app.quit)
        console.start()
        app.exec()
        return 1 if runner.failed_count else 0

    params = arguments[1:]
    if params[0] in command.get_commands():
        params = params[1:]

    accepted = command.execute(params)
    if not runner.is_idle():
        runner.idle.connect(app.quit)
        app.exec()

    return 0 if accepted and runner.failed_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
