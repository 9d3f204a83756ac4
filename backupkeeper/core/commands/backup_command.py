from __future__ import annotations

from datetime import datetime
import logging
from typing import Callable, Protocol, Sequence

from core.backups.backup_worker import OperationFactory
from core.backups.errors import (
    BackupError,
    BackupIOError,
    IndexValidationError,
    NoActiveWorldError,
    OperationCancelledError,
    OperationInProgressError,
    UnexpectedBackupError,
    ValidationReason,
)
from core.backups.manager import DEFAULT_LABEL, BackupManager
from core.backups.models import BackupInfo, BackupMode, OperationResult
from core.game.world_service import WorldService
from i18n.i18n import tr


class TaskRunner(Protocol):
    def submit(
        self,
        name: str,
        factory: OperationFactory,
        on_success: Callable[[object], None],
        on_error: Callable[[Exception], None],
    ) -> int:
        ...


class BackupConsoleCommand:
    """Operator console command: ``backup [info|list|restore|delete] [w s b]``.

    Reads run inline. Mutations are handed to the task runner so the caller
    never blocks on archive I/O, and results come back as log lines.
    """

    COMMANDS = ("backup", "bp")

    def __init__(
        self,
        manager: BackupManager,
        world_service: WorldService,
        runner: TaskRunner,
        logger: logging.Logger | None = None,
    ) -> None:
        self._manager = manager
        self._world_service = world_service
        self._runner = runner
        self._logger = logger or logging.getLogger("backupkeeper.commands.backup")

    def get_commands(self) -> tuple[str, ...]:
        return self.COMMANDS

    def get_description(self) -> str:
        return tr("backup.description")

    def execute(self, params: Sequence[str]) -> bool:
        """Run one command line; ``False`` when it was rejected or could not be handed off."""
        arguments = [str(param) for param in params]
        self._logger.debug("The 'backup' command was invoked with params: %s", arguments)

        try:
            return self._dispatch(arguments)
        except Exception:
            self._logger.exception("An unexpected exception occurred while executing the backup command")
            return False

    def _dispatch(self, arguments: list[str]) -> bool:
        if len(arguments) == 0:
            return self._create()

        if len(arguments) == 1:
            subcommand = arguments[0]
            if subcommand == "info":
                self._info()
                return True
            if subcommand == "list":
                self._list()
                return True
            if subcommand in ("restore", "delete"):
                self._logger.info(tr("backup.usage.ids", command=subcommand))
            else:
                self._logger.info(tr("backup.error.unknown_command"))
            return False

        if len(arguments) == 4:
            subcommand = arguments[0]
            if subcommand not in ("restore", "delete"):
                self._logger.info(tr("backup.error.unknown_command"))
                return False

            indices = self._parse_indices(arguments[1], arguments[2], arguments[3])
            if indices is None:
                return False

            if subcommand == "restore":
                return self._restore(*indices)
            return self._delete(*indices)

        self._logger.info(tr("backup.error.wrong_arguments"))
        return False

    def _create(self) -> bool:
        if self._world_service.get_current_world() is None:
            self._logger.error(tr("backup.create.no_active_world"))
            return False

        self._logger.info(tr("backup.create.queued", label=DEFAULT_LABEL))
        self._runner.submit(
            "create",
            lambda cancel_event: self._manager.create_backup(
                DEFAULT_LABEL, BackupMode.SAVE_ALL_AND_BACKUP, cancel_event
            ),
            self._on_created,
            lambda error: self._on_failed("create", error),
        )
        return True

    def _restore(self, world_index: int, save_index: int, backup_index: int) -> bool:
        target = self._validate(world_index, save_index, backup_index)
        if target is None:
            return False

        self._logger.info(
            tr(
                "backup.restore.queued",
                world=target.world.name,
                save=target.save.name,
                label=target.backup.label,
            )
        )
        self._runner.submit(
            "restore",
            lambda cancel_event: self._manager.restore_backup(world_index, save_index, backup_index, cancel_event),
            self._on_restored,
            lambda error: self._on_failed("restore", error),
        )
        return True

    def _delete(self, world_index: int, save_index: int, backup_index: int) -> bool:
        target = self._validate(world_index, save_index, backup_index)
        if target is None:
            return False

        self._logger.info(
            tr(
                "backup.delete.queued",
                world=target.world.name,
                save=target.save.name,
                label=target.backup.label,
            )
        )
        self._runner.submit(
            "delete",
            lambda cancel_event: self._manager.delete_backup(world_index, save_index, backup_index, cancel_event),
            self._on_deleted,
            lambda error: self._on_failed("delete", error),
        )
        return True

    def _info(self) -> None:
        latest = self._manager.latest_backup()
        if latest is None:
            self._logger.info(tr("backup.error.no_backups"))
            return

        self._logger.info(
            tr(
                "backup.info.latest",
                label=latest.label,
                world=latest.world_name,
                save=latest.save_name,
                created=format_datetime(latest.created_at),
                size=format_size(latest.size_bytes),
            )
        )
        self._logger.info(tr("backup.info.location", path=latest.filepath))
        self._logger.info(tr("backup.info.total", count=self._manager.backup_count()))

    def _list(self) -> None:
        worlds = self._manager.list_backups()
        if not any(save.backups for world in worlds for save in world.saves):
            self._logger.info(tr("backup.error.no_backups"))
            return

        lines = [tr("backup.list.header")]
        for world_index, world in enumerate(worlds):
            lines.append(tr("backup.list.world", index=world_index, name=world.name))
            for save_index, save in enumerate(world.saves):
                lines.append(tr("backup.list.save", index=save_index, name=save.name))
                if not save.backups:
                    lines.append(tr("backup.list.save_empty"))
                for backup_index, backup in enumerate(save.backups):
                    lines.append(_format_backup_line(backup_index, backup))

        self._logger.info("\n".join(lines))

    def _validate(self, world_index: int, save_index: int, backup_index: int):
        try:
            return self._manager.resolve(world_index, save_index, backup_index)
        except IndexValidationError as error:
            self._logger.info(describe_error(error))
            return None

    def _parse_indices(self, world_param: str, save_param: str, backup_param: str) -> tuple[int, int, int] | None:
        parsed: list[int] = []
        valid = True
        for value, dimension in ((world_param, "world"), (save_param, "save"), (backup_param, "backup")):
            try:
                parsed.append(int(value.strip()))
            except ValueError:
                self._logger.info(
                    tr("backup.error.invalid_argument", value=value, name=tr(f"backup.dimension.{dimension}"))
                )
                valid = False

        if not valid:
            return None
        return parsed[0], parsed[1], parsed[2]

    def _on_created(self, result: object) -> None:
        info, elapsed = result
        seconds = f"{elapsed.total_seconds():.1f}"
        if info is None:
            self._logger.info(tr("backup.create.flush_only", seconds=seconds))
            return

        self._logger.info(tr("backup.create.success", seconds=seconds))
        self._logger.info(tr("backup.create.location", path=info.filepath))

    def _on_restored(self, result: object) -> None:
        if not isinstance(result, OperationResult):
            return

        target = result.target
        self._logger.info(
            tr(
                "backup.restore.success",
                world=target.world.name,
                save=target.save.name,
                label=target.backup.label,
                seconds=f"{result.elapsed.total_seconds():.1f}",
            )
        )
        if result.safety_copy is not None:
            self._logger.info(tr("backup.restore.safety_copy", path=result.safety_copy))

    def _on_deleted(self, result: object) -> None:
        if not isinstance(result, OperationResult):
            return

        target = result.target
        self._logger.info(
            tr("backup.delete.success", world=target.world.name, save=target.save.name, label=target.backup.label)
        )

    def _on_failed(self, operation: str, error: Exception) -> None:
        if isinstance(error, (IndexValidationError, OperationCancelledError)):
            self._logger.info(describe_error(error, operation))
        elif isinstance(error, BackupError):
            self._logger.error(describe_error(error, operation))
        else:
            self._logger.error(describe_error(error, operation), exc_info=error)


def describe_error(error: Exception, operation: str | None = None) -> str:
    operation_text = tr(f"backup.operation.{operation}") if operation else ""

    if isinstance(error, IndexValidationError):
        if error.reason == ValidationReason.EMPTY:
            return tr("backup.error.no_backups")
        return tr(
            "backup.error.out_of_range",
            name=tr(f"backup.dimension.{error.dimension.value}"),
            max=error.max_index,
        )

    if isinstance(error, NoActiveWorldError):
        return tr("backup.error.no_active_world")

    if isinstance(error, OperationInProgressError):
        return tr("backup.error.in_progress", holder=error.holder or tr("common.not_available"))

    if isinstance(error, OperationCancelledError):
        return tr("backup.error.cancelled", operation=tr(f"backup.operation.{error.operation}"))

    if isinstance(error, BackupIOError):
        return tr(
            "backup.error.io",
            operation=operation_text,
            phase=tr(f"backup.phase.{error.phase.value}"),
            detail=error.detail,
        )

    if isinstance(error, UnexpectedBackupError):
        return tr("backup.error.unexpected", operation=tr(f"backup.operation.{error.operation}"))

    return tr("backup.error.unexpected", operation=operation_text)


def format_datetime(value: datetime | None) -> str:
    if value is None:
        return tr("common.not_available")
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_size(size_bytes: int | None) -> str:
    if size_bytes is None:
        return tr("common.not_available")
    if size_bytes < 1024:
        return tr("units.bytes", value=size_bytes)
    if size_bytes < 1024 * 1024:
        return tr("units.kib", value=f"{size_bytes / 1024:.1f}")
    return tr("units.mib", value=f"{size_bytes / (1024 * 1024):.2f}")


def _format_backup_line(index: int, backup: BackupInfo) -> str:
    return tr(
        "backup.list.backup",
        index=index,
        created=format_datetime(backup.created_at),
        label=backup.label,
        size=format_size(backup.size_bytes),
    )
