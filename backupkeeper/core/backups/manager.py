from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
import logging
import threading
import time
from typing import AsyncIterator, Callable

from core.backups.directory_index import SaveDirectoryIndex
from core.backups.errors import (
    BackupError,
    BackupIOError,
    IOPhase,
    NoActiveWorldError,
    OperationCancelledError,
    UnexpectedBackupError,
)
from core.backups.gate import OperationGate
from core.backups.models import (
    BackupInfo,
    BackupMode,
    OperationResult,
    OperationState,
    ResolvedTarget,
    WorldInfo,
)
from core.backups.resolver import IndexResolver
from core.backups.store import BackupStore
from core.game.world_service import WorldService
from core.notifications import ChatService, notify

DEFAULT_LABEL = "Manual backup"


class BackupManager:
    """Runs create, restore and delete one at a time and keeps reads ungated.

    Mutating calls queue on an :class:`OperationGate` in FIFO order, then go
    through validating and executing. Blocking work (gate wait, hooks,
    archive I/O) runs in worker threads so the calling event loop stays free.
    """

    def __init__(
        self,
        directory_index: SaveDirectoryIndex,
        store: BackupStore,
        world_service: WorldService,
        chat_service: ChatService | None = None,
        gate: OperationGate | None = None,
        logger: logging.Logger | None = None,
        backup_limit: int = 0,
        keep_previous: bool = True,
        wait_timeout: float | None = 300.0,
    ) -> None:
        self._directory_index = directory_index
        self._store = store
        self._world_service = world_service
        self._chat_service = chat_service
        self._gate = gate or OperationGate()
        self._logger = logger or logging.getLogger("backupkeeper.backups.manager")
        self._resolver = IndexResolver(directory_index)
        self._backup_limit = max(0, int(backup_limit))
        self._keep_previous = keep_previous
        self._wait_timeout = wait_timeout
        self._state = OperationState.IDLE

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def gate(self) -> OperationGate:
        return self._gate

    def list_backups(self) -> list[WorldInfo]:
        return self._directory_index.list_worlds()

    def latest_backup(self) -> BackupInfo | None:
        return self._directory_index.latest_backup()

    def backup_count(self) -> int:
        return self._directory_index.backup_count()

    def resolve(self, world_index: int, save_index: int, backup_index: int) -> ResolvedTarget:
        return self._resolver.resolve(world_index, save_index, backup_index)

    async def create_backup(
        self,
        label: str = DEFAULT_LABEL,
        mode: BackupMode = BackupMode.SAVE_ALL_AND_BACKUP,
        cancel_event: threading.Event | None = None,
    ) -> tuple[BackupInfo | None, timedelta]:
        started = time.monotonic()
        context = f"label={label!r} mode={mode.value}"

        try:
            info = await self._create(label, mode, cancel_event)
        except (BackupError, asyncio.CancelledError) as error:
            self._log_failure("create", context, started, error)
            raise
        except Exception as error:
            raise self._unexpected("create", context, started, error) from error

        elapsed = _elapsed(started)
        location = info.filepath if info is not None else "-"
        self._logger.info(
            "Backup create finished: %s path=%s elapsed=%.2fs", context, location, elapsed.total_seconds()
        )
        if info is None:
            message = f"World saved in {elapsed.total_seconds():.1f}s"
        else:
            message = f"Backup '{label}' completed in {elapsed.total_seconds():.1f}s"
        notify(self._chat_service, message, self._logger)
        return info, elapsed

    async def restore_backup(
        self,
        world_index: int,
        save_index: int,
        backup_index: int,
        cancel_event: threading.Event | None = None,
    ) -> OperationResult:
        started = time.monotonic()
        context = f"target={world_index}/{save_index}/{backup_index}"

        try:
            result = await self._restore(world_index, save_index, backup_index, cancel_event, started)
        except (BackupError, asyncio.CancelledError) as error:
            self._log_failure("restore", context, started, error)
            raise
        except Exception as error:
            raise self._unexpected("restore", context, started, error) from error

        self._logger.info(
            "Backup restore finished: %s backup=%s save_dir=%s safety_copy=%s elapsed=%.2fs",
            context,
            result.target.backup.filepath.name,
            result.target.save.save_dir,
            result.safety_copy,
            result.elapsed.total_seconds(),
        )
        notify(
            self._chat_service,
            f"Save '{result.target.save.name}' restored from '{result.target.backup.label}'",
            self._logger,
        )
        return result

    async def delete_backup(
        self,
        world_index: int,
        save_index: int,
        backup_index: int,
        cancel_event: threading.Event | None = None,
    ) -> OperationResult:
        started = time.monotonic()
        context = f"target={world_index}/{save_index}/{backup_index}"

        try:
            result = await self._delete(world_index, save_index, backup_index, cancel_event, started)
        except (BackupError, asyncio.CancelledError) as error:
            self._log_failure("delete", context, started, error)
            raise
        except Exception as error:
            raise self._unexpected("delete", context, started, error) from error

        self._logger.info(
            "Backup delete finished: %s path=%s elapsed=%.2fs",
            context,
            result.target.backup.filepath,
            result.elapsed.total_seconds(),
        )
        notify(self._chat_service, f"Backup '{result.target.backup.label}' deleted", self._logger)
        return result

    async def _create(
        self,
        label: str,
        mode: BackupMode,
        cancel_event: threading.Event | None,
    ) -> BackupInfo | None:
        world = self._world_service.get_current_world()
        if world is None:
            raise NoActiveWorldError()

        async with self._gated("create", cancel_event):
            self._check_cancelled("create", cancel_event)
            self._set_state(OperationState.EXECUTING)
            try:
                if mode.flushes_world:
                    await self._run_hook(IOPhase.FLUSH, self._world_service.save_all)

                info: BackupInfo | None = None
                if mode.writes_backup:
                    info = await asyncio.to_thread(
                        self._store.write,
                        world.world_name,
                        world.save_name,
                        world.save_dir,
                        label,
                        mode,
                    )
            except BackupError:
                self._set_state(OperationState.ROLLED_BACK)
                raise
            except Exception as error:
                self._set_state(OperationState.ROLLED_BACK)
                raise UnexpectedBackupError("create", error) from error

            self._set_state(OperationState.COMMITTED)
            if info is not None:
                try:
                    await asyncio.to_thread(self._apply_retention, world.world_name, world.save_name)
                except Exception:
                    self._logger.warning(
                        "Retention failed for %s/%s", world.world_name, world.save_name, exc_info=True
                    )
            return info

    async def _restore(
        self,
        world_index: int,
        save_index: int,
        backup_index: int,
        cancel_event: threading.Event | None,
        started: float,
    ) -> OperationResult:
        async with self._gated("restore", cancel_event):
            target = self._resolver.resolve(world_index, save_index, backup_index)
            self._check_cancelled("restore", cancel_event)
            self._set_state(OperationState.EXECUTING)
            world_name = target.world.name
            save_name = target.save.name

            try:
                await self._run_hook(IOPhase.SUSPEND, self._world_service.suspend_save, world_name, save_name)
                try:
                    safety_copy = await asyncio.to_thread(
                        self._store.staged_restore,
                        target.backup.filepath,
                        target.save.save_dir,
                        self._keep_previous,
                    )
                finally:
                    await self._resume(world_name, save_name)
            except BackupError:
                self._set_state(OperationState.ROLLED_BACK)
                raise
            except Exception as error:
                self._set_state(OperationState.ROLLED_BACK)
                raise UnexpectedBackupError("restore", error) from error

            self._set_state(OperationState.COMMITTED)
            return OperationResult(
                operation="restore",
                target=target,
                elapsed=_elapsed(started),
                safety_copy=safety_copy,
            )

    async def _delete(
        self,
        world_index: int,
        save_index: int,
        backup_index: int,
        cancel_event: threading.Event | None,
        started: float,
    ) -> OperationResult:
        async with self._gated("delete", cancel_event):
            target = self._resolver.resolve(world_index, save_index, backup_index)
            self._check_cancelled("delete", cancel_event)
            self._set_state(OperationState.EXECUTING)
            try:
                await asyncio.to_thread(self._store.delete, target.backup.filepath)
            except BackupError:
                self._set_state(OperationState.ROLLED_BACK)
                raise
            except Exception as error:
                self._set_state(OperationState.ROLLED_BACK)
                raise UnexpectedBackupError("delete", error) from error

            self._set_state(OperationState.COMMITTED)
            return OperationResult(operation="delete", target=target, elapsed=_elapsed(started))

    @asynccontextmanager
    async def _gated(self, operation: str, cancel_event: threading.Event | None) -> AsyncIterator[None]:
        ticket = self._gate.enqueue(operation)
        if self._gate.busy or self._gate.queued > 1:
            self._logger.info("Backup %s queued behind '%s'", operation, self._gate.holder)

        try:
            await asyncio.to_thread(self._gate.wait, ticket, self._wait_timeout, cancel_event)
        except asyncio.CancelledError:
            self._gate.abandon(ticket)
            raise

        try:
            self._set_state(OperationState.VALIDATING)
            yield
        finally:
            self._set_state(OperationState.IDLE)
            self._gate.release(ticket)

    async def _run_hook(self, phase: IOPhase, hook: Callable[..., None], *args: str) -> None:
        try:
            await asyncio.to_thread(hook, *args)
        except BackupError:
            raise
        except Exception as error:
            raise BackupIOError(phase, None, str(error)) from error

    async def _resume(self, world_name: str, save_name: str) -> None:
        try:
            await asyncio.to_thread(self._world_service.resume_save, world_name, save_name)
        except Exception:
            self._logger.warning("Resume hook failed for %s/%s", world_name, save_name, exc_info=True)

    def _apply_retention(self, world_name: str, save_name: str) -> None:
        if self._backup_limit <= 0:
            return

        backups = self._directory_index.list_backups(world_name, save_name)
        for stale in backups[self._backup_limit:]:
            try:
                self._store.delete(stale.filepath)
            except BackupIOError as error:
                self._logger.warning("Retention could not remove %s: %s", stale.filepath.name, error)

    def _check_cancelled(self, operation: str, cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError(operation)

    def _set_state(self, state: OperationState) -> None:
        self._logger.debug("Backup manager state %s -> %s", self._state.value, state.value)
        self._state = state

    def _unexpected(self, operation: str, context: str, started: float, error: Exception) -> UnexpectedBackupError:
        wrapped = UnexpectedBackupError(operation, error)
        wrapped.__cause__ = error
        self._log_failure(operation, context, started, wrapped)
        return wrapped

    def _log_failure(self, operation: str, context: str, started: float, error: BaseException) -> None:
        seconds = _elapsed(started).total_seconds()
        if isinstance(error, asyncio.CancelledError):
            self._logger.warning("Backup %s cancelled: %s elapsed=%.2fs", operation, context, seconds)
            return

        self._logger.error(
            "Backup %s failed: %s elapsed=%.2fs error=%s",
            operation,
            context,
            seconds,
            error,
            exc_info=error if isinstance(error, UnexpectedBackupError) else None,
        )


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - started)
