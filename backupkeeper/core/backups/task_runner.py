from __future__ import annotations

from dataclasses import dataclass
import itertools
import logging
from typing import Callable

from PySide6.QtCore import QObject, QThread, Signal, Slot

from core.backups.backup_worker import BackupOperationWorker, OperationFactory


@dataclass(slots=True)
class _RunningTask:
    name: str
    thread: QThread
    worker: BackupOperationWorker
    on_success: Callable[[object], None]
    on_error: Callable[[Exception], None]


class BackupTaskRunner(QObject):
    """Starts each backup operation on its own QThread and reports back on the owner thread."""

    task_started = Signal(int, str)
    task_finished = Signal(int, str, bool)
    idle = Signal()

    def __init__(self, logger: logging.Logger | None = None, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._logger = logger or logging.getLogger("backupkeeper.backups.runner")
        self._tasks: dict[int, _RunningTask] = {}
        self._ids = itertools.count(1)
        self._failed_count = 0

    @property
    def failed_count(self) -> int:
        return self._failed_count

    def is_idle(self) -> bool:
        return len(self._tasks) == 0

    def submit(
        self,
        name: str,
        factory: OperationFactory,
        on_success: Callable[[object], None],
        on_error: Callable[[Exception], None],
    ) -> int:
        task_id = next(self._ids)
        thread = QThread(self)
        worker = BackupOperationWorker(task_id=task_id, name=name, factory=factory)
        worker.moveToThread(thread)

        thread.started.connect(worker.run)
        worker.success.connect(self._on_worker_success)
        worker.error.connect(self._on_worker_error)
        worker.success.connect(thread.quit)
        worker.error.connect(thread.quit)
        thread.finished.connect(worker.deleteLater)
        thread.finished.connect(thread.deleteLater)

        self._tasks[task_id] = _RunningTask(
            name=name,
            thread=thread,
            worker=worker,
            on_success=on_success,
            on_error=on_error,
        )
        self._logger.debug("Starting backup task #%s (%s)", task_id, name)
        self.task_started.emit(task_id, name)
        thread.start()
        return task_id

    def cancel_pending(self) -> None:
        for task in self._tasks.values():
            task.worker.cancel()

    def wait_all(self) -> None:
        for task in list(self._tasks.values()):
            task.thread.wait()

    @Slot(int, object)
    def _on_worker_success(self, task_id: int, result: object) -> None:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return
        try:
            task.on_success(result)
        finally:
            self._finish(task_id, task, True)

    @Slot(int, object)
    def _on_worker_error(self, task_id: int, error: object) -> None:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return
        self._failed_count += 1
        try:
            if isinstance(error, Exception):
                task.on_error(error)
            else:
                task.on_error(RuntimeError(str(error)))
        finally:
            self._finish(task_id, task, False)

    def _finish(self, task_id: int, task: _RunningTask, succeeded: bool) -> None:
        task.thread.quit()
        task.thread.wait()
        self.task_finished.emit(task_id, task.name, succeeded)
        if not self._tasks:
            self.idle.emit()
