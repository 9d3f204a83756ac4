from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable

from PySide6.QtCore import QObject, Signal, Slot

OperationFactory = Callable[[threading.Event], Awaitable[object]]


class BackupOperationWorker(QObject):
    success = Signal(int, object)
    error = Signal(int, object)

    def __init__(self, task_id: int, name: str, factory: OperationFactory) -> None:
        super().__init__()
        self._task_id = task_id
        self._name = name
        self._factory = factory
        self._cancel_event = threading.Event()

    @property
    def task_id(self) -> int:
        return self._task_id

    @property
    def name(self) -> str:
        return self._name

    def cancel(self) -> None:
        self._cancel_event.set()

    @Slot()
    def run(self) -> None:
        try:
            result = asyncio.run(self._factory(self._cancel_event))
            self.success.emit(self._task_id, result)
        except Exception as error:
            self.error.emit(self._task_id, error)
