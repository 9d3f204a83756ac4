from __future__ import annotations

import logging
import shlex
import sys
from typing import TextIO

from PySide6.QtCore import QObject, QThread, Signal, Slot

from core.backups.task_runner import BackupTaskRunner
from core.commands.backup_command import BackupConsoleCommand
from i18n.i18n import tr

QUIT_WORDS = ("quit", "exit")


class ConsoleInputWorker(QObject):
    line_received = Signal(str)
    closed = Signal()

    def __init__(self, stream: TextIO | None = None) -> None:
        super().__init__()
        self._stream = stream

    @Slot()
    def run(self) -> None:
        stream = self._stream or sys.stdin
        try:
            for raw_line in stream:
                line = raw_line.strip()
                if line.lower() in QUIT_WORDS:
                    break
                if line:
                    self.line_received.emit(line)
        finally:
            self.closed.emit()


class BackupConsole(QObject):
    """Long-lived operator console feeding every line to one shared backup command.

    Lines are read on a separate thread and dispatched on the owner thread,
    so all operations of a session go through the same manager and gate.
    ``finished`` fires once input is closed and the last task is done.
    """

    finished = Signal()

    def __init__(
        self,
        command: BackupConsoleCommand,
        runner: BackupTaskRunner,
        logger: logging.Logger | None = None,
        stream: TextIO | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._command = command
        self._runner = runner
        self._logger = logger or logging.getLogger("backupkeeper.console")
        self._stream = stream
        self._thread: QThread | None = None
        self._worker: ConsoleInputWorker | None = None
        self._closing = False

    def start(self) -> None:
        thread = QThread(self)
        worker = ConsoleInputWorker(self._stream)
        worker.moveToThread(thread)

        thread.started.connect(worker.run)
        worker.line_received.connect(self.handle_line)
        worker.closed.connect(self._on_input_closed)
        worker.closed.connect(thread.quit)
        thread.finished.connect(worker.deleteLater)

        self._thread = thread
        self._worker = worker
        self._logger.info(tr("console.ready", commands=", ".join(self._command.get_commands())))
        thread.start()

    @Slot(str)
    def handle_line(self, line: str) -> bool:
        try:
            tokens = shlex.split(line)
        except ValueError:
            self._logger.info(tr("backup.error.unknown_command"))
            return False

        if not tokens:
            return False

        if tokens[0].lower() not in self._command.get_commands():
            self._logger.info(tr("console.unknown", name=tokens[0], commands=", ".join(self._command.get_commands())))
            return False

        return self._command.execute(tokens[1:])

    @Slot()
    def _on_input_closed(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._logger.debug("Console input closed")

        if self._runner.is_idle():
            self._finish()
        else:
            self._runner.idle.connect(self._finish)

    @Slot()
    def _finish(self) -> None:
        if self._thread is not None:
            self._thread.quit()
            self._thread.wait(1000)
        self.finished.emit()
