from __future__ import annotations

from enum import Enum
from pathlib import Path


class IndexDimension(str, Enum):
    WORLD = "world"
    SAVE = "save"
    BACKUP = "backup"


class ValidationReason(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    EMPTY = "empty"


class IOPhase(str, Enum):
    FLUSH = "flush"
    WRITE = "write"
    COPY = "copy"
    RENAME = "rename"
    DELETE = "delete"
    SUSPEND = "suspend"


class BackupError(Exception):
    """Base class for every failure the backup core reports to its callers."""


class IndexValidationError(BackupError):
    def __init__(
        self,
        dimension: IndexDimension,
        reason: ValidationReason,
        value: int,
        max_index: int | None = None,
    ) -> None:
        self.dimension = dimension
        self.reason = reason
        self.value = value
        self.max_index = max_index
        if reason == ValidationReason.EMPTY:
            message = f"there are no {dimension.value} entries to address (got {value})"
        else:
            message = f"{dimension.value} index {value} is out of range 0..{max_index}"
        super().__init__(message)


class NoActiveWorldError(BackupError):
    def __init__(self) -> None:
        super().__init__("no world is currently loaded")


class OperationInProgressError(BackupError):
    def __init__(self, operation: str, holder: str | None, waited: float) -> None:
        self.operation = operation
        self.holder = holder
        self.waited = waited
        super().__init__(
            f"{operation} gave up after {waited:.1f}s waiting for '{holder or 'another operation'}' to finish"
        )


class OperationCancelledError(BackupError):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} was cancelled before it started")


class BackupIOError(BackupError):
    def __init__(self, phase: IOPhase, path: Path | None, message: str) -> None:
        self.phase = phase
        self.path = path
        self.detail = message
        location = f" ({path})" if path is not None else ""
        super().__init__(f"{phase.value} failed{location}: {message}")


class UnexpectedBackupError(BackupError):
    def __init__(self, operation: str, cause: BaseException) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed unexpectedly: {cause}")
