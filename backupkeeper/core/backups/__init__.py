from core.backups.directory_index import SaveDirectoryIndex
from core.backups.errors import (
    BackupError,
    BackupIOError,
    IndexDimension,
    IndexValidationError,
    IOPhase,
    NoActiveWorldError,
    OperationCancelledError,
    OperationInProgressError,
    UnexpectedBackupError,
    ValidationReason,
)
from core.backups.gate import OperationGate
from core.backups.manager import BackupManager
from core.backups.models import BackupInfo, BackupMode, OperationResult, OperationState, ResolvedTarget, SaveInfo, WorldInfo
from core.backups.resolver import IndexResolver
from core.backups.store import BackupStore

__all__ = [
    "BackupError",
    "BackupIOError",
    "BackupInfo",
    "BackupManager",
    "BackupMode",
    "BackupStore",
    "IndexDimension",
    "IndexResolver",
    "IndexValidationError",
    "IOPhase",
    "NoActiveWorldError",
    "OperationCancelledError",
    "OperationGate",
    "OperationInProgressError",
    "OperationResult",
    "OperationState",
    "ResolvedTarget",
    "SaveDirectoryIndex",
    "SaveInfo",
    "UnexpectedBackupError",
    "ValidationReason",
    "WorldInfo",
]
