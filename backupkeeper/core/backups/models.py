from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path


class BackupMode(str, Enum):
    SAVE_ONLY = "save_only"
    SAVE_ALL_AND_BACKUP = "save_all_and_backup"
    BACKUP_ONLY = "backup_only"

    @property
    def flushes_world(self) -> bool:
        return self in (BackupMode.SAVE_ONLY, BackupMode.SAVE_ALL_AND_BACKUP)

    @property
    def writes_backup(self) -> bool:
        return self in (BackupMode.SAVE_ALL_AND_BACKUP, BackupMode.BACKUP_ONLY)


class OperationState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class BackupInfo:
    label: str
    created_at: datetime
    filepath: Path
    size_bytes: int
    world_name: str
    save_name: str
    mode: BackupMode | None = None
    format: str = "zip"


@dataclass(slots=True)
class SaveInfo:
    world_name: str
    name: str
    save_dir: Path
    backup_dir: Path
    backups: list[BackupInfo] = field(default_factory=list)


@dataclass(slots=True)
class WorldInfo:
    name: str
    saves: list[SaveInfo] = field(default_factory=list)


@dataclass(slots=True)
class ResolvedTarget:
    world_index: int
    save_index: int
    backup_index: int
    world: WorldInfo
    save: SaveInfo
    backup: BackupInfo


@dataclass(slots=True)
class OperationResult:
    operation: str
    target: ResolvedTarget
    elapsed: timedelta
    safety_copy: Path | None = None
