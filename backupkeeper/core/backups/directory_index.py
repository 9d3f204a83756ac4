from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path

from core.backups.models import BackupInfo, SaveInfo, WorldInfo
from core.backups.store import BackupStore


class SaveDirectoryIndex:
    """Read-only snapshot of worlds, saves and their backups as they are on disk.

    Worlds and saves are the union of the live saves tree and the backup
    tree, so a save whose live data is gone can still be restored. Every
    call rescans; nothing is cached between calls.
    """

    def __init__(self, saves_root: Path, store: BackupStore, logger: logging.Logger | None = None) -> None:
        self._saves_root = Path(saves_root)
        self._store = store
        self._logger = logger or logging.getLogger("backupkeeper.backups.index")

    @property
    def saves_root(self) -> Path:
        return self._saves_root

    def save_dir_for(self, world_name: str, save_name: str) -> Path:
        return self._saves_root / world_name / save_name

    def list_worlds(self) -> list[WorldInfo]:
        world_names = _child_dir_names(self._saves_root) | _child_dir_names(self._store.backup_root)

        worlds: list[WorldInfo] = []
        for world_name in _ordered(world_names):
            worlds.append(WorldInfo(name=world_name, saves=self.list_saves(world_name)))

        self._logger.debug("Indexed %s worlds", len(worlds))
        return worlds

    def list_saves(self, world_name: str) -> list[SaveInfo]:
        save_names = _child_dir_names(self._saves_root / world_name) | _child_dir_names(
            self._store.backup_root / world_name
        )

        saves: list[SaveInfo] = []
        for save_name in _ordered(save_names):
            saves.append(
                SaveInfo(
                    world_name=world_name,
                    name=save_name,
                    save_dir=self.save_dir_for(world_name, save_name),
                    backup_dir=self._store.backup_dir_for(world_name, save_name),
                    backups=self.list_backups(world_name, save_name),
                )
            )
        return saves

    def list_backups(self, world_name: str, save_name: str) -> list[BackupInfo]:
        backup_dir = self._store.backup_dir_for(world_name, save_name)

        backups: list[BackupInfo] = []
        for artifact in self._store.list_artifacts(backup_dir):
            try:
                backups.append(self._store.read_backup_info(artifact, world_name, save_name))
            except OSError:
                # Removed between listing and stat; it is simply not there anymore.
                self._logger.debug("Backup vanished while indexing: %s", artifact.name)

        backups.sort(key=_backup_sort_key, reverse=True)
        return backups

    def latest_backup(self) -> BackupInfo | None:
        latest: BackupInfo | None = None
        for world in self.list_worlds():
            for save in world.saves:
                if not save.backups:
                    continue
                candidate = save.backups[0]
                if latest is None or _backup_sort_key(candidate) > _backup_sort_key(latest):
                    latest = candidate
        return latest

    def backup_count(self) -> int:
        return sum(len(save.backups) for world in self.list_worlds() for save in world.saves)


def _backup_sort_key(backup: BackupInfo) -> tuple[datetime, str]:
    return backup.created_at, backup.filepath.name


def _child_dir_names(directory: Path) -> set[str]:
    if not directory.exists() or not directory.is_dir():
        return set()

    names: set[str] = set()
    try:
        for entry in directory.iterdir():
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                names.add(entry.name)
    except OSError:
        return set()
    return names


def _ordered(names: set[str]) -> list[str]:
    return sorted(names, key=lambda name: (name.casefold(), name))
