from __future__ import annotations

import json
import os
from pathlib import Path

from conftest import make_save
from core.backups.directory_index import SaveDirectoryIndex
from core.backups.store import BackupStore


def _fake_backup(backup_root: Path, world: str, save: str, stamp: str, label: str, created_at: str | None) -> Path:
    directory = backup_root / world / save
    directory.mkdir(parents=True, exist_ok=True)
    artifact = directory / f"{stamp}__{label}.zip"
    artifact.write_bytes(b"PK" + label.encode())
    if created_at is not None:
        (directory / f"{stamp}__{label}.meta.json").write_text(
            json.dumps({"label": label, "created_at": created_at}), encoding="utf-8"
        )
    return artifact


def test_empty_roots_yield_no_worlds(tmp_path: Path) -> None:
    index = SaveDirectoryIndex(tmp_path / "missing-saves", BackupStore(tmp_path / "missing-backups"))

    assert index.list_worlds() == []
    assert index.latest_backup() is None
    assert index.backup_count() == 0


def test_lists_every_backup_newest_first_and_stably(saves_root: Path, backup_root: Path) -> None:
    make_save(saves_root, "Navezgane", "MySave")
    for day in range(1, 6):
        _fake_backup(
            backup_root,
            "Navezgane",
            "MySave",
            f"2026-10-0{day}_10-00-00-000000",
            f"Day {day}",
            f"2026-10-0{day}T10:00:00+00:00",
        )
    index = SaveDirectoryIndex(saves_root, BackupStore(backup_root))

    first = index.list_backups("Navezgane", "MySave")
    second = index.list_backups("Navezgane", "MySave")

    assert [backup.label for backup in first] == ["Day 5", "Day 4", "Day 3", "Day 2", "Day 1"]
    assert [backup.filepath for backup in first] == [backup.filepath for backup in second]


def test_worlds_and_saves_are_union_of_live_and_backup_trees(saves_root: Path, backup_root: Path) -> None:
    make_save(saves_root, "navezgane", "Live only")
    make_save(saves_root, "Pregen01", "Both")
    _fake_backup(backup_root, "Pregen01", "Both", "2026-10-01_10-00-00-000000", "a", "2026-10-01T10:00:00+00:00")
    _fake_backup(backup_root, "Archived", "Deleted save", "2026-10-01_10-00-00-000000", "b", None)
    (saves_root / "Pregen01" / ".Both.previous").mkdir()
    (saves_root / ".trash").mkdir()

    worlds = SaveDirectoryIndex(saves_root, BackupStore(backup_root)).list_worlds()

    assert [world.name for world in worlds] == ["Archived", "navezgane", "Pregen01"]
    assert [save.name for save in worlds[2].saves] == ["Both"]
    assert len(worlds[2].saves[0].backups) == 1
    assert worlds[1].saves[0].backups == []
    assert worlds[0].saves[0].save_dir == saves_root / "Archived" / "Deleted save"


def test_artifact_without_metadata_uses_file_name_and_mtime(saves_root: Path, backup_root: Path) -> None:
    artifact = _fake_backup(backup_root, "Navezgane", "MySave", "2026-10-01_10-00-00-000000", "Old style", None)
    os.utime(artifact, (1_700_000_000, 1_700_000_000))

    backups = SaveDirectoryIndex(saves_root, BackupStore(backup_root)).list_backups("Navezgane", "MySave")

    assert len(backups) == 1
    assert backups[0].label == "Old style"
    assert backups[0].created_at.timestamp() == 1_700_000_000


def test_temp_files_and_orphan_metadata_are_invisible(saves_root: Path, backup_root: Path) -> None:
    directory = backup_root / "Navezgane" / "MySave"
    directory.mkdir(parents=True)
    (directory / ".2026__x.zip.tmp-abc123").write_bytes(b"partial")
    (directory / "2026__orphan.meta.json").write_text("{}", encoding="utf-8")

    assert SaveDirectoryIndex(saves_root, BackupStore(backup_root)).list_backups("Navezgane", "MySave") == []


def test_latest_backup_spans_all_saves(saves_root: Path, backup_root: Path) -> None:
    _fake_backup(backup_root, "A", "s1", "2026-10-01_10-00-00-000000", "older", "2026-10-01T10:00:00+00:00")
    _fake_backup(backup_root, "B", "s2", "2026-10-03_10-00-00-000000", "newest", "2026-10-03T10:00:00+00:00")
    _fake_backup(backup_root, "B", "s3", "2026-10-02_10-00-00-000000", "middle", "2026-10-02T10:00:00+00:00")
    index = SaveDirectoryIndex(saves_root, BackupStore(backup_root))

    latest = index.latest_backup()

    assert latest is not None
    assert latest.label == "newest"
    assert (latest.world_name, latest.save_name) == ("B", "s2")
    assert index.backup_count() == 3
