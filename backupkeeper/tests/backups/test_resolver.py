from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_save
from core.backups.directory_index import SaveDirectoryIndex
from core.backups.errors import IndexDimension, IndexValidationError, ValidationReason
from core.backups.resolver import IndexResolver
from core.backups.store import BackupStore


@pytest.fixture
def populated(saves_root: Path, backup_root: Path) -> IndexResolver:
    store = BackupStore(backup_root)
    save_dir = make_save(saves_root, "Navezgane", "MySave")
    for label in ("first", "second", "third"):
        store.write("Navezgane", "MySave", save_dir, label)
    make_save(saves_root, "Pregen01", "Empty save")
    return IndexResolver(SaveDirectoryIndex(saves_root, store))


def _expect(resolver: IndexResolver, triple: tuple[int, int, int]) -> IndexValidationError:
    with pytest.raises(IndexValidationError) as excinfo:
        resolver.resolve(*triple)
    return excinfo.value


def test_no_worlds_is_empty_not_out_of_range(saves_root: Path, backup_root: Path) -> None:
    resolver = IndexResolver(SaveDirectoryIndex(saves_root, BackupStore(backup_root)))

    error = _expect(resolver, (0, 0, 0))

    assert error.dimension == IndexDimension.WORLD
    assert error.reason == ValidationReason.EMPTY
    assert error.max_index is None


@pytest.mark.parametrize("world_index", [2, 3, 1000, -1])
def test_world_out_of_range_reports_max(populated: IndexResolver, world_index: int) -> None:
    error = _expect(populated, (world_index, 0, 0))

    assert error.dimension == IndexDimension.WORLD
    assert error.reason == ValidationReason.OUT_OF_RANGE
    assert error.max_index == 1
    assert error.value == world_index


def test_backup_out_of_range_reports_backup_dimension(populated: IndexResolver) -> None:
    error = _expect(populated, (0, 0, 5))

    assert error.dimension == IndexDimension.BACKUP
    assert error.reason == ValidationReason.OUT_OF_RANGE
    assert error.max_index == 2


def test_save_without_backups_is_empty_backup_dimension(populated: IndexResolver) -> None:
    error = _expect(populated, (1, 0, 0))

    assert error.dimension == IndexDimension.BACKUP
    assert error.reason == ValidationReason.EMPTY


def test_outer_failure_stops_before_inner_dimensions(populated: IndexResolver) -> None:
    error = _expect(populated, (0, 7, -3))

    assert error.dimension == IndexDimension.SAVE
    assert error.max_index == 0


def test_valid_triple_resolves_newest_first(populated: IndexResolver) -> None:
    target = populated.resolve(0, 0, 0)

    assert target.world.name == "Navezgane"
    assert target.save.name == "MySave"
    assert target.backup.label == "third"
    assert populated.resolve(0, 0, 2).backup.label == "first"


def test_non_int_indices_are_rejected(populated: IndexResolver) -> None:
    with pytest.raises(TypeError):
        populated.resolve(True, 0, 0)
