from __future__ import annotations

from typing import Sequence, TypeVar

from core.backups.directory_index import SaveDirectoryIndex
from core.backups.errors import IndexDimension, IndexValidationError, ValidationReason
from core.backups.models import ResolvedTarget

T = TypeVar("T")


class IndexResolver:
    """Turns a (world, save, backup) index triple into concrete entries.

    The lists are read at call time. Checking stops at the first dimension
    that fails, since deeper lists only exist under a valid outer entry.
    """

    def __init__(self, directory_index: SaveDirectoryIndex) -> None:
        self._directory_index = directory_index

    def resolve(self, world_index: int, save_index: int, backup_index: int) -> ResolvedTarget:
        worlds = self._directory_index.list_worlds()
        world = _pick(worlds, world_index, IndexDimension.WORLD)
        save = _pick(world.saves, save_index, IndexDimension.SAVE)
        backup = _pick(save.backups, backup_index, IndexDimension.BACKUP)

        return ResolvedTarget(
            world_index=world_index,
            save_index=save_index,
            backup_index=backup_index,
            world=world,
            save=save,
            backup=backup,
        )


def _pick(items: Sequence[T], index: int, dimension: IndexDimension) -> T:
    count = len(items)
    if isinstance(index, bool) or not isinstance(index, int):
        raise TypeError(f"{dimension.value} index must be an int, got {type(index).__name__}")

    if 0 <= index < count:
        return items[index]

    if count == 0:
        raise IndexValidationError(dimension, ValidationReason.EMPTY, index)
    raise IndexValidationError(dimension, ValidationReason.OUT_OF_RANGE, index, max_index=count - 1)
