from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import shutil
import uuid

from core.backups.archive import ArtifactCodec, codec_for_path, get_codec, strip_artifact_suffix
from core.backups.errors import BackupIOError, IOPhase
from core.backups.models import BackupInfo, BackupMode

META_SUFFIX = ".meta.json"
_STAMP_FORMAT = "%Y-%m-%d_%H-%M-%S-%f"


class BackupStore:
    """Physical layout of backup artifacts under ``<backup_root>/<world>/<save>/``.

    Artifacts are published with write-to-temp + ``os.replace`` in the same
    directory, so a reader listing the directory sees either a complete
    artifact or nothing. Temp files carry a leading dot and a ``.tmp-<hex>``
    tail and never match an artifact suffix.
    """

    def __init__(
        self,
        backup_root: Path,
        codec: ArtifactCodec | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backup_root = Path(backup_root)
        self._codec = codec or get_codec("zip")
        self._logger = logger or logging.getLogger("backupkeeper.backups.store")

    @property
    def backup_root(self) -> Path:
        return self._backup_root

    @property
    def codec(self) -> ArtifactCodec:
        return self._codec

    def backup_dir_for(self, world_name: str, save_name: str) -> Path:
        return self._backup_root / world_name / save_name

    def list_artifacts(self, directory: Path) -> list[Path]:
        if not directory.exists() or not directory.is_dir():
            return []

        artifacts: list[Path] = []
        try:
            for path in directory.iterdir():
                if path.name.startswith(".") or not path.is_file():
                    continue
                if codec_for_path(path) is None:
                    continue
                artifacts.append(path)
        except OSError as error:
            self._logger.warning("Could not scan backup directory %s: %s", directory, error)
        return artifacts

    def read_backup_info(self, artifact: Path, world_name: str, save_name: str) -> BackupInfo:
        codec = codec_for_path(artifact)
        format_name = codec.name if codec is not None else "unknown"
        stat_info = artifact.stat()
        meta = self._read_meta(self._meta_path(artifact))

        created_at = _parse_timestamp(meta.get("created_at")) if meta else None
        if created_at is None:
            created_at = datetime.fromtimestamp(stat_info.st_mtime, tz=timezone.utc)

        label = meta.get("label") if meta else None
        if not isinstance(label, str) or label.strip() == "":
            label = _label_from_name(artifact.name)

        mode = None
        raw_mode = meta.get("mode") if meta else None
        if isinstance(raw_mode, str):
            try:
                mode = BackupMode(raw_mode)
            except ValueError:
                mode = None

        return BackupInfo(
            label=label,
            created_at=created_at,
            filepath=artifact,
            size_bytes=int(stat_info.st_size),
            world_name=world_name,
            save_name=save_name,
            mode=mode,
            format=format_name,
        )

    def write(
        self,
        world_name: str,
        save_name: str,
        source_dir: Path,
        label: str,
        mode: BackupMode = BackupMode.BACKUP_ONLY,
    ) -> BackupInfo:
        source = Path(source_dir)
        if not source.exists() or not source.is_dir():
            raise BackupIOError(IOPhase.WRITE, source, "save directory does not exist")

        target_dir = self.backup_dir_for(world_name, save_name)
        created_at = datetime.now(timezone.utc)
        token = uuid.uuid4().hex

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise BackupIOError(IOPhase.WRITE, target_dir, str(error)) from error

        artifact_path = self._unique_artifact_path(target_dir, created_at, label)
        meta_path = self._meta_path(artifact_path)
        temp_artifact = target_dir / f".{artifact_path.name}.tmp-{token}"
        temp_meta = target_dir / f".{meta_path.name}.tmp-{token}"
        meta_published = False

        try:
            try:
                file_count = self._codec.write(source, temp_artifact)
                size_bytes = int(temp_artifact.stat().st_size)
                payload = {
                    "label": label,
                    "created_at": created_at.isoformat(),
                    "world": world_name,
                    "save": save_name,
                    "mode": mode.value,
                    "format": self._codec.name,
                    "size_bytes": size_bytes,
                    "files": file_count,
                }
                temp_meta.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            except Exception as error:
                raise BackupIOError(IOPhase.WRITE, temp_artifact, str(error)) from error

            try:
                os.replace(temp_meta, meta_path)
                meta_published = True
                os.replace(temp_artifact, artifact_path)
            except OSError as error:
                raise BackupIOError(IOPhase.RENAME, artifact_path, str(error)) from error
        except BackupIOError:
            _remove_quietly(temp_artifact)
            _remove_quietly(temp_meta)
            if meta_published and not artifact_path.exists():
                _remove_quietly(meta_path)
            self._logger.warning("Rolled back partial backup in %s", target_dir)
            raise

        self._logger.info(
            "Backup written: world=%s save=%s files=%s size=%s path=%s",
            world_name,
            save_name,
            file_count,
            size_bytes,
            artifact_path,
        )
        return BackupInfo(
            label=label,
            created_at=created_at,
            filepath=artifact_path,
            size_bytes=size_bytes,
            world_name=world_name,
            save_name=save_name,
            mode=mode,
            format=self._codec.name,
        )

    def delete(self, backup_path: Path) -> None:
        artifact = Path(backup_path)
        meta_path = self._meta_path(artifact)
        try:
            artifact.unlink()
        except FileNotFoundError as error:
            raise BackupIOError(IOPhase.DELETE, artifact, "backup file no longer exists") from error
        except OSError as error:
            raise BackupIOError(IOPhase.DELETE, artifact, str(error)) from error

        try:
            meta_path.unlink(missing_ok=True)
        except OSError:
            self._logger.warning("Could not remove backup metadata %s", meta_path.name)

        self._logger.info("Backup deleted: %s", artifact)

    def staged_restore(self, backup_path: Path, target_save_dir: Path, keep_previous: bool = True) -> Path | None:
        artifact = Path(backup_path)
        target = Path(target_save_dir)
        codec = codec_for_path(artifact)
        if codec is None:
            raise BackupIOError(IOPhase.COPY, artifact, "unrecognized backup format")
        if not artifact.is_file():
            raise BackupIOError(IOPhase.COPY, artifact, "backup file no longer exists")

        staging = target.parent / f".{target.name}.restore-{uuid.uuid4().hex}"
        previous = target.parent / f".{target.name}.previous"

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            restored_files = codec.extract(artifact, staging)
        except Exception as error:
            _remove_tree_quietly(staging)
            raise BackupIOError(IOPhase.COPY, staging, str(error)) from error

        moved_live = False
        try:
            if previous.exists():
                shutil.rmtree(previous)
            if target.exists():
                os.replace(target, previous)
                moved_live = True
            os.replace(staging, target)
        except OSError as error:
            if moved_live and not target.exists():
                try:
                    os.replace(previous, target)
                except OSError:
                    self._logger.error("Live save left at safety copy %s", previous)
            _remove_tree_quietly(staging)
            raise BackupIOError(IOPhase.RENAME, target, str(error)) from error

        self._logger.info("Restored %s files from %s into %s", restored_files, artifact.name, target)

        if not moved_live:
            return None
        if not keep_previous:
            _remove_tree_quietly(previous)
            return None
        return previous

    def _unique_artifact_path(self, target_dir: Path, created_at: datetime, label: str) -> Path:
        base_name = f"{created_at.strftime(_STAMP_FORMAT)}__{sanitize_label(label)}"
        candidate = target_dir / f"{base_name}{self._codec.suffix}"
        counter = 1
        while candidate.exists() or self._meta_path(candidate).exists():
            candidate = target_dir / f"{base_name}-{counter}{self._codec.suffix}"
            counter += 1
        return candidate

    @staticmethod
    def _meta_path(artifact: Path) -> Path:
        return artifact.with_name(f"{strip_artifact_suffix(artifact.name)}{META_SUFFIX}")

    def _read_meta(self, meta_path: Path) -> dict[str, object] | None:
        if not meta_path.exists():
            return None
        try:
            payload = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            self._logger.warning("Invalid backup metadata at %s", meta_path.name)
            return None
        if not isinstance(payload, dict):
            return None
        return payload


def sanitize_label(value: str, max_len: int = 50) -> str:
    invalid = '<>:"/\\|?*'
    sanitized = "".join("_" if char in invalid or ord(char) < 32 else char for char in value).strip()
    sanitized = " ".join(sanitized.split()).strip(".")
    if sanitized == "":
        sanitized = "backup"
    return sanitized[:max_len]


def _label_from_name(file_name: str) -> str:
    stem = strip_artifact_suffix(file_name)
    if "__" in stem:
        return stem.split("__", 1)[1]
    return stem


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        pass


def _remove_tree_quietly(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path, ignore_errors=True)
