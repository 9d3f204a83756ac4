from __future__ import annotations

from pathlib import Path, PurePosixPath
import tarfile
from typing import Protocol
import zipfile

import zstandard


class ArtifactCodec(Protocol):
    name: str
    suffix: str

    def write(self, source_dir: Path, destination: Path) -> int:
        ...

    def extract(self, artifact: Path, destination_dir: Path) -> int:
        ...


def _iter_source_files(source_dir: Path) -> list[Path]:
    return sorted(path for path in source_dir.rglob("*") if path.is_file())


def _arcname(source_dir: Path, path: Path) -> str:
    return path.relative_to(source_dir).as_posix()


class ZipArtifactCodec:
    name = "zip"
    suffix = ".zip"

    def write(self, source_dir: Path, destination: Path) -> int:
        files = _iter_source_files(source_dir)
        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in files:
                archive.write(path, arcname=_arcname(source_dir, path))

        with zipfile.ZipFile(destination, "r") as archive:
            bad_member = archive.testzip()
        if bad_member is not None:
            raise zipfile.BadZipFile(f"corrupt member after write: {bad_member}")

        return len(files)

    def extract(self, artifact: Path, destination_dir: Path) -> int:
        destination_dir.mkdir(parents=True, exist_ok=True)
        count = 0
        with zipfile.ZipFile(artifact, "r") as archive:
            for member in archive.infolist():
                _ensure_safe_member(member.filename)
                archive.extract(member, destination_dir)
                if not member.is_dir():
                    count += 1
        return count


class ZstdTarArtifactCodec:
    name = "tar.zst"
    suffix = ".tar.zst"

    def __init__(self, level: int = 10) -> None:
        self._level = level

    def write(self, source_dir: Path, destination: Path) -> int:
        files = _iter_source_files(source_dir)
        compressor = zstandard.ZstdCompressor(level=self._level)
        with destination.open("wb") as raw_handle:
            with compressor.stream_writer(raw_handle, closefd=False) as compressed:
                with tarfile.open(fileobj=compressed, mode="w|") as archive:
                    for path in files:
                        archive.add(path, arcname=_arcname(source_dir, path), recursive=False)
        return len(files)

    def extract(self, artifact: Path, destination_dir: Path) -> int:
        destination_dir.mkdir(parents=True, exist_ok=True)
        count = 0
        decompressor = zstandard.ZstdDecompressor()
        with artifact.open("rb") as raw_handle:
            with decompressor.stream_reader(raw_handle) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as archive:
                    for member in archive:
                        _ensure_safe_member(member.name)
                        archive.extract(member, destination_dir, filter="data")
                        if member.isfile():
                            count += 1
        return count


_CODECS: dict[str, ArtifactCodec] = {
    ZipArtifactCodec.name: ZipArtifactCodec(),
    ZstdTarArtifactCodec.name: ZstdTarArtifactCodec(),
}


def get_codec(name: str) -> ArtifactCodec:
    normalized = name.strip().lower().lstrip(".")
    codec = _CODECS.get(normalized)
    if codec is None:
        raise ValueError(f"unknown backup format: {name}")
    return codec


def codec_for_path(path: Path) -> ArtifactCodec | None:
    file_name = path.name.lower()
    for codec in sorted(_CODECS.values(), key=lambda item: len(item.suffix), reverse=True):
        if file_name.endswith(codec.suffix):
            return codec
    return None


def strip_artifact_suffix(file_name: str) -> str:
    codec = codec_for_path(Path(file_name))
    if codec is None:
        return file_name
    return file_name[: -len(codec.suffix)]


def _ensure_safe_member(name: str) -> None:
    member_path = PurePosixPath(name.replace("\\", "/"))
    if member_path.is_absolute() or ".." in member_path.parts:
        raise ValueError(f"unsafe archive member: {name}")
