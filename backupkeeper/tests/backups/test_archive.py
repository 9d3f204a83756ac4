from __future__ import annotations

from pathlib import Path
import zipfile

import pytest

from conftest import make_save, snapshot_tree
from core.backups.archive import (
    ZipArtifactCodec,
    ZstdTarArtifactCodec,
    codec_for_path,
    get_codec,
    strip_artifact_suffix,
)


@pytest.mark.parametrize("codec", [ZipArtifactCodec(), ZstdTarArtifactCodec(level=3)], ids=lambda codec: codec.name)
def test_codec_preserves_nested_save_tree(tmp_path: Path, codec) -> None:
    source = make_save(
        tmp_path,
        "Navezgane",
        "MySave",
        {"main.ttw": b"\x00\x01world", "Player/76561198.ttp": b"player", "Region/r.0.0.7rg": b"r" * 4096},
    )
    artifact = tmp_path / f"backup{codec.suffix}"

    assert codec.write(source, artifact) == 3
    restored = tmp_path / "restored"
    assert codec.extract(artifact, restored) == 3

    assert snapshot_tree(restored) == snapshot_tree(source)


def test_zip_extract_rejects_path_traversal(tmp_path: Path) -> None:
    artifact = tmp_path / "evil.zip"
    with zipfile.ZipFile(artifact, "w") as archive:
        archive.writestr("../outside.txt", b"nope")

    with pytest.raises(ValueError):
        ZipArtifactCodec().extract(artifact, tmp_path / "out")

    assert not (tmp_path / "outside.txt").exists()


def test_codec_lookup() -> None:
    assert get_codec("ZIP").name == "zip"
    assert get_codec(".tar.zst").name == "tar.zst"
    with pytest.raises(ValueError):
        get_codec("rar")

    assert codec_for_path(Path("a__b.tar.zst")).name == "tar.zst"
    assert codec_for_path(Path("a__b.zip")).name == "zip"
    assert codec_for_path(Path("a__b.meta.json")) is None
    assert codec_for_path(Path(".a__b.zip.tmp-abc")) is None
    assert strip_artifact_suffix("2026__Manual backup.tar.zst") == "2026__Manual backup"
