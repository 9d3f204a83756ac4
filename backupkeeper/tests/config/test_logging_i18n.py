from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from core.logging import setup_logging
from core.resources import get_translations_dir
from i18n.i18n import I18nManager


def test_setup_logging_writes_rotating_app_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path / "AppData" / "Roaming"))

    logger = setup_logging("debug")
    try:
        logging.getLogger("backupkeeper.backups.manager").info("Backup create finished")
        for handler in logger.handlers:
            handler.flush()

        file_handlers = [handler for handler in logger.handlers if isinstance(handler, RotatingFileHandler)]
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert len(file_handlers) == 1
        content = Path(file_handlers[0].baseFilename).read_text(encoding="utf-8")
        assert "| INFO | backupkeeper.backups.manager | Backup create finished" in content
    finally:
        _reset(logger)


def test_setup_logging_unknown_level_falls_back_to_info(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("APPDATA", str(tmp_path / "AppData" / "Roaming"))

    logger = setup_logging("chatty")
    try:
        assert logger.level == logging.INFO
    finally:
        _reset(logger)


def test_translations_switch_language_and_fall_back() -> None:
    manager = I18nManager(translations_dir=get_translations_dir())
    manager.load_translations()

    assert manager.available_languages() == ["de", "en"]
    assert manager.translate("backup.dimension.world") == "world id"

    manager.set_language("de", emit_signal=False)
    assert manager.translate("backup.dimension.world") == "Welt-ID"

    manager.set_language("xx", emit_signal=False)
    assert manager.current_language == "en"
    assert manager.translate("missing.key") == "missing.key"
    assert manager.translate("backup.error.invalid_argument", value="x") == "'{value}' is an invalid {name}"


def _reset(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
