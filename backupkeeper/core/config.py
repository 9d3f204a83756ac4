from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from core.paths import get_backups_dir, get_config_path, get_default_saves_root


class AppConfig:
    _SUPPORTED_FORMATS = {"zip", "tar.zst"}
    _SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}

    _STATIC_DEFAULTS: dict[str, Any] = {
        "language": "en",
        "log_level": "INFO",
        "backup_format": "zip",
        "backup_limit": 10,
        "restore_keep_previous": True,
        "operation_wait_timeout_seconds": 300,
        "active_world": "",
        "active_save": "",
        "server_process_name": "",
        "save_hook_command": "",
        "suspend_hook_command": "",
        "resume_hook_command": "",
        "hook_timeout_seconds": 60,
        "chat_echo_enabled": True,
    }

    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path = config_path or get_config_path()
        self._defaults = self._build_defaults()
        self._data: dict[str, Any] = {}
        self._load_or_create()

    @classmethod
    def _build_defaults(cls) -> dict[str, Any]:
        defaults = dict(cls._STATIC_DEFAULTS)
        defaults["saves_root"] = str(get_default_saves_root())
        defaults["backup_root_dir"] = str(get_backups_dir())
        return defaults

    def _load_or_create(self) -> None:
        if not self._config_path.exists():
            self._data = dict(self._defaults)
            self.save()
            return

        try:
            content = self._config_path.read_text(encoding="utf-8")
            loaded = json.loads(content)
            if not isinstance(loaded, dict):
                loaded = {}
        except (json.JSONDecodeError, OSError):
            logging.getLogger("backupkeeper.config").warning(
                "Unreadable config at %s, falling back to defaults", self._config_path
            )
            loaded = {}

        self._data = dict(self._defaults)
        self._data.update(loaded)

        format_value = str(self._data.get("backup_format", "")).strip().lower().lstrip(".")
        if format_value not in self._SUPPORTED_FORMATS:
            format_value = self._defaults["backup_format"]
        self._data["backup_format"] = format_value

        self.save()

    def save(self) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(
            json.dumps(self._data, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.save()

    def get_language(self) -> str:
        return str(self._data.get("language", self._defaults["language"]))

    def set_language(self, language: str) -> None:
        self._data["language"] = language
        self.save()

    def get_log_level(self) -> str:
        value = str(self._data.get("log_level", self._defaults["log_level"])).strip().upper()
        if value not in self._SUPPORTED_LOG_LEVELS:
            return self._defaults["log_level"]
        return value

    def get_saves_root(self) -> str:
        return str(self._data.get("saves_root", self._defaults["saves_root"]))

    def set_saves_root(self, root_path: str) -> None:
        self._data["saves_root"] = str(root_path)
        self.save()

    def get_backup_root_dir(self) -> str:
        return str(self._data.get("backup_root_dir", self._defaults["backup_root_dir"]))

    def set_backup_root_dir(self, root_path: str) -> None:
        self._data["backup_root_dir"] = str(root_path)
        self.save()

    def get_backup_format(self) -> str:
        return str(self._data.get("backup_format", self._defaults["backup_format"]))

    def set_backup_format(self, backup_format: str) -> None:
        normalized = backup_format.strip().lower().lstrip(".")
        if normalized not in self._SUPPORTED_FORMATS:
            raise ValueError(f"unsupported backup format: {backup_format}")
        self._data["backup_format"] = normalized
        self.save()

    def get_backup_limit(self) -> int:
        return self._non_negative_int("backup_limit")

    def set_backup_limit(self, limit: int) -> None:
        self._data["backup_limit"] = max(0, int(limit))
        self.save()

    def get_restore_keep_previous(self) -> bool:
        return bool(self._data.get("restore_keep_previous", self._defaults["restore_keep_previous"]))

    def set_restore_keep_previous(self, enabled: bool) -> None:
        self._data["restore_keep_previous"] = bool(enabled)
        self.save()

    def get_operation_wait_timeout(self) -> float:
        value = self._data.get("operation_wait_timeout_seconds")
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            return float(self._defaults["operation_wait_timeout_seconds"])
        if timeout <= 0:
            return float(self._defaults["operation_wait_timeout_seconds"])
        return timeout

    def get_active_world(self) -> tuple[str, str] | None:
        world = str(self._data.get("active_world") or "").strip()
        save = str(self._data.get("active_save") or "").strip()
        if world == "" or save == "":
            return None
        return world, save

    def set_active_world(self, world: str | None, save: str | None) -> None:
        self._data["active_world"] = world or ""
        self._data["active_save"] = save or ""
        self.save()

    def get_server_process_name(self) -> str:
        return str(self._data.get("server_process_name") or "").strip()

    def get_hook_command(self, hook: str) -> str:
        return str(self._data.get(f"{hook}_hook_command") or "").strip()

    def get_hook_timeout(self) -> float:
        value = self._data.get("hook_timeout_seconds")
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            return float(self._defaults["hook_timeout_seconds"])
        return timeout if timeout > 0 else float(self._defaults["hook_timeout_seconds"])

    def get_chat_echo_enabled(self) -> bool:
        return bool(self._data.get("chat_echo_enabled", self._defaults["chat_echo_enabled"]))

    def _non_negative_int(self, key: str) -> int:
        value = self._data.get(key, self._defaults[key])
        try:
            number = int(value)
        except (TypeError, ValueError):
            return int(self._defaults[key])
        if number < 0:
            return int(self._defaults[key])
        return number
