from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import shlex
import subprocess
from typing import Callable, Protocol

from core.config import AppConfig
from core.system.process_check import is_process_running


@dataclass(slots=True)
class WorldHandle:
    world_name: str
    save_name: str
    save_dir: Path


class WorldService(Protocol):
    def get_current_world(self) -> WorldHandle | None:
        ...

    def save_all(self) -> None:
        ...

    def suspend_save(self, world_name: str, save_name: str) -> None:
        ...

    def resume_save(self, world_name: str, save_name: str) -> None:
        ...


class LocalWorldService:
    """Active-world view of a locally running dedicated server.

    The loaded world/save comes from config. When a server process name is
    configured, the world only counts as loaded while that process runs.
    Flushing and pausing are delegated to optional hook commands.
    """

    def __init__(
        self,
        config: AppConfig,
        logger: logging.Logger | None = None,
        process_check: Callable[[str], bool] = is_process_running,
    ) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("backupkeeper.game")
        self._process_check = process_check

    def get_current_world(self) -> WorldHandle | None:
        active = self._config.get_active_world()
        if active is None:
            return None

        process_name = self._config.get_server_process_name()
        if process_name != "" and not self._process_check(process_name):
            self._logger.debug("Server process %s is not running", process_name)
            return None

        world_name, save_name = active
        save_dir = Path(self._config.get_saves_root()) / world_name / save_name
        return WorldHandle(world_name=world_name, save_name=save_name, save_dir=save_dir)

    def save_all(self) -> None:
        active = self._config.get_active_world()
        world_name, save_name = active if active is not None else ("", "")
        self._run_hook("save", world_name, save_name)

    def suspend_save(self, world_name: str, save_name: str) -> None:
        self._run_hook("suspend", world_name, save_name)

    def resume_save(self, world_name: str, save_name: str) -> None:
        self._run_hook("resume", world_name, save_name)

    def _run_hook(self, hook: str, world_name: str, save_name: str) -> None:
        command = self._config.get_hook_command(hook)
        if command == "":
            self._logger.debug("No %s hook configured", hook)
            return

        arguments = [part.format(world=world_name, save=save_name) for part in shlex.split(command)]
        self._logger.info("Running %s hook: %s", hook, arguments[0])
        subprocess.run(
            arguments,
            check=True,
            capture_output=True,
            text=True,
            timeout=self._config.get_hook_timeout(),
        )
