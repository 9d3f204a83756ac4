from __future__ import annotations

import psutil


def is_process_running(process_name: str) -> bool:
    normalized = process_name.strip().lower()
    if normalized == "":
        return False

    for process in psutil.process_iter(["name"]):
        name = process.info.get("name")
        if isinstance(name, str) and name.lower() == normalized:
            return True
    return False
