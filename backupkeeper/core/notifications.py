from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO


class ChatService(Protocol):
    def send_message(self, text: str) -> None:
        ...


class ConsoleChatService:
    def __init__(self, stream: TextIO | None = None, prefix: str = "[backup]") -> None:
        self._stream = stream
        self._prefix = prefix

    def send_message(self, text: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(f"{self._prefix} {text}\n")
        stream.flush()


def notify(chat_service: ChatService | None, text: str, logger: logging.Logger | None = None) -> None:
    if chat_service is None:
        return

    try:
        chat_service.send_message(text)
    except Exception:
        (logger or logging.getLogger("backupkeeper.notifications")).warning(
            "Chat notification failed", exc_info=True
        )
