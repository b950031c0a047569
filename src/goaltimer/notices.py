"""
User-facing notices (confirmations, errors) raised by background work.
"""

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"success": logging.INFO, "info": logging.INFO, "error": logging.WARNING}


@dataclass(frozen=True)
class Notice:
    level: str  # "success" | "info" | "error"
    message: str


NoticeHandler = Callable[[Notice], None]


class Notifier:
    def __init__(self) -> None:
        self._handlers: list[NoticeHandler] = []

    def add_handler(self, handler: NoticeHandler) -> Callable[[], None]:
        """Add a handler. Returns a cleanup function."""
        self._handlers.append(handler)
        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def emit(self, level: str, message: str) -> Notice:
        notice = Notice(level, message)
        logger.log(_LOG_LEVELS.get(level, logging.INFO), message)
        for handler in list(self._handlers):
            try:
                handler(notice)
            except Exception:
                logger.exception("Notice handler failed")
        return notice

    def success(self, message: str) -> Notice:
        return self.emit("success", message)

    def info(self, message: str) -> Notice:
        return self.emit("info", message)

    def error(self, message: str) -> Notice:
        return self.emit("error", message)
