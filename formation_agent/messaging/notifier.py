"""User-facing toast notifications."""

import logging
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)

_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    """Presentation hook for short status messages."""

    def notify(self, message: str, level: str = "info") -> None:
        ...


class LoggingNotifier:
    """Notifier that writes toasts to the log and keeps them for inspection."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.messages.append((level, message))
        logger.log(_LEVELS.get(level, logging.INFO), f"[toast:{level}] {message}")
