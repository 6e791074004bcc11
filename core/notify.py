"""
User-facing notifications.
"""
from __future__ import annotations
import logging
import time
from collections import deque
from typing import Deque, List

from core.models import Notification

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier:
    """Logs every notification and keeps the most recent ones for display."""
    def __init__(self, maxlen: int = 20):
        self.history: Deque[Notification] = deque(maxlen=maxlen)

    def notify(self, title: str, text: str, level: str = "info") -> Notification:
        n = Notification(ts=time.time(), title=title, text=text, level=level)
        self.history.append(n)
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"[notify] {title}: {text}")
        return n

    def recent(self, n: int = 5) -> List[Notification]:
        return list(self.history)[-n:]
