from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notification(BaseModel):
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[Notification], None]


class Notifier:
    """Transient notification channel (toasts) shared by success and failure messages."""

    def __init__(self, max_history: int = 50) -> None:
        self.history: Deque[Notification] = deque(maxlen=max_history)
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def latest(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        note = Notification(level=level, message=message)
        self.history.append(note)
        log = logger.warning if level is NotificationLevel.ERROR else logger.info
        log("[%s] %s", level.value, message)
        for listener in list(self._listeners):
            try:
                listener(note)
            except Exception:
                logger.exception("Notification listener %r failed", listener)
        return note

    def success(self, message: str) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self.notify(NotificationLevel.ERROR, message)

    def info(self, message: str) -> Notification:
        return self.notify(NotificationLevel.INFO, message)
