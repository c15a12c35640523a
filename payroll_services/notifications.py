"""
Operator notifications emitted by BatchService.

BatchService reports outcomes ("3 workers snoozed", "execution finished
with 2 failures") through a ``NotificationSink``.  How they reach a person
is the caller's concern; the default sink writes them to the log.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from payroll_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    message: str = ""
    context: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationSink(Protocol):
    """Protocol for delivering operator notifications."""

    def notify(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Default: notifications become structured log records."""

    _LEVELS = {
        NotificationLevel.INFO: "info",
        NotificationLevel.SUCCESS: "info",
        NotificationLevel.WARNING: "warning",
        NotificationLevel.ERROR: "error",
    }

    def notify(self, notification: Notification) -> None:
        log = getattr(logger, self._LEVELS[notification.level])
        log(
            "operator_notification",
            extra={
                "notification_level": notification.level.value,
                "title": notification.title,
                "notification_message": notification.message,
                **notification.context,
            },
        )


class RecordingNotificationSink:
    """Keeps every notification in memory, for tests and previews."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)

    @property
    def notifications(self) -> tuple[Notification, ...]:
        with self._lock:
            return tuple(self._items)

    def titles(self) -> list[str]:
        return [n.title for n in self.notifications]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
