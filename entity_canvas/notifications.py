"""
User-facing notifications and the transient violation banner.

Notifications are fire-and-forget. The banner holds the violations of the
last rejected placement or connection and dismisses itself after a fixed
duration, independent of further input.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence

from .logging import get_logger
from .validation import Violation

logger = get_logger("notifications")


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


_LOG_LEVELS = {
    NotificationLevel.SUCCESS: "info",
    NotificationLevel.INFO: "info",
    NotificationLevel.WARNING: "warning",
    NotificationLevel.ERROR: "error",
}


class LoggingNotifier:
    """Default channel: notifications go to the log."""

    def notify(self, notification: Notification) -> None:
        getattr(logger, _LOG_LEVELS[notification.level])("%s", notification.message)


class RecordingNotifier:
    """Keeps every notification in memory; handy for hosts and tests."""

    def __init__(self):
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def messages(self, level: Optional[NotificationLevel] = None) -> list[str]:
        return [n.message for n in self.notifications if level is None or n.level == level]


class ViolationBanner:
    """
    The transient list of violations shown after a rejected commit.

    Expiry is measured on `clock` so it holds even without a running
    event loop; when a loop is running a timer also clears it eagerly.
    """

    def __init__(self, duration: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self._duration = duration
        self._clock = clock
        self._violations: tuple[Violation, ...] = ()
        self._expires_at = 0.0
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def violations(self) -> tuple[Violation, ...]:
        if self._violations and self._clock() >= self._expires_at:
            self.dismiss()
        return self._violations

    @property
    def visible(self) -> bool:
        return bool(self.violations)

    def show(self, violations: Sequence[Violation]):
        self._cancel_timer()
        self._violations = tuple(violations)
        self._expires_at = self._clock() + self._duration
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(self._duration, self.dismiss)

    def dismiss(self):
        self._cancel_timer()
        self._violations = ()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
