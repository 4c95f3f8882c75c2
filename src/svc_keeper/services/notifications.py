"""User notification sinks.

Notifications are fire-and-forget: sinks never raise into the controller and
return nothing the caller consumes.
"""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Notification surface consumed by `LifecycleController`."""

    def schedule_notification(self, title: str, body: str) -> None: ...

    def show_notice(self, message: str) -> None: ...


class ConsoleNotificationSink:
    """Render notifications and failure notices on a rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    def schedule_notification(self, title: str, body: str) -> None:
        try:
            self._console.print(
                Panel(Text(body), title=Text(title, style="bold"), expand=False)
            )
        except Exception as exc:
            logger.warning("Failed to render notification %r: %s", title, exc)

    def show_notice(self, message: str) -> None:
        try:
            self._console.print(Text(message, style="bold red"))
        except Exception as exc:
            logger.warning("Failed to render notice: %s", exc)
