"""Capabilities the host control system provides to the driver client."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class AckSink(Protocol):
    """Acknowledges an alarm inside the control system."""

    def attempt(self, user_id: str, secret: str, token: int, note: str) -> bool:
        """Try to accept the alarm identified by ``token``; True on success."""
        ...


class DriverEvents(Protocol):
    """Scanner alarm and event-journal hooks of the host."""

    def raise_alarm(self, message: str) -> None: ...

    def clear_alarm(self) -> None: ...

    def log_event(self, message: str) -> None: ...


class LoggingDriverEvents:
    """DriverEvents that only writes to the process log."""

    def __init__(self) -> None:
        self.alarm_active = False

    def raise_alarm(self, message: str) -> None:
        self.alarm_active = True
        logger.error("Scanner alarm: %s", message)

    def clear_alarm(self) -> None:
        if self.alarm_active:
            logger.info("Scanner alarm cleared")
        self.alarm_active = False

    def log_event(self, message: str) -> None:
        logger.info("Event: %s", message)
