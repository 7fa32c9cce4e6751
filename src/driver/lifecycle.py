"""Channel lifecycle state machine for the driver client."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    OFFLINE = "offline"
    CONNECTING = "connecting"
    ONLINE = "online"


class InvalidTransitionError(Exception):
    """Raised when a lifecycle transition is not allowed from the current state."""

    def __init__(self, current: ChannelState, action: str) -> None:
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} while {current.value}")


class ChannelLifecycle:
    """Offline -> Connecting -> Online, driven by the host or a test harness."""

    def __init__(self) -> None:
        self.state = ChannelState.OFFLINE
        self.last_error: str | None = None

    @property
    def is_online(self) -> bool:
        return self.state is ChannelState.ONLINE

    def connect(self) -> None:
        self._require("connect", ChannelState.OFFLINE)
        self._move(ChannelState.CONNECTING)

    def mark_online(self) -> None:
        self._require("go online", ChannelState.CONNECTING, ChannelState.ONLINE)
        self.last_error = None
        self._move(ChannelState.ONLINE)

    def mark_failed(self, reason: str) -> None:
        """A poll failed; fall back to Connecting until the next success."""
        self._require("report failure", ChannelState.CONNECTING, ChannelState.ONLINE)
        self.last_error = reason
        self._move(ChannelState.CONNECTING)

    def disconnect(self) -> None:
        self._move(ChannelState.OFFLINE)

    def _require(self, action: str, *allowed: ChannelState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(self.state, action)

    def _move(self, new_state: ChannelState) -> None:
        if new_state is not self.state:
            logger.info("Channel %s -> %s", self.state.value, new_state.value)
        self.state = new_state
