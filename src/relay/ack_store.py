"""Acknowledge correlation store: token to pending or resolved outcome.

Entries are kept for a fixed retention window and purged lazily on every
read and write pass, so no timer thread is needed. An expired token is
indistinguishable from one that never existed.
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.config import DEFAULT_ACK_RETENTION_SECONDS
from src.relay.models import AckLookup, AckOutcome, AckStatus

_TOKEN_RE = re.compile(r"-?[0-9]+")


class InvalidTokenError(ValueError):
    """Raised when a correlation token is zero or not an integer."""

    def __init__(self, token: object) -> None:
        self.token = token
        super().__init__(f"Invalid correlation token: {token!r}")


def parse_token(raw: str | None) -> int:
    """Parse a cookie query value into a non-zero integer token.

    Only ASCII digits with an optional leading minus are accepted.
    """
    text = (raw or "").strip()
    if not _TOKEN_RE.fullmatch(text):
        raise InvalidTokenError(raw)
    token = int(text)
    if token == 0:
        raise InvalidTokenError(raw)
    return token


@dataclass
class _Entry:
    accepted: bool | None  # None while pending
    updated_at: float


class AckCorrelationStore:
    """Bounded-lifetime mapping from correlation token to acknowledge outcome."""

    def __init__(
        self,
        retention_seconds: float = DEFAULT_ACK_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._retention = retention_seconds
        self._clock = clock
        self._entries: dict[int, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def resolve(self, token: int, accepted: bool) -> AckOutcome:
        """Record the outcome for ``token``; last write wins."""
        if token == 0:
            raise InvalidTokenError(token)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            self._entries[token] = _Entry(accepted=accepted, updated_at=now)
        return AckOutcome(token=token, accepted=accepted, updated_at=now)

    def mark_pending(self, token: int) -> bool:
        """Mark ``token`` as awaiting resolution.

        Returns False when the token already carries a resolved outcome,
        which is left untouched.
        """
        if token == 0:
            raise InvalidTokenError(token)
        with self._lock:
            now = self._clock()
            self._purge_locked(now)
            existing = self._entries.get(token)
            if existing is not None and existing.accepted is not None:
                return False
            self._entries[token] = _Entry(accepted=None, updated_at=now)
        return True

    def lookup(self, token: int) -> AckLookup:
        with self._lock:
            self._purge_locked(self._clock())
            entry = self._entries.get(token)
        if entry is None:
            return AckLookup(AckStatus.UNKNOWN)
        if entry.accepted is None:
            return AckLookup(AckStatus.PENDING)
        return AckLookup(AckStatus.RESOLVED, accepted=entry.accepted)

    def purge(self, now: float | None = None) -> int:
        """Evict expired entries and return how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock() if now is None else now)

    def resolved_outcomes(self) -> list[AckOutcome]:
        """Live resolved outcomes, oldest write first."""
        with self._lock:
            self._purge_locked(self._clock())
            outcomes = [
                AckOutcome(token=token, accepted=entry.accepted, updated_at=entry.updated_at)
                for token, entry in self._entries.items()
                if entry.accepted is not None
            ]
        return sorted(outcomes, key=lambda o: o.updated_at)

    def _purge_locked(self, now: float) -> int:
        expired = [
            token for token, entry in self._entries.items()
            if now >= entry.updated_at + self._retention
        ]
        for token in expired:
            del self._entries[token]
        return len(expired)
