"""Inbound callback buffer: provider webhooks queued until the driver polls.

The driver cannot be contacted directly, so callbacks are re-serialized into
opaque query-string lines and held in FIFO order. Delivery is at-most-once:
a drain hands the records over and forgets them.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from urllib.parse import quote_plus

from src.config import DEFAULT_MAX_VALUE_LENGTH


def serialize_callback(
    items: Iterable[tuple[str, str]],
    max_value_length: int = DEFAULT_MAX_VALUE_LENGTH,
) -> str:
    """Re-encode query pairs as one ``key=value&...`` line.

    Values are truncated before encoding so a single malformed callback
    cannot dominate the buffer. Keys are kept as received.
    """
    return "&".join(
        f"{quote_plus(key)}={quote_plus(value[:max_value_length])}"
        for key, value in items
    )


class InboundBuffer:
    """Thread-safe FIFO of serialized callback records."""

    def __init__(self, max_value_length: int = DEFAULT_MAX_VALUE_LENGTH) -> None:
        self._max_value_length = max_value_length
        self._records: list[str] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, items: Iterable[tuple[str, str]]) -> str:
        record = serialize_callback(items, self._max_value_length)
        with self._lock:
            self._records.append(record)
        return record

    def drain(self) -> list[str]:
        """Return every buffered record in arrival order and empty the buffer."""
        with self._lock:
            records, self._records = self._records, []
        return records
