"""Audit logger: append-only JSON Lines trail of relay activity with rotation."""

from __future__ import annotations

import os
import threading
from pathlib import Path

from src.models import AuditEvent


class AuditLogger:
    """Thread-safe JSON Lines audit logger with size-based rotation.

    The relay serves each request on its own worker thread, so every write
    (rotation check included) happens under a single lock.
    """

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        """Create AuditLogger with rotation limits from environment variables."""
        max_bytes = int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760"))
        backup_count = int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5"))
        return cls(log_path=log_path, max_bytes=max_bytes, backup_count=backup_count)

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_full(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return
        if self._backup_count <= 0:
            self.log_path.unlink()
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            older = self._backup(index)
            if older.exists():
                older.rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        line = event.model_dump_json()
        with self._lock:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_full()
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
