"""Data models for the redirector relay."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.models import NotificationKind

ERROR_PREFIX = "ERROR "
MAX_ERROR_DETAIL = 100


def truncate_detail(text: str, limit: int = MAX_ERROR_DETAIL) -> str:
    """Cap an error message so it cannot flood logs or alarm text."""
    return text[:limit]


@dataclass(frozen=True)
class NotificationRequest:
    """One outbound send, alive only for the duration of the provider call."""

    kind: NotificationKind
    recipient: str
    body: str
    correlation_token: int = 0  # 0 = no acknowledge expected


@dataclass(frozen=True)
class SendResult:
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class AckOutcome:
    token: int
    accepted: bool
    updated_at: float


class AckStatus(str, Enum):
    RESOLVED = "resolved"
    PENDING = "pending"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AckLookup:
    status: AckStatus
    accepted: bool | None = None

    def response_code(self) -> str:
        """Wire value for ``ackresponse``: 1 accepted, 0 rejected, 2 unresolved."""
        if self.status is AckStatus.RESOLVED:
            return "1" if self.accepted else "0"
        return "2"
