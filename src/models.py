"""Shared Pydantic data models for the notify redirector."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# --- Enums ---


class NotificationKind(str, Enum):
    VOICE = "VOICE"
    SMS = "SMS"


class CallbackType(str, Enum):
    ERRORMESSAGE = "ERRORMESSAGE"
    ACKALARM = "ACKALARM"
    ACKCHECK = "ACKCHECK"


class AuditEventType(str, Enum):
    NOTIFY_SENT = "notify_sent"
    NOTIFY_FAILED = "notify_failed"
    CALLBACK_BUFFERED = "callback_buffered"
    ACK_CHECK = "ack_check"
    ACK_OUTCOME = "ack_outcome"
    STATUS_POLL = "status_poll"
    INPUT_ERROR = "input_error"
    PROTOCOL_ERROR = "protocol_error"


# --- Audit Models ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    action: str
    result: str  # "success" | "failure" | "rejected"
    details: dict[str, object] | None = None
