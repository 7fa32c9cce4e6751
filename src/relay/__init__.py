"""Redirector relay: outbound sends, inbound callback buffering, ack correlation.

The relay keeps all of its state in memory; a restart discards buffered
callbacks and acknowledge outcomes.
"""

from src.relay.ack_store import AckCorrelationStore, InvalidTokenError, parse_token
from src.relay.buffer import InboundBuffer, serialize_callback
from src.relay.models import (
    AckLookup,
    AckOutcome,
    AckStatus,
    NotificationRequest,
    SendResult,
)
from src.relay.outbound import TwilioFlowRelay
from src.relay.redirector import Redirector, RelayReply, parse_pushed_outcomes

__all__ = [
    # Exceptions
    "InvalidTokenError",
    # Components
    "AckCorrelationStore",
    "InboundBuffer",
    "Redirector",
    "TwilioFlowRelay",
    # Helpers
    "parse_pushed_outcomes",
    "parse_token",
    "serialize_callback",
    # Models
    "AckLookup",
    "AckOutcome",
    "AckStatus",
    "NotificationRequest",
    "RelayReply",
    "SendResult",
]
