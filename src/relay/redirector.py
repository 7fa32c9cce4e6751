"""Redirector: the relay between the polling driver and the messaging provider.

Owns the process-wide state (inbound buffer and acknowledge store) and
implements the three request paths:

1. Driver send (``/NotifyRequest/`` with type VOICE or SMS)
2. Driver status poll (``/NotifyRequest/`` with type STATUS)
3. Provider callback (``/TwilioRequest/``), including the synchronous ACKCHECK
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.models import AuditEvent, AuditEventType, CallbackType, NotificationKind
from src.relay.ack_store import AckCorrelationStore, InvalidTokenError, parse_token
from src.relay.buffer import InboundBuffer
from src.relay.models import ERROR_PREFIX, AckLookup, AckStatus, NotificationRequest

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.relay.outbound import TwilioFlowRelay

logger = logging.getLogger(__name__)

MAX_PUSHED_OUTCOMES = 99
CALLBACK_ACK_BODY = "body=nothing"
STATUS_TYPE = "STATUS"


@dataclass
class RelayReply:
    """Response to return to whichever side called the relay."""

    text: str
    status_code: int = 200
    media_type: str = "text/plain"


def error_reply(detail: str, status_code: int = 200) -> RelayReply:
    return RelayReply(text=f"{ERROR_PREFIX}{detail}", status_code=status_code)


def parse_pushed_outcomes(params: Mapping[str, str]) -> list[tuple[int, bool]]:
    """Read ``acookieN``/``astatusN`` pairs (N = 1..99) up to the first gap.

    Pairs with a zero or malformed token, or a status other than 0/1, are
    input errors: they are logged and skipped.
    """
    outcomes: list[tuple[int, bool]] = []
    for index in range(1, MAX_PUSHED_OUTCOMES + 1):
        raw_cookie = params.get(f"acookie{index}", "")
        raw_status = params.get(f"astatus{index}", "")
        if not raw_cookie or not raw_status:
            break
        try:
            token = parse_token(raw_cookie)
        except InvalidTokenError:
            logger.warning("Skipping pushed outcome %d: invalid cookie %r", index, raw_cookie)
            continue
        if raw_status not in ("0", "1"):
            logger.warning("Skipping pushed outcome %d: invalid status %r", index, raw_status)
            continue
        outcomes.append((token, raw_status == "1"))
    return outcomes


class Redirector:
    """Process-scoped relay state plus the request handlers that share it."""

    def __init__(
        self,
        outbound: TwilioFlowRelay,
        buffer: InboundBuffer | None = None,
        ack_store: AckCorrelationStore | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.outbound = outbound
        self.buffer = buffer if buffer is not None else InboundBuffer()
        self.ack_store = ack_store if ack_store is not None else AckCorrelationStore()
        self._audit = audit_logger

    # --- Driver side ---

    def handle_driver_request(
        self, params: Mapping[str, str], source_ip: str | None = None,
    ) -> RelayReply:
        request_type = params.get("type", "")
        if request_type == STATUS_TYPE:
            return self.status_poll(params, source_ip)
        return self.send_notification(params, source_ip)

    def send_notification(
        self, params: Mapping[str, str], source_ip: str | None = None,
    ) -> RelayReply:
        request_type = params.get("type", "")
        try:
            kind = NotificationKind(request_type)
        except ValueError:
            self._input_error("send_notification", f"unsupported type: {request_type}", source_ip)
            return error_reply(f"unsupported type: {request_type}", status_code=400)

        for name in ("key", "phone", "message"):
            if not params.get(name):
                self._input_error("send_notification", f"missing parameter: {name}", source_ip)
                return error_reply(f"missing parameter: {name}", status_code=400)

        raw_cookie = params.get("cookie", "") or "0"
        try:
            cookie = int(raw_cookie)
        except ValueError:
            self._input_error("send_notification", f"invalid cookie: {raw_cookie}", source_ip)
            return error_reply(f"invalid cookie: {raw_cookie[:20]}", status_code=400)

        request = NotificationRequest(
            kind=kind,
            recipient=params["phone"],
            body=params["message"],
            correlation_token=cookie,
        )
        result = self.outbound.send(request, auth_token=params["key"])
        if not result.ok:
            return error_reply(result.detail)
        return RelayReply(text=result.detail, media_type="text/html")

    def status_poll(
        self, params: Mapping[str, str], source_ip: str | None = None,
    ) -> RelayReply:
        """Store pushed acknowledge outcomes, then drain the inbound buffer."""
        pushed = parse_pushed_outcomes(params)
        for token, accepted in pushed:
            self.ack_store.resolve(token, accepted)
            logger.info("Acknowledge status for cookie %d: %s", token, accepted)
            if self._audit:
                self._audit.log(AuditEvent(
                    event_type=AuditEventType.ACK_OUTCOME,
                    source_ip=source_ip,
                    action="ack_outcome",
                    result="accepted" if accepted else "rejected",
                    details={"cookie": token},
                ))

        records = self.drain()
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.STATUS_POLL,
                source_ip=source_ip,
                action="status_poll",
                result="success",
                details={"pushed": len(pushed), "drained": len(records)},
            ))
        return RelayReply(text="\n".join(records))

    def drain(self) -> list[str]:
        records = self.buffer.drain()
        if records:
            logger.info("Returning %d buffered callback(s) to driver", len(records))
        return records

    # --- Provider side ---

    def handle_callback(
        self, items: Sequence[tuple[str, str]], source_ip: str | None = None,
    ) -> RelayReply:
        """Answer a provider webhook; everything except ACKCHECK is queued."""
        params = dict(items)
        callback_type = params.get("type", "")

        if callback_type == CallbackType.ACKCHECK.value:
            lookup = self.check_ack(params.get("cookie"), source_ip)
            return RelayReply(text=f"ackresponse={lookup.response_code()}")

        if callback_type not in (CallbackType.ERRORMESSAGE.value, CallbackType.ACKALARM.value):
            logger.warning("Unrecognized callback type %r buffered as-is", callback_type)
            if self._audit:
                self._audit.log(AuditEvent(
                    event_type=AuditEventType.PROTOCOL_ERROR,
                    source_ip=source_ip,
                    action="callback",
                    result="buffered",
                    details={"type": callback_type[:50]},
                ))

        if callback_type == CallbackType.ACKALARM.value:
            self._mark_ack_pending(params.get("cookie"))

        self.buffer.append(items)
        logger.info("Buffered %s callback (%d waiting)", callback_type or "untyped", len(self.buffer))
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.CALLBACK_BUFFERED,
                source_ip=source_ip,
                action="callback",
                result="success",
                details={"type": callback_type[:50]},
            ))
        return RelayReply(text=CALLBACK_ACK_BODY)

    def check_ack(self, raw_cookie: str | None, source_ip: str | None = None) -> AckLookup:
        try:
            token = parse_token(raw_cookie)
        except InvalidTokenError:
            logger.warning("ACKCHECK with invalid cookie %r", raw_cookie)
            lookup = AckLookup(AckStatus.UNKNOWN)
        else:
            lookup = self.ack_store.lookup(token)
            logger.info("ACKCHECK cookie %d: %s", token, lookup.status.value)
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.ACK_CHECK,
                source_ip=source_ip,
                action="ack_check",
                result=lookup.status.value,
                details={"cookie": (raw_cookie or "")[:20], "ackresponse": lookup.response_code()},
            ))
        return lookup

    def _mark_ack_pending(self, raw_cookie: str | None) -> None:
        try:
            token = parse_token(raw_cookie)
        except InvalidTokenError:
            # The driver reports the invalid cookie when it processes the record.
            return
        self.ack_store.mark_pending(token)

    def _input_error(self, action: str, reason: str, source_ip: str | None) -> None:
        logger.warning("Rejected %s: %s", action, reason)
        if self._audit:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.INPUT_ERROR,
                source_ip=source_ip,
                action=action,
                result="rejected",
                details={"reason": reason[:100]},
            ))
