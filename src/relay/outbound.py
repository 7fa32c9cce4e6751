"""Outbound relay: translate driver send requests into Twilio flow executions.

The relay is a translator, not a validator: it checks that fields are
present, builds the provider form, performs exactly one call, and reports
the outcome. Retry policy belongs to the polling driver.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING

import httpx

from src.models import AuditEvent, AuditEventType
from src.relay.models import NotificationRequest, SendResult, truncate_detail

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0


def mask_secret(secret: str) -> str:
    return f"{secret[:3]}..." if secret else "<empty>"


class TwilioFlowRelay:
    """Sends notifications by starting a Twilio Studio flow execution."""

    def __init__(
        self,
        account_sid: str,
        flow_url: str,
        from_number: str,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._flow_url = flow_url
        self._from_number = from_number
        self._timeout = timeout
        self._client = client or httpx.Client(verify=True)
        self._audit = audit_logger

    def close(self) -> None:
        self._client.close()

    def build_form(self, request: NotificationRequest) -> dict[str, str]:
        """Provider form fields; ``Parameters`` is consumed by the flow itself."""
        parameters = {
            "mymessage": request.body,
            "messagetype": request.kind.value,
            "alarmcookie": str(request.correlation_token),
        }
        return {
            "From": self._from_number,
            "To": request.recipient,
            "Parameters": json.dumps(parameters),
        }

    def send(self, request: NotificationRequest, auth_token: str) -> SendResult:
        """Perform the provider call; never raises for transport failures."""
        logger.info(
            "Sending %s to %s (cookie %s, key %s)",
            request.kind.value, request.recipient,
            request.correlation_token, mask_secret(auth_token),
        )
        try:
            resp = self._client.post(
                self._flow_url,
                data=self.build_form(request),
                auth=(self._account_sid, auth_token),
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            result = SendResult(
                ok=False,
                detail=truncate_detail(
                    f"Provider returned {e.response.status_code}: {e.response.text}",
                ),
            )
        except httpx.HTTPError as e:
            result = SendResult(
                ok=False,
                detail=truncate_detail(str(e) or e.__class__.__name__),
            )
        else:
            logger.info("Provider accepted request, body %d bytes", len(resp.content))
            result = SendResult(
                ok=True,
                detail=f"<HTML><BODY>NotifyRequest<br>{datetime.now():%Y-%m-%d %H:%M:%S}</BODY></HTML>",
            )

        if not result.ok:
            logger.warning("Notification to %s failed: %s", request.recipient, result.detail)
        self._audit_send(request, result)
        return result

    def _audit_send(self, request: NotificationRequest, result: SendResult) -> None:
        if not self._audit:
            return
        details: dict[str, object] = {
            "kind": request.kind.value,
            "recipient": request.recipient,
            "cookie": request.correlation_token,
        }
        if not result.ok:
            details["error"] = result.detail
        self._audit.log(AuditEvent(
            event_type=AuditEventType.NOTIFY_SENT if result.ok else AuditEventType.NOTIFY_FAILED,
            action="send_notification",
            result="success" if result.ok else "failure",
            details=details,
        ))
