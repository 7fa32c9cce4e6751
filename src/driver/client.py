"""Driver-side client of the redirector.

The control system never accepts inbound connections, so everything it
learns from the provider arrives through its own STATUS polls. Acknowledge
results are kept in a local correlation store and pushed back to the relay
on every poll until they expire.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import unquote_plus

import httpx

from src.config import DriverSettings
from src.driver.interfaces import AckSink, DriverEvents, LoggingDriverEvents
from src.driver.lifecycle import ChannelLifecycle, ChannelState
from src.models import CallbackType, NotificationKind
from src.relay.ack_store import AckCorrelationStore, InvalidTokenError, parse_token
from src.relay.models import ERROR_PREFIX, SendResult, truncate_detail
from src.relay.redirector import MAX_PUSHED_OUTCOMES, STATUS_TYPE

logger = logging.getLogger(__name__)

ACK_NOTE = "By Phone"


@dataclass
class PollResult:
    """Outcome of one STATUS poll; ``ok`` is False only when the poll failed."""

    ok: bool
    records: list[str] = field(default_factory=list)
    error: str | None = None


def parse_record(line: str) -> dict[str, str]:
    """Decode one buffered callback line.

    Pairs whose ``=`` split does not give exactly two parts are dropped.
    """
    params: dict[str, str] = {}
    for pair in line.split("&"):
        parts = pair.split("=")
        if len(parts) == 2:
            params[unquote_plus(parts[0])] = unquote_plus(parts[1])
    return params


class RedirectorClient:
    """Sends notifications through the relay and processes its STATUS replies."""

    def __init__(
        self,
        settings: DriverSettings,
        ack_sink: AckSink,
        events: DriverEvents | None = None,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._ack_sink = ack_sink
        self.events = events or LoggingDriverEvents()
        self._client = client or httpx.Client(
            base_url=settings.base_url, timeout=settings.http_timeout,
        )
        self._clock = clock
        self._last_poll: float | None = None
        self.ack_store = AckCorrelationStore(
            retention_seconds=settings.ack_retention_seconds, clock=clock,
        )
        self.lifecycle = ChannelLifecycle()

    def close(self) -> None:
        self._client.close()

    # --- Lifecycle ---

    def connect(self) -> PollResult:
        """Bring the channel up and confirm the relay answers."""
        self.lifecycle.connect()
        return self._poll()

    def disconnect(self) -> None:
        self.lifecycle.disconnect()

    # --- Outbound ---

    def send_notification(
        self,
        message: str,
        recipient: str,
        kind: NotificationKind | str,
        cookie: int = 0,
    ) -> SendResult:
        kind_value = kind.value if isinstance(kind, NotificationKind) else kind
        logger.info("Notify message to %s using %s cookie %d", recipient, kind_value, cookie)
        params = {
            "key": self._settings.api_key,
            "phone": recipient,
            "message": message,
            "type": kind_value,
            "cookie": str(cookie),
        }
        try:
            resp = self._client.get("/NotifyRequest/", params=params)
        except httpx.HTTPError as e:
            detail = truncate_detail(str(e) or e.__class__.__name__)
            logger.warning("Failed to send to redirector: %s", detail)
            self.events.raise_alarm(detail)
            return SendResult(ok=False, detail=detail)

        body = resp.text
        if body.startswith(ERROR_PREFIX.strip()):
            detail = truncate_detail(body)
            logger.warning("Redirector reported error: %s", detail)
            self.events.raise_alarm(f"Error from Redirector: {detail}")
            return SendResult(ok=False, detail=detail)

        self.events.clear_alarm()
        return SendResult(ok=True, detail=truncate_detail(body))

    # --- Status poll ---

    def poll_status(self, force: bool = False) -> PollResult | None:
        """Poll the relay unless the cooldown since the last poll is still running.

        Returns None when skipped. A transport failure or ERROR reply yields
        ``PollResult(ok=False)``, never an empty success.
        """
        now = self._clock()
        if (
            not force
            and self._last_poll is not None
            and now - self._last_poll < self._settings.poll_interval_seconds
        ):
            return None
        return self._poll()

    def _poll(self) -> PollResult:
        self._last_poll = self._clock()
        params: list[tuple[str, str]] = [("type", STATUS_TYPE)]
        for index, outcome in enumerate(
            self.ack_store.resolved_outcomes()[:MAX_PUSHED_OUTCOMES], start=1,
        ):
            params.append((f"acookie{index}", str(outcome.token)))
            params.append((f"astatus{index}", "1" if outcome.accepted else "0"))
        logger.debug("STATUS poll pushing %d outcome(s)", (len(params) - 1) // 2)

        try:
            resp = self._client.get("/NotifyRequest/", params=params)
        except httpx.HTTPError as e:
            error = truncate_detail(str(e) or e.__class__.__name__)
            logger.warning("Failed to poll redirector: %s", error)
            self._poll_failed(error)
            return PollResult(ok=False, error=error)

        body = resp.text
        if body.startswith(ERROR_PREFIX.strip()):
            error = truncate_detail(body)
            self.events.raise_alarm(f"Poll error from Redirector: {error}")
            self._poll_failed(error)
            return PollResult(ok=False, error=error)

        self.events.clear_alarm()
        if self.lifecycle.state is not ChannelState.OFFLINE:
            self.lifecycle.mark_online()

        records = [line for line in body.split("\n") if line.strip()]
        for line in records:
            self.process_record(line)
        return PollResult(ok=True, records=records)

    def _poll_failed(self, error: str) -> None:
        if self.lifecycle.state is not ChannelState.OFFLINE:
            self.lifecycle.mark_failed(error)

    # --- Callback processing ---

    def process_record(self, line: str) -> CallbackType | None:
        """Act on one buffered provider callback; unknown types are ignored."""
        params = parse_record(line)
        phone = params.get("phone", "")
        callback_type = params.get("type", "")

        if callback_type == CallbackType.ERRORMESSAGE.value:
            self.events.log_event(f"Notify Error: {params.get('message', '')}, Phone: {phone}")
            return CallbackType.ERRORMESSAGE
        if callback_type == CallbackType.ACKALARM.value:
            self._handle_ack_request(params)
            return CallbackType.ACKALARM

        logger.info("Ignoring callback of type %r", callback_type)
        return None

    def _handle_ack_request(self, params: dict[str, str]) -> None:
        user_id = params.get("userid", "")
        phone = params.get("phone", "")
        try:
            token = parse_token(params.get("cookie"))
        except InvalidTokenError:
            self.events.log_event(
                f"Alarm Acknowledge Error: Invalid cookie. User: {user_id}, Phone: {phone}",
            )
            return

        accepted = self.test_acknowledge(user_id, params.get("pin", ""), token)
        if accepted:
            self.events.log_event(f"Alarm Acknowledged. Phone: {phone}")
        else:
            self.events.log_event(
                f"Alarm Acknowledge Error: {user_id}, Phone: {phone}, Cookie: {token}",
            )
        self.ack_store.resolve(token, accepted)

    def test_acknowledge(self, user_id: str, pin: str, cookie: int) -> bool:
        """Attempt an alarm acknowledge through the host; failures count as rejected."""
        try:
            accepted = bool(self._ack_sink.attempt(user_id, pin, cookie, ACK_NOTE))
        except Exception:
            logger.exception("Acknowledge attempt for cookie %d raised", cookie)
            accepted = False
        logger.info("Acknowledge cookie %d by %s: %s", cookie, user_id, accepted)
        return accepted
