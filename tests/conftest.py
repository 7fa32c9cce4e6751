"""Shared test fixtures for the notify redirector."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from src.audit.logger import AuditLogger
from src.config import RedirectorSettings

FLOW_URL = "https://studio.twilio.com/v2/Flows/FW123/Executions"
ACCOUNT_SID = "AC0123456789"
FROM_NUMBER = "+15550001111"


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> RedirectorSettings:
    """Factory for RedirectorSettings with sensible defaults."""
    defaults: dict[str, Any] = {
        "account_sid": ACCOUNT_SID,
        "flow_url": FLOW_URL,
        "from_number": FROM_NUMBER,
    }
    defaults.update(kwargs)
    return RedirectorSettings(**defaults)


def make_provider_client(
    status_code: int = 201,
    text: str = '{"sid": "FN0001"}',
    sent: list[httpx.Request] | None = None,
    exc: Exception | None = None,
) -> httpx.Client:
    """httpx client whose transport answers like the Twilio flow API.

    Every request is appended to ``sent`` when given; ``exc`` is raised
    instead of answering to simulate transport failures.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if sent is not None:
            sent.append(request)
        if exc is not None:
            raise exc
        return httpx.Response(status_code, text=text)

    return httpx.Client(transport=httpx.MockTransport(handler))
