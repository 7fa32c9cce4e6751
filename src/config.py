"""Environment-driven settings for the redirector and the driver client."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ACK_RETENTION_SECONDS = 100.0
DEFAULT_MAX_VALUE_LENGTH = 200


class RedirectorSettings(BaseModel):
    """Relay process settings.

    The provider auth token is not configured here: it arrives with every
    send request from the driver, so the relay holds no durable secret.
    """

    model_config = ConfigDict(frozen=True)

    account_sid: str
    flow_url: str
    from_number: str
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    http_timeout: float = Field(default=30.0, gt=0)
    ack_retention_seconds: float = Field(default=DEFAULT_ACK_RETENTION_SECONDS, gt=0)
    max_value_length: int = Field(default=DEFAULT_MAX_VALUE_LENGTH, ge=1)
    audit_log_path: str | None = None

    @classmethod
    def from_env(cls) -> RedirectorSettings:
        return cls(
            account_sid=os.environ["REDIRECTOR_ACCOUNT_SID"],
            flow_url=os.environ["REDIRECTOR_FLOW_URL"],
            from_number=os.environ["REDIRECTOR_FROM_NUMBER"],
            host=os.environ.get("REDIRECTOR_HOST", "0.0.0.0"),
            port=int(os.environ.get("REDIRECTOR_PORT", "8080")),
            http_timeout=float(os.environ.get("REDIRECTOR_HTTP_TIMEOUT", "30")),
            ack_retention_seconds=float(
                os.environ.get("REDIRECTOR_ACK_RETENTION_SECONDS", "100"),
            ),
            max_value_length=int(os.environ.get("REDIRECTOR_MAX_VALUE_LENGTH", "200")),
            audit_log_path=os.environ.get("AUDIT_LOG_PATH"),
        )


class DriverSettings(BaseModel):
    """Polling client settings (the control-system side of the relay)."""

    model_config = ConfigDict(frozen=True)

    redirector_host: str
    redirector_port: int = Field(default=80, ge=1, le=65535)
    protocol: Literal["http", "https"] = "http"
    api_key: str = ""
    poll_interval_seconds: float = Field(default=10.0, ge=0)
    ack_retention_seconds: float = Field(default=DEFAULT_ACK_RETENTION_SECONDS, gt=0)
    http_timeout: float = Field(default=30.0, gt=0)

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.redirector_host}:{self.redirector_port}"

    @classmethod
    def from_env(cls) -> DriverSettings:
        return cls(
            redirector_host=os.environ["NOTIFY_REDIRECTOR_HOST"],
            redirector_port=int(os.environ.get("NOTIFY_REDIRECTOR_PORT", "80")),
            protocol=os.environ.get("NOTIFY_REDIRECTOR_PROTOCOL", "http"),  # type: ignore[arg-type]
            api_key=os.environ.get("NOTIFY_API_KEY", ""),
            poll_interval_seconds=float(os.environ.get("NOTIFY_POLL_INTERVAL", "10")),
            ack_retention_seconds=float(
                os.environ.get("NOTIFY_ACK_RETENTION_SECONDS", "100"),
            ),
            http_timeout=float(os.environ.get("NOTIFY_HTTP_TIMEOUT", "30")),
        )
