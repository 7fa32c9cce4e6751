"""FastAPI application exposing the redirector endpoints.

Handlers are plain ``def`` functions, so each request runs on its own
worker thread; shared state lives in the ``Redirector`` and is guarded by
its own locks.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response

from src.audit.logger import AuditLogger
from src.config import RedirectorSettings
from src.relay.ack_store import AckCorrelationStore
from src.relay.buffer import InboundBuffer
from src.relay.models import truncate_detail
from src.relay.outbound import TwilioFlowRelay
from src.relay.redirector import Redirector, RelayReply, error_reply

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(RedirectorSettings.from_env())


def build_redirector(
    settings: RedirectorSettings,
    provider_client: httpx.Client | None = None,
    audit_logger: AuditLogger | None = None,
) -> Redirector:
    outbound = TwilioFlowRelay(
        account_sid=settings.account_sid,
        flow_url=settings.flow_url,
        from_number=settings.from_number,
        timeout=settings.http_timeout,
        client=provider_client,
        audit_logger=audit_logger,
    )
    return Redirector(
        outbound=outbound,
        buffer=InboundBuffer(max_value_length=settings.max_value_length),
        ack_store=AckCorrelationStore(retention_seconds=settings.ack_retention_seconds),
        audit_logger=audit_logger,
    )


def create_app(
    settings: RedirectorSettings,
    provider_client: httpx.Client | None = None,
    audit_logger: AuditLogger | None = None,
    redirector: Redirector | None = None,
) -> FastAPI:
    """Create the redirector app with its process-scoped relay state."""
    if audit_logger is None and settings.audit_log_path:
        audit_logger = AuditLogger.from_env(settings.audit_log_path)
    if redirector is None:
        redirector = build_redirector(settings, provider_client, audit_logger)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Shutting down, closing provider client")
        redirector.outbound.close()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.redirector = redirector

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/NotifyRequest/")
    def notify_request(request: Request) -> Response:
        params = dict(request.query_params)
        logger.debug("NotifyRequest type=%s", params.get("type", ""))
        return _respond(
            lambda: redirector.handle_driver_request(params, _client_ip(request)),
        )

    @app.get("/TwilioRequest/")
    def twilio_request(request: Request) -> Response:
        items = request.query_params.multi_items()
        logger.debug("TwilioRequest type=%s", request.query_params.get("type", ""))
        return _respond(
            lambda: redirector.handle_callback(items, _client_ip(request)),
        )

    return app


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _respond(handler: Callable[[], RelayReply]) -> Response:
    """Run a relay handler, converting any failure into an ERROR reply."""
    try:
        reply: RelayReply = handler()
    except Exception as e:
        logger.exception("Request handling failed")
        reply = error_reply(truncate_detail(str(e) or e.__class__.__name__), status_code=500)
    return Response(
        content=reply.text,
        status_code=reply.status_code,
        media_type=reply.media_type,
    )
