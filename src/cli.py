"""Click CLI for running the redirector and exercising it from the driver side."""

from __future__ import annotations

import json
import logging

import click
import uvicorn

from src.config import DriverSettings, RedirectorSettings
from src.driver.client import PollResult, RedirectorClient
from src.models import NotificationKind
from src.server.app import create_app


class _RefusingAckSink:
    """Command-line polls cannot reach a control system, so every ack is refused."""

    def attempt(self, user_id: str, secret: str, token: int, note: str) -> bool:
        return False


@click.group()
@click.option("--log-level", default="INFO", show_default=True, help="Root log level.")
def cli(log_level: str) -> None:
    """Notify redirector: relay between a polling driver and Twilio."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default REDIRECTOR_HOST).")
@click.option("--port", default=None, type=int, help="Bind port (default REDIRECTOR_PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Run the redirector HTTP server (settings from REDIRECTOR_* variables)."""
    settings = RedirectorSettings.from_env()
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
    )


def _driver_client(host: str, port: int, protocol: str, key: str) -> RedirectorClient:
    settings = DriverSettings(
        redirector_host=host, redirector_port=port, protocol=protocol, api_key=key,  # type: ignore[arg-type]
    )
    return RedirectorClient(settings, ack_sink=_RefusingAckSink())


@cli.command()
@click.option("--host", default="localhost", show_default=True, help="Redirector host.")
@click.option("--port", default=8080, show_default=True, type=int, help="Redirector port.")
@click.option("--protocol", default="http", type=click.Choice(["http", "https"]))
@click.option("--key", envvar="NOTIFY_API_KEY", required=True, help="Provider auth token.")
@click.option("--kind", default="SMS", type=click.Choice([k.value for k in NotificationKind]))
@click.option("--cookie", default=0, type=int, help="Alarm cookie, 0 for no acknowledge.")
@click.argument("phone")
@click.argument("message")
def send(
    host: str, port: int, protocol: str, key: str, kind: str, cookie: int,
    phone: str, message: str,
) -> None:
    """Send one notification through a running redirector."""
    client = _driver_client(host, port, protocol, key)
    try:
        result = client.send_notification(message, phone, NotificationKind(kind), cookie)
    finally:
        client.close()
    click.echo(result.detail)
    if not result.ok:
        raise SystemExit(1)


@cli.command()
@click.option("--host", default="localhost", show_default=True, help="Redirector host.")
@click.option("--port", default=8080, show_default=True, type=int, help="Redirector port.")
@click.option("--protocol", default="http", type=click.Choice(["http", "https"]))
def poll(host: str, port: int, protocol: str) -> None:
    """Run one STATUS poll and print the drained callback records."""
    client = _driver_client(host, port, protocol, key="")
    try:
        result = client.poll_status(force=True) or PollResult(ok=False, error="poll skipped")
    finally:
        client.close()
    click.echo(json.dumps({"ok": result.ok, "records": result.records, "error": result.error}, indent=2))
    if not result.ok:
        raise SystemExit(1)
