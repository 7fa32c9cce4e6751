"""Tests for the redirector CLI."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from src.cli import cli
from src.driver.client import PollResult
from src.relay.models import SendResult


@pytest.fixture
def fake_client() -> MagicMock:
    client = MagicMock()
    client.send_notification.return_value = SendResult(ok=True, detail="<HTML>ok</HTML>")
    client.poll_status.return_value = PollResult(ok=True, records=["type=ERRORMESSAGE&phone=1"])
    return client


def test_send_command(fake_client: MagicMock) -> None:
    with patch("src.cli._driver_client", return_value=fake_client) as factory:
        result = CliRunner().invoke(cli, [
            "send", "--key", "tok", "--kind", "VOICE", "--cookie", "12",
            "--port", "9000", "+1555", "Pump down",
        ])
    assert result.exit_code == 0, result.output
    assert "<HTML>ok</HTML>" in result.output
    factory.assert_called_once_with("localhost", 9000, "http", "tok")
    args = fake_client.send_notification.call_args[0]
    assert args[0] == "Pump down"
    assert args[1] == "+1555"
    assert args[3] == 12
    fake_client.close.assert_called_once()


def test_send_failure_exit_code(fake_client: MagicMock) -> None:
    fake_client.send_notification.return_value = SendResult(ok=False, detail="ERROR 401")
    with patch("src.cli._driver_client", return_value=fake_client):
        result = CliRunner().invoke(cli, ["send", "--key", "tok", "+1555", "m"])
    assert result.exit_code == 1
    assert "ERROR 401" in result.output


def test_send_requires_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NOTIFY_API_KEY", raising=False)
    result = CliRunner().invoke(cli, ["send", "+1555", "m"])
    assert result.exit_code != 0


def test_poll_command_outputs_json(fake_client: MagicMock) -> None:
    with patch("src.cli._driver_client", return_value=fake_client):
        result = CliRunner().invoke(cli, ["poll"])
    assert result.exit_code == 0, result.output
    output = json.loads(result.output)
    assert output == {"ok": True, "records": ["type=ERRORMESSAGE&phone=1"], "error": None}
    fake_client.poll_status.assert_called_once_with(force=True)


def test_poll_failure_exit_code(fake_client: MagicMock) -> None:
    fake_client.poll_status.return_value = PollResult(ok=False, error="refused")
    with patch("src.cli._driver_client", return_value=fake_client):
        result = CliRunner().invoke(cli, ["poll"])
    assert result.exit_code == 1


def test_serve_runs_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIRECTOR_ACCOUNT_SID", "AC1")
    monkeypatch.setenv("REDIRECTOR_FLOW_URL", "https://example/flow")
    monkeypatch.setenv("REDIRECTOR_FROM_NUMBER", "+1000")
    monkeypatch.setenv("REDIRECTOR_PORT", "8181")
    monkeypatch.delenv("AUDIT_LOG_PATH", raising=False)
    with patch("src.cli.uvicorn.run") as run:
        result = CliRunner().invoke(cli, ["serve", "--host", "127.0.0.1"])
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs == {"host": "127.0.0.1", "port": 8181}
