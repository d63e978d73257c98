from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import PollSettings, load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.recorded: List[tuple[int, float, str]] = []
        self.wait_calls: List[tuple[int, str, float, float]] = []
        self.rows: List[Dict[str, Any]] = [
            {"deviceId": 1, "temperature": 11.5, "timestamp": "2024-01-01T00:00:10Z"},
            {"deviceId": 3, "temperature": None, "timestamp": None},
        ]
        self.letters: List[Dict[str, Any]] = []
        self.reset_called = False
        self.closed = False

    def record(self, device_id: int, temperature: float, timestamp: str) -> None:
        self.recorded.append((device_id, temperature, timestamp))

    def wait_for_projection(
        self, device_id: int, timestamp: str, interval: float, timeout: float
    ) -> Dict[str, Any]:
        self.wait_calls.append((device_id, timestamp, interval, timeout))
        return {"deviceId": device_id, "temperature": 11.5, "timestamp": timestamp}

    def latest(self) -> List[Dict[str, Any]]:
        return self.rows

    def dead_letters(self) -> List[Dict[str, Any]]:
        return self.letters

    def reset(self) -> None:
        self.reset_called = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    instance = StubClient(config=None)

    def factory(config):
        instance.config = config
        return instance

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return instance


def test_record_without_wait(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["record", "1", "11.5", "--timestamp", "2024-01-01T00:00:10Z"])

    assert result.exit_code == 0
    assert "Reading accepted" in result.stdout
    assert stub.recorded == [(1, 11.5, "2024-01-01T00:00:10+00:00")]
    assert not stub.wait_calls
    assert stub.closed is True


def test_record_with_wait_uses_poll_settings(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app,
        [
            "--poll-interval",
            "0.1",
            "--timeout",
            "5",
            "record",
            "1",
            "11.5",
            "-t",
            "2024-01-01T00:00:10Z",
            "--wait",
        ],
    )

    assert result.exit_code == 0
    assert "Projection" in result.stdout
    assert stub.wait_calls == [(1, "2024-01-01T00:00:10+00:00", 0.1, 5.0)]


def test_record_rejects_bad_timestamp(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["record", "1", "11.5", "--timestamp", "yesterday"])

    assert result.exit_code != 0
    assert stub.recorded == []


def test_latest_renders_rows(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["latest"])

    assert result.exit_code == 0
    assert "Latest Temperatures" in result.stdout
    assert "11.50" in result.stdout
    assert "2024-01-01T00:00:10Z" in result.stdout


def test_latest_with_no_rows(runner: CliRunner, stub: StubClient) -> None:
    stub.rows = []

    result = runner.invoke(app, ["latest"])

    assert result.exit_code == 0
    assert "No devices reported yet." in result.stdout


def test_dead_letters_command(runner: CliRunner, stub: StubClient) -> None:
    stub.letters = [
        {
            "channel": "telemetry.events.dlt",
            "payload": '{"deviceId":1}',
            "reason": "undecodable payload",
            "attempts": 1,
            "failed_at": "2024-01-01T00:00:00Z",
        }
    ]

    result = runner.invoke(app, ["dead-letters"])

    assert result.exit_code == 0
    assert "attempts=1" in result.stdout
    assert '{"deviceId":1}' in result.stdout


def test_reset_requires_confirmation(runner: CliRunner, stub: StubClient) -> None:
    declined = runner.invoke(app, ["reset"], input="n\n")
    assert declined.exit_code != 0
    assert stub.reset_called is False

    confirmed = runner.invoke(app, ["reset", "--yes"])
    assert confirmed.exit_code == 0
    assert stub.reset_called is True


def test_load_config_reads_env_and_lets_options_win(monkeypatch) -> None:
    monkeypatch.setenv("TELEMETRY_API_URL", "http://telemetry.internal:9000/")
    monkeypatch.setenv("TELEMETRY_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("TELEMETRY_POLL_TIMEOUT", "-3")
    monkeypatch.setenv("TELEMETRY_REQUEST_TIMEOUT", "soon")

    config = load_config(poll_timeout=2.0)

    assert config.base_url == "http://telemetry.internal:9000"
    assert config.poll == PollSettings(interval=0.5, timeout=2.0)
    assert config.request_timeout == 30.0


def test_load_config_defaults(monkeypatch) -> None:
    for name in (
        "TELEMETRY_API_URL",
        "TELEMETRY_POLL_INTERVAL",
        "TELEMETRY_POLL_TIMEOUT",
        "TELEMETRY_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)

    config = load_config()

    assert config.base_url == "http://localhost:8000"
    assert config.poll == PollSettings()
    assert config.request_timeout == 30.0
