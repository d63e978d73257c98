from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_dead_letters, render_projection, render_temperatures
from models.records import parse_timestamp


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the device telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to TELEMETRY_API_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between projection checks when waiting.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait for the projection to catch up.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("record")
def record_command(
    ctx: typer.Context,
    device_id: int = typer.Argument(..., help="Integer device identifier."),
    temperature: float = typer.Argument(..., help="Temperature reading."),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        "-t",
        help="ISO-8601 instant of the reading (defaults to now, UTC).",
    ),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait until the device's projection reflects this reading.",
    ),
) -> None:
    """Record a temperature reading for a device."""
    state = _get_state(ctx)
    if timestamp is None:
        instant = datetime.now(timezone.utc)
    else:
        try:
            instant = parse_timestamp(timestamp)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--timestamp") from exc
    sent = instant.isoformat()

    state.client.record(device_id, temperature, sent)
    typer.secho(f"Reading accepted. device={device_id} timestamp={sent}", fg=typer.colors.GREEN)

    if not wait:
        return

    typer.echo(
        f"Waiting for projection (interval={state.config.poll.interval}s, "
        f"timeout={state.config.poll.timeout}s)..."
    )
    row = state.client.wait_for_projection(
        device_id,
        sent,
        interval=state.config.poll.interval,
        timeout=state.config.poll.timeout,
    )
    typer.echo()
    render_projection(row)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the latest temperature of every device."""
    state = _get_state(ctx)
    render_temperatures(state.client.latest())


@app.command("dead-letters")
def dead_letters_command(ctx: typer.Context) -> None:
    """List messages that exhausted their delivery retries."""
    state = _get_state(ctx)
    render_dead_letters(state.client.dead_letters())


@app.command("reset")
def reset_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear every observation, projection and dead letter."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm("This deletes all telemetry data. Continue?", abort=True)
    state.client.reset()
    typer.secho("All telemetry data cleared.", fg=typer.colors.YELLOW)
