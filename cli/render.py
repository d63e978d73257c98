from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_temperatures(rows: List[Dict[str, Any]]) -> None:
    echo_heading("Latest Temperatures")
    if not rows:
        typer.echo("No devices reported yet.")
        return
    width = max(len("device"), *(len(str(row.get("deviceId"))) for row in rows))
    typer.echo(f"{'device'.ljust(width)}  temperature  timestamp")
    for row in rows:
        temperature = row.get("temperature")
        shown = "-" if temperature is None else f"{temperature:.2f}"
        typer.echo(
            f"{str(row.get('deviceId')).ljust(width)}  {shown.rjust(11)}  {row.get('timestamp') or '-'}"
        )


def render_projection(row: Dict[str, Any]) -> None:
    echo_heading("Projection")
    echo_key_values(
        [
            ("deviceId", row.get("deviceId")),
            ("temperature", row.get("temperature")),
            ("timestamp", row.get("timestamp")),
        ]
    )


def render_dead_letters(letters: List[Dict[str, Any]]) -> None:
    echo_heading("Dead Letters")
    if not letters:
        typer.echo("No dead letters recorded.")
        return
    for letter in letters:
        typer.echo(
            f"  - {letter.get('failed_at')} attempts={letter.get('attempts')} reason={letter.get('reason')}"
        )
        typer.echo(f"    payload: {letter.get('payload')}")
