from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"


@dataclass(frozen=True)
class PollSettings:
    """How ``record --wait`` polls the query endpoint for its projection."""

    interval: float = 0.2
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "PollSettings":
        return cls(
            interval=_positive_env("TELEMETRY_POLL_INTERVAL", cls.interval),
            timeout=_positive_env("TELEMETRY_POLL_TIMEOUT", cls.timeout),
        )

    def override(self, interval: Optional[float], timeout: Optional[float]) -> "PollSettings":
        return PollSettings(
            interval=self.interval if interval is None else interval,
            timeout=self.timeout if timeout is None else timeout,
        )


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 30.0
    poll: PollSettings = field(default_factory=PollSettings)


def _positive_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        parsed = float(raw) if raw else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    poll_timeout: Optional[float] = None,
) -> CLIConfig:
    """Resolve CLI settings; explicit options win over ``TELEMETRY_*`` env vars."""
    url = base_url or os.getenv("TELEMETRY_API_URL") or DEFAULT_BASE_URL
    return CLIConfig(
        base_url=url.rstrip("/"),
        request_timeout=_positive_env("TELEMETRY_REQUEST_TIMEOUT", CLIConfig.request_timeout),
        poll=PollSettings.from_env().override(poll_interval, poll_timeout),
    )
