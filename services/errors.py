"""Error taxonomy for the telemetry pipeline."""

from __future__ import annotations

from typing import Mapping


class TelemetryError(Exception):
    """Base class for pipeline errors."""


class ValidationError(TelemetryError):
    """Raised when a reading is missing or has malformed fields.

    ``errors`` maps the wire name of each offending field to a message.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid telemetry reading: {fields}")


class StoreUnavailableError(TelemetryError):
    """A backing store could not be reached or written."""


class PublishError(TelemetryError):
    """An event could not be handed to the event bus."""


class TransientDeliveryError(TelemetryError):
    """A single handler invocation failed and may be retried."""

    def __init__(self, attempt: int, max_attempts: int, cause: BaseException) -> None:
        self.attempt = attempt
        self.max_attempts = max_attempts
        self.cause = cause
        super().__init__(f"Delivery attempt {attempt}/{max_attempts} failed: {cause}")


class PoisonMessageError(TelemetryError):
    """A message could not be delivered within its retry budget."""

    def __init__(self, payload: str, attempts: int, reason: str) -> None:
        self.payload = payload
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Message dead-lettered after {attempts} attempt(s): {reason}")
