"""Domain models shared across services."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    return to_utc(parsed)


class Observation(BaseModel):
    """A single recorded temperature reading. Owned by the observation log."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    device_id: int
    temperature: float = Field(..., allow_inf_nan=False)
    timestamp: datetime
    recorded_at: datetime

    @field_validator("timestamp", "recorded_at")
    @classmethod
    def _normalise(cls, value: datetime) -> datetime:
        return to_utc(value)


class TelemetryEvent(BaseModel):
    """Message carried on the telemetry channel.

    The same observation may be delivered more than once, so consumers must
    treat it as a transport artifact rather than a stored entity.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    device_id: int = Field(..., alias="deviceId")
    temperature: float = Field(..., allow_inf_nan=False)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalise(cls, value: datetime) -> datetime:
        return to_utc(value)

    @classmethod
    def from_observation(cls, observation: Observation) -> "TelemetryEvent":
        return cls(
            device_id=observation.device_id,
            temperature=observation.temperature,
            timestamp=observation.timestamp,
        )

    @classmethod
    def from_wire(cls, payload: Union[str, bytes]) -> "TelemetryEvent":
        return cls.model_validate_json(payload)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class DeviceProjection(BaseModel):
    """Latest known reading for one device."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: int = Field(..., alias="deviceId")
    last_temperature: Optional[float] = Field(default=None, alias="lastTemperature")
    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")

    @field_validator("last_updated")
    @classmethod
    def _normalise(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return to_utc(value)
