"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TelemetryRequest(BaseModel):
    """Ingest payload. Fields are optional here so missing ones surface as field errors."""

    device_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("deviceId", "device_id"),
        description="Integer device identifier.",
    )
    temperature: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("temperature", "measurement"),
        allow_inf_nan=False,
    )
    timestamp: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "date"),
        description="ISO-8601 instant of the reading.",
    )


class DeviceTemperature(BaseModel):
    """Latest reading for one device as exposed by the query API."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: int = Field(..., alias="deviceId")
    temperature: Optional[float] = None
    timestamp: Optional[datetime] = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    detail: List[FieldError] | str


class ReplayResponse(BaseModel):
    published: int = Field(..., ge=0)


class DeadLetterView(BaseModel):
    """A dead-lettered message with its verbatim payload."""

    channel: str
    payload: str
    reason: str
    attempts: int
    failed_at: datetime


def field_errors(errors: dict[str, str]) -> list[dict[str, Any]]:
    return [FieldError(field=name, message=message).model_dump() for name, message in sorted(errors.items())]
