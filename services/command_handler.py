"""Write path: validate a reading, append it, publish it."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from models.records import Observation, TelemetryEvent, parse_timestamp, to_utc
from services.errors import PublishError, ValidationError
from services.event_bus import EventBus
from storage.observation_log import ObservationLog

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class TelemetryCommandHandler:
    """Records device readings.

    The append and the publish are not one transaction. If publishing fails
    the observation stays in the log and the failure is raised as
    ``PublishError``; ``TelemetryPipeline.replay`` republishes it later.
    """

    def __init__(self, log: ObservationLog, bus: EventBus) -> None:
        self.log = log
        self.bus = bus

    def record(self, device_id: Any, temperature: Any, timestamp: Any) -> Observation:
        parsed_device, parsed_temperature, parsed_timestamp = self._validate(
            device_id, temperature, timestamp
        )

        observation = self.log.save(parsed_device, parsed_temperature, parsed_timestamp)
        logger.debug(
            "Saved observation",
            extra={"observation_id": observation.id, "device_id": observation.device_id},
        )

        try:
            self.bus.publish(TelemetryEvent.from_observation(observation))
        except Exception as exc:
            logger.error(
                "Observation stored but not published; replay required",
                extra={
                    "observation_id": observation.id,
                    "device_id": observation.device_id,
                    "reason": str(exc),
                },
            )
            if isinstance(exc, PublishError):
                raise
            raise PublishError(f"Failed to publish observation {observation.id}: {exc}") from exc
        return observation

    @staticmethod
    def _validate(device_id: Any, temperature: Any, timestamp: Any) -> tuple[int, float, datetime]:
        errors: Dict[str, str] = {}
        parsed_device: Optional[int] = None
        parsed_temperature: Optional[float] = None
        parsed_timestamp: Optional[datetime] = None

        if _is_missing(device_id):
            errors["deviceId"] = "Device ID is required"
        elif isinstance(device_id, bool) or (
            isinstance(device_id, float) and not device_id.is_integer()
        ):
            errors["deviceId"] = "Device ID must be an integer"
        else:
            try:
                parsed_device = int(device_id)
            except (TypeError, ValueError, OverflowError):
                errors["deviceId"] = "Device ID must be an integer"

        if _is_missing(temperature):
            errors["temperature"] = "Temperature is required"
        elif isinstance(temperature, bool):
            errors["temperature"] = "Temperature must be a number"
        else:
            try:
                parsed_temperature = float(temperature)
            except (TypeError, ValueError, OverflowError):
                errors["temperature"] = "Temperature must be a number"
            else:
                if not math.isfinite(parsed_temperature):
                    parsed_temperature = None
                    errors["temperature"] = "Temperature must be a finite number"

        if _is_missing(timestamp):
            errors["timestamp"] = "Timestamp is required"
        elif isinstance(timestamp, datetime):
            parsed_timestamp = to_utc(timestamp)
        elif isinstance(timestamp, str):
            try:
                parsed_timestamp = parse_timestamp(timestamp)
            except ValueError:
                errors["timestamp"] = "Timestamp must be an ISO-8601 instant"
        else:
            errors["timestamp"] = "Timestamp must be an ISO-8601 instant"

        if errors:
            raise ValidationError(errors)

        assert parsed_device is not None
        assert parsed_temperature is not None
        assert parsed_timestamp is not None
        return parsed_device, parsed_temperature, parsed_timestamp
