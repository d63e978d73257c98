"""Keeps the latest-temperature projection in step with the event stream."""

from __future__ import annotations

import logging
from threading import Lock

from datastore.projection_store import ProjectionStore
from models.records import DeviceProjection, TelemetryEvent

logger = logging.getLogger(__name__)

_LOCK_STRIPES = 64


class ProjectionUpdater:
    """Applies events to the projection store with last-write-wins by timestamp.

    An event replaces the stored projection when the device has none yet or
    when its timestamp is newer than or equal to ``last_updated``. With equal
    timestamps the event processed last wins. Strictly older events are
    ignored. Store errors propagate so the bus can retry the delivery.
    """

    def __init__(self, store: ProjectionStore) -> None:
        self.store = store
        self._locks = [Lock() for _ in range(_LOCK_STRIPES)]

    def on_event(self, event: TelemetryEvent) -> bool:
        """Apply ``event``; return ``True`` when the projection changed hands."""
        with self._locks[event.device_id % _LOCK_STRIPES]:
            existing = self.store.find(event.device_id)
            if (
                existing is None
                or existing.last_updated is None
                or event.timestamp >= existing.last_updated
            ):
                self.store.save(
                    DeviceProjection(
                        device_id=event.device_id,
                        last_temperature=event.temperature,
                        last_updated=event.timestamp,
                    )
                )
                logger.debug("Projection updated", extra={"device_id": event.device_id})
                return True

        logger.debug(
            "Ignored older event: %s < %s",
            event.timestamp.isoformat(),
            existing.last_updated.isoformat(),
            extra={"device_id": event.device_id},
        )
        return False

    __call__ = on_event
