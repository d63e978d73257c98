from __future__ import annotations

from app.schemas import DeviceTemperature
from datastore.projection_store import ProjectionStore


class LatestTemperatureQuery:
    """Renders the projection store as one row per device, ordered by device id."""

    def __init__(self, store: ProjectionStore) -> None:
        self.store = store

    def list_latest(self) -> list[DeviceTemperature]:
        projections = sorted(self.store.find_all(), key=lambda item: item.device_id)
        return [
            DeviceTemperature(
                device_id=projection.device_id,
                temperature=projection.last_temperature,
                timestamp=projection.last_updated,
            )
            for projection in projections
        ]
