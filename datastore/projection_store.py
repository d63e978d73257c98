from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional, Protocol, runtime_checkable

from models.records import DeviceProjection
from services.errors import StoreUnavailableError
from settings import get_settings

logger = logging.getLogger(__name__)


@runtime_checkable
class ProjectionStore(Protocol):
    """Keyed storage for device projections, one live record per device."""

    def find(self, device_id: int) -> Optional[DeviceProjection]: ...

    def save(self, projection: DeviceProjection) -> None: ...

    def find_all(self) -> list[DeviceProjection]: ...

    def delete_all(self) -> None: ...


class InMemoryProjectionStore:

    def __init__(self, name: str = "projections", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[int, DeviceProjection] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def save(self, projection: DeviceProjection) -> None:
        with self._lock:
            items = dict(self._items)
            items[projection.device_id] = projection.model_copy(deep=True)
            self._persist(items)
            self._items = items

    def find(self, device_id: int) -> Optional[DeviceProjection]:
        with self._lock:
            item = self._items.get(device_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def find_all(self) -> list[DeviceProjection]:
        """Return deep copies of all stored projections."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def delete_all(self) -> None:
        with self._lock:
            self._persist({})
            self._items = {}

    def _persist(self, items: Dict[int, DeviceProjection]) -> None:
        """Write ``items`` to disk; callers swap them in only after this succeeds."""
        if not self.persistence_path:
            return
        payload = {
            str(device_id): item.model_dump(mode="json", by_alias=True)
            for device_id, item in items.items()
        }
        try:
            self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))
        except OSError as exc:
            raise StoreUnavailableError(
                f"Projection store {self.name!r} is not writable: {exc}"
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}
        if not isinstance(data, dict):
            logger.warning("Ignoring projection file without a top-level object", extra={"channel": self.name})
            data = {}

        for key, payload in data.items():
            try:
                projection = DeviceProjection.model_validate(payload)
            except ValueError:
                logger.warning(
                    "Skipping unreadable projection %s",
                    key,
                    extra={"channel": self.name},
                )
                continue
            self._items[projection.device_id] = projection


@lru_cache
def build_default_projection_store() -> ProjectionStore:
    settings = get_settings()
    if settings.projection_backend == "redis":
        from datastore.redis_projection_store import RedisProjectionStore, build_redis_client

        return RedisProjectionStore(
            client=build_redis_client(settings.redis_url),
            key_prefix=settings.projection_key_prefix,
        )
    path = settings.projection_persistence_path
    persistence = Path(path) if path else None
    return InMemoryProjectionStore(persistence_path=persistence)
