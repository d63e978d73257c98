"""Redis-backed projection store.

Each projection lives under ``{key_prefix}{device_id}`` as a JSON document
``{"deviceId", "lastTemperature", "lastUpdated"}``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterator, Optional, Union

import redis

from models.records import DeviceProjection
from services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "device:projection:"


@lru_cache
def build_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(
        url,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )


class RedisProjectionStore:

    def __init__(self, client: redis.Redis, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._client = client
        self.key_prefix = key_prefix

    def key_for(self, device_id: int) -> str:
        return f"{self.key_prefix}{device_id}"

    def find(self, device_id: int) -> Optional[DeviceProjection]:
        try:
            raw = self._client.get(self.key_for(device_id))
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Redis lookup failed: {exc}") from exc
        return self._decode(self.key_for(device_id), raw)

    def save(self, projection: DeviceProjection) -> None:
        document = projection.model_dump_json(by_alias=True)
        try:
            self._client.set(self.key_for(projection.device_id), document)
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Redis write failed: {exc}") from exc

    def find_all(self) -> list[DeviceProjection]:
        try:
            keys = list(self._scan_keys())
            if not keys:
                return []
            values = self._client.mget(keys)
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Redis scan failed: {exc}") from exc
        # a key may expire or be deleted between SCAN and MGET
        projections = []
        for key, raw in zip(keys, values):
            projection = self._decode(key, raw)
            if projection is not None:
                projections.append(projection)
        return projections

    def delete_all(self) -> None:
        try:
            keys = list(self._scan_keys())
            if keys:
                self._client.delete(*keys)
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Redis delete failed: {exc}") from exc
        logger.warning("Projection keys cleared", extra={"channel": self.key_prefix, "count": len(keys)})

    def _scan_keys(self) -> Iterator[bytes]:
        return self._client.scan_iter(match=f"{self.key_prefix}*", count=500)

    @staticmethod
    def _decode(key: Union[str, bytes], raw: Optional[bytes]) -> Optional[DeviceProjection]:
        if raw is None:
            return None
        try:
            return DeviceProjection.model_validate_json(raw)
        except ValueError:
            name = key.decode() if isinstance(key, bytes) else key
            logger.warning("Ignoring unreadable projection document", extra={"channel": name})
            return None
