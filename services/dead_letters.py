"""Terminal destination for messages that exhausted their delivery retries."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Protocol

import redis

from models.records import to_utc
from services.errors import StoreUnavailableError

DEAD_LETTER_CHANNEL = "telemetry.events.dlt"


@dataclass(frozen=True)
class DeadLetter:
    """A failed message. ``payload`` is the wire body exactly as published."""

    channel: str
    payload: str
    reason: str
    attempts: int
    failed_at: datetime

    def to_document(self) -> Dict[str, Any]:
        document = asdict(self)
        document["failed_at"] = self.failed_at.isoformat()
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "DeadLetter":
        return cls(
            channel=document["channel"],
            payload=document["payload"],
            reason=document["reason"],
            attempts=int(document["attempts"]),
            failed_at=to_utc(datetime.fromisoformat(document["failed_at"])),
        )


class DeadLetterSink(Protocol):
    def send(self, letter: DeadLetter) -> None: ...

    def list(self) -> List[DeadLetter]: ...

    def clear(self) -> None: ...


class InMemoryDeadLetterSink:

    def __init__(self) -> None:
        self._letters: List[DeadLetter] = []
        self._lock = Lock()

    def send(self, letter: DeadLetter) -> None:
        with self._lock:
            self._letters.append(letter)

    def list(self) -> List[DeadLetter]:
        with self._lock:
            return list(self._letters)

    def clear(self) -> None:
        with self._lock:
            self._letters.clear()


class RedisDeadLetterSink:
    """Keeps dead letters in a Redis list named after the dead-letter channel."""

    def __init__(self, client: redis.Redis, list_key: str = DEAD_LETTER_CHANNEL) -> None:
        self._client = client
        self.list_key = list_key

    def send(self, letter: DeadLetter) -> None:
        try:
            self._client.rpush(self.list_key, json.dumps(letter.to_document()))
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Dead-letter write failed: {exc}") from exc

    def list(self) -> List[DeadLetter]:
        try:
            raw_items = self._client.lrange(self.list_key, 0, -1)
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Dead-letter read failed: {exc}") from exc
        return [DeadLetter.from_document(json.loads(raw)) for raw in raw_items]

    def clear(self) -> None:
        try:
            self._client.delete(self.list_key)
        except redis.RedisError as exc:
            raise StoreUnavailableError(f"Dead-letter clear failed: {exc}") from exc
