from __future__ import annotations

from datetime import datetime, timezone

import fakeredis

from services.dead_letters import (
    DEAD_LETTER_CHANNEL,
    DeadLetter,
    InMemoryDeadLetterSink,
    RedisDeadLetterSink,
)


def _letter(payload: str = '{"deviceId":1,"temperature":2.0,"timestamp":"2024-01-01T00:00:00Z"}') -> DeadLetter:
    return DeadLetter(
        channel=DEAD_LETTER_CHANNEL,
        payload=payload,
        reason="RuntimeError: boom",
        attempts=4,
        failed_at=datetime(2024, 1, 1, 0, 0, 5, tzinfo=timezone.utc),
    )


def test_in_memory_sink_keeps_letters_in_order() -> None:
    sink = InMemoryDeadLetterSink()
    sink.send(_letter("a"))
    sink.send(_letter("b"))

    assert [letter.payload for letter in sink.list()] == ["a", "b"]

    sink.clear()
    assert sink.list() == []


def test_redis_sink_round_trips_payload_verbatim() -> None:
    client = fakeredis.FakeRedis()
    sink = RedisDeadLetterSink(client)
    letter = _letter()

    sink.send(letter)

    assert client.llen(DEAD_LETTER_CHANNEL) == 1
    assert sink.list() == [letter]

    sink.clear()
    assert sink.list() == []
