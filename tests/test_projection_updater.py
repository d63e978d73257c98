"""Last-write-wins behaviour of the projection updater."""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from datastore.projection_store import InMemoryProjectionStore
from models.records import DeviceProjection, TelemetryEvent
from services.errors import StoreUnavailableError
from services.projection_updater import ProjectionUpdater

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _event(device_id: int, temperature: float, offset_seconds: int) -> TelemetryEvent:
    return TelemetryEvent(
        device_id=device_id,
        temperature=temperature,
        timestamp=T0 + timedelta(seconds=offset_seconds),
    )


@pytest.fixture()
def store() -> InMemoryProjectionStore:
    return InMemoryProjectionStore()


def test_first_event_creates_projection(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)

    assert updater.on_event(_event(1, 10.0, 0)) is True

    assert store.find(1) == DeviceProjection(device_id=1, last_temperature=10.0, last_updated=T0)


def test_newer_event_overwrites(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)
    updater.on_event(_event(1, 10.0, 0))

    assert updater.on_event(_event(1, 12.0, 5)) is True

    projection = store.find(1)
    assert projection is not None
    assert projection.last_temperature == 12.0
    assert projection.last_updated == T0 + timedelta(seconds=5)


def test_older_event_is_ignored(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)
    updater.on_event(_event(2, 30.0, 10))

    assert updater.on_event(_event(2, 5.0, 3)) is False

    projection = store.find(2)
    assert projection is not None
    assert projection.last_temperature == 30.0
    assert projection.last_updated == T0 + timedelta(seconds=10)


def test_equal_timestamp_overwrites_in_processing_order(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)

    for temperature, offset in [(10.0, 0), (15.0, 0), (20.0, 5)]:
        updater.on_event(_event(3, temperature, offset))

    assert store.find(3) == DeviceProjection(
        device_id=3, last_temperature=20.0, last_updated=T0 + timedelta(seconds=5)
    )


def test_equal_timestamp_last_processed_wins(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)
    updater.on_event(_event(3, 10.0, 0))
    updater.on_event(_event(3, 15.0, 0))

    projection = store.find(3)
    assert projection is not None
    assert projection.last_temperature == 15.0


def test_duplicate_event_is_idempotent() -> None:
    once = InMemoryProjectionStore()
    twice = InMemoryProjectionStore()
    event = _event(4, 21.5, 7)

    ProjectionUpdater(once).on_event(event)
    updater = ProjectionUpdater(twice)
    updater.on_event(event)
    updater.on_event(event)

    first = once.find(4)
    second = twice.find(4)
    assert first is not None and second is not None
    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
def test_any_processing_order_converges_on_latest_timestamp(order: tuple[int, ...]) -> None:
    events = [
        _event(5, 10.0, 0),
        _event(5, 11.0, 4),
        _event(5, 12.0, 9),
        _event(5, 13.0, 2),
    ]
    store = InMemoryProjectionStore()
    updater = ProjectionUpdater(store)

    for index in order:
        updater.on_event(events[index])

    projection = store.find(5)
    assert projection is not None
    assert projection.last_updated == T0 + timedelta(seconds=9)
    assert projection.last_temperature == 12.0


def test_last_updated_never_decreases(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)
    seen: list[datetime] = []

    for offset in [5, 1, 8, 8, 3, 12, 0]:
        updater.on_event(_event(6, float(offset), offset))
        projection = store.find(6)
        assert projection is not None and projection.last_updated is not None
        seen.append(projection.last_updated)

    assert seen == sorted(seen)


def test_projection_without_timestamp_is_replaced(store: InMemoryProjectionStore) -> None:
    store.save(DeviceProjection(device_id=7))
    updater = ProjectionUpdater(store)

    assert updater.on_event(_event(7, 1.5, 0)) is True
    projection = store.find(7)
    assert projection is not None
    assert projection.last_temperature == 1.5


def test_concurrent_updates_for_one_device_keep_the_newest(store: InMemoryProjectionStore) -> None:
    updater = ProjectionUpdater(store)
    barrier = threading.Barrier(8)

    def worker(offsets: range) -> None:
        barrier.wait(timeout=2)
        for offset in offsets:
            updater.on_event(_event(8, float(offset), offset))

    threads = [
        threading.Thread(target=worker, args=(range(start, 400, 8),)) for start in range(8)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    projection = store.find(8)
    assert projection is not None
    assert projection.last_updated == T0 + timedelta(seconds=399)
    assert projection.last_temperature == 399.0


class _UnavailableStore(InMemoryProjectionStore):
    def find(self, device_id: int) -> Optional[DeviceProjection]:
        raise StoreUnavailableError("projection store offline")


def test_store_errors_propagate() -> None:
    updater = ProjectionUpdater(_UnavailableStore())

    with pytest.raises(StoreUnavailableError):
        updater.on_event(_event(9, 1.0, 0))
