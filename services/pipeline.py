"""Wiring of the write path, the event bus and the projection path."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from datastore.projection_store import ProjectionStore, build_default_projection_store
from models.records import TelemetryEvent
from services.command_handler import TelemetryCommandHandler
from services.dead_letters import DeadLetterSink, InMemoryDeadLetterSink, RedisDeadLetterSink
from services.event_bus import EventBus, RetryPolicy
from services.projection_updater import ProjectionUpdater
from services.query_service import LatestTemperatureQuery
from settings import get_settings
from storage.observation_log import ObservationLog, build_default_log

logger = logging.getLogger(__name__)


class TelemetryPipeline:
    """Owns one instance of every component, built from explicit dependencies."""

    def __init__(
        self,
        log: ObservationLog,
        projections: ProjectionStore,
        bus: EventBus,
    ) -> None:
        self.log = log
        self.projections = projections
        self.bus = bus
        self.updater = ProjectionUpdater(projections)
        self.commands = TelemetryCommandHandler(log, bus)
        self.queries = LatestTemperatureQuery(projections)
        self.subscription = bus.subscribe(self.updater.on_event, name="projection-updater")

    @property
    def dead_letters(self) -> DeadLetterSink:
        return self.bus.dead_letters

    def replay(self) -> int:
        """Republish every stored observation in id order.

        Redelivery is safe because projection updates are idempotent; this is
        how observations whose publish failed reach the projection.
        """
        observations = self.log.find_all()
        for observation in observations:
            self.bus.publish(TelemetryEvent.from_observation(observation))
        logger.info("Replayed observations", extra={"published": len(observations)})
        return len(observations)

    def reset(self, flush_timeout: float = 10.0) -> None:
        """Bulk clear of both stores and the dead-letter sink. Test/reset only."""
        if not self.bus.flush(timeout=flush_timeout):
            logger.warning(
                "Event bus still busy at reset; in-flight events may land after the clear",
                extra={"status": self.bus.stats()},
            )
        self.log.delete_all()
        self.projections.delete_all()
        self.dead_letters.clear()

    def shutdown(self) -> None:
        self.bus.close(wait=False)


@lru_cache
def build_default_pipeline(concurrency: Optional[int] = None) -> TelemetryPipeline:
    """Factory that wires the pipeline from environment settings."""
    settings = get_settings()
    projections = build_default_projection_store()
    if settings.projection_backend == "redis":
        from datastore.redis_projection_store import build_redis_client

        dead_letters: DeadLetterSink = RedisDeadLetterSink(build_redis_client(settings.redis_url))
    else:
        dead_letters = InMemoryDeadLetterSink()
    bus = EventBus(
        dead_letters=dead_letters,
        concurrency=concurrency or settings.bus_concurrency,
        retry_policy=RetryPolicy(
            max_retries=settings.bus_max_retries,
            delay=settings.bus_retry_delay,
        ),
    )
    return TelemetryPipeline(log=build_default_log(), projections=projections, bus=bus)
