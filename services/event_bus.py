"""In-process, partitioned event bus with bounded retries and dead-lettering."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from queue import Queue
from threading import Condition, Event, Lock
from typing import Callable, Dict, List, Optional

from models.records import TelemetryEvent
from services.dead_letters import (
    DEAD_LETTER_CHANNEL,
    DeadLetter,
    DeadLetterSink,
    InMemoryDeadLetterSink,
)
from services.errors import PoisonMessageError, PublishError, TransientDeliveryError

logger = logging.getLogger(__name__)

TELEMETRY_CHANNEL = "telemetry.events"

Handler = Callable[[TelemetryEvent], object]

_STOP = object()


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed back-off: ``max_retries`` further attempts, ``delay`` seconds apart."""

    max_retries: int = 3
    delay: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class BusStats:
    published: int = 0
    dropped: int = 0
    delivered: int = 0
    retried: int = 0
    dead_lettered: int = 0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def increment(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "published": self.published,
                "dropped": self.dropped,
                "delivered": self.delivered,
                "retried": self.retried,
                "dead_lettered": self.dead_lettered,
            }


class Subscription:
    """One consumer of the channel, fed through ``lanes`` sequential worker lanes.

    Messages with the same key always land on the same lane, so per-key
    delivery order equals publish order.
    """

    def __init__(
        self,
        name: str,
        handler: Handler,
        lanes: int,
        retry_policy: RetryPolicy,
        dead_letters: DeadLetterSink,
        stats: BusStats,
    ) -> None:
        self.name = name
        self._handler = handler
        self._retry_policy = retry_policy
        self._dead_letters = dead_letters
        self._stats = stats
        self._queues: List[Queue] = [Queue() for _ in range(lanes)]
        self._pending = 0
        self._idle = Condition()
        self._stopping = Event()
        self._active = True
        self._executor = ThreadPoolExecutor(max_workers=lanes, thread_name_prefix=f"{name}-lane")
        self._lanes: List[Future[None]] = [
            self._executor.submit(self._run_lane, index) for index in range(lanes)
        ]

    @property
    def lanes(self) -> int:
        return len(self._queues)

    @property
    def active(self) -> bool:
        with self._idle:
            return self._active

    def lane_for(self, key: int) -> int:
        return key % len(self._queues)

    def enqueue(self, key: int, payload: str) -> bool:
        with self._idle:
            if not self._active:
                return False
            self._pending += 1
            self._queues[self.lane_for(key)].put(payload)
        return True

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every message enqueued so far has been settled."""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def cancel(self, wait: bool = True) -> None:
        """Stop the lanes once the messages already queued are settled."""
        with self._idle:
            if self._active:
                self._active = False
                for lane_queue in self._queues:
                    lane_queue.put(_STOP)
        self._stopping.set()
        self._executor.shutdown(wait=wait)

    def _run_lane(self, index: int) -> None:
        lane_queue = self._queues[index]
        while True:
            item = lane_queue.get()
            if item is _STOP:
                return
            try:
                self._deliver(index, item)
            except Exception:  # pragma: no cover - dead-letter sink failure
                logger.exception(
                    "Message could not be settled",
                    extra={"subscription": self.name, "lane": index},
                )
            finally:
                with self._idle:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.notify_all()

    def _deliver(self, lane: int, payload: str) -> None:
        try:
            event = TelemetryEvent.from_wire(payload)
        except ValueError as exc:
            self._dead_letter(payload, attempts=1, reason=f"undecodable payload: {exc}", lane=lane)
            return

        max_attempts = self._retry_policy.max_attempts
        failure: Optional[TransientDeliveryError] = None
        for attempt in range(1, max_attempts + 1):
            try:
                self._handler(event)
            except Exception as exc:
                failure = TransientDeliveryError(attempt, max_attempts, exc)
                logger.warning(
                    "Handler failed",
                    extra={
                        "subscription": self.name,
                        "lane": lane,
                        "device_id": event.device_id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "reason": str(exc),
                    },
                )
                if attempt < max_attempts:
                    self._stats.increment("retried")
                    self._stopping.wait(self._retry_policy.delay)
                continue
            self._stats.increment("delivered")
            return

        assert failure is not None
        reason = f"{type(failure.cause).__name__}: {failure.cause}"
        self._dead_letter(payload, attempts=max_attempts, reason=reason, lane=lane)

    def _dead_letter(self, payload: str, attempts: int, reason: str, lane: int) -> None:
        poison = PoisonMessageError(payload, attempts, reason)
        logger.error(
            str(poison),
            extra={
                "subscription": self.name,
                "lane": lane,
                "channel": DEAD_LETTER_CHANNEL,
                "attempt": attempts,
            },
        )
        self._dead_letters.send(
            DeadLetter(
                channel=DEAD_LETTER_CHANNEL,
                payload=payload,
                reason=reason,
                attempts=attempts,
                failed_at=datetime.now(timezone.utc),
            )
        )
        self._stats.increment("dead_lettered")


class EventBus:
    """Ordered, at-least-once delivery of telemetry events to subscribers.

    Every subscription receives every message published after it
    subscribed. Events are encoded to their JSON wire form on publish and
    decoded again on the consuming lane.
    """

    def __init__(
        self,
        dead_letters: Optional[DeadLetterSink] = None,
        concurrency: int = 3,
        retry_policy: Optional[RetryPolicy] = None,
        channel: str = TELEMETRY_CHANNEL,
    ) -> None:
        if concurrency < 1:
            raise ValueError("Event bus concurrency must be at least 1.")
        self.channel = channel
        self.concurrency = concurrency
        self.retry_policy = retry_policy or RetryPolicy()
        self.dead_letters: DeadLetterSink = (
            dead_letters if dead_letters is not None else InMemoryDeadLetterSink()
        )
        self._subscriptions: List[Subscription] = []
        self._lock = Lock()
        self._closed = False
        self._stats = BusStats()

    def subscribe(self, handler: Handler, name: Optional[str] = None) -> Subscription:
        with self._lock:
            if self._closed:
                raise PublishError(f"Event bus for {self.channel!r} is closed.")
            subscription = Subscription(
                name=name or f"subscriber-{len(self._subscriptions) + 1}",
                handler=handler,
                lanes=self.concurrency,
                retry_policy=self.retry_policy,
                dead_letters=self.dead_letters,
                stats=self._stats,
            )
            self._subscriptions.append(subscription)
        logger.info(
            "Subscribed to channel",
            extra={"channel": self.channel, "subscription": subscription.name},
        )
        return subscription

    def publish(self, event: TelemetryEvent) -> None:
        logger.debug(
            "Publishing event",
            extra={"channel": self.channel, "device_id": event.device_id},
        )
        self.publish_payload(event.device_id, event.to_wire())

    def publish_payload(self, key: int, payload: str) -> None:
        """Hand a raw wire body to every active subscription, partitioned by ``key``."""
        with self._lock:
            if self._closed:
                raise PublishError(f"Event bus for {self.channel!r} is closed.")
            self._subscriptions = [sub for sub in self._subscriptions if sub.active]
            targets = list(self._subscriptions)

        delivered_to = sum(1 for subscription in targets if subscription.enqueue(key, payload))
        if delivered_to == 0:
            self._stats.increment("dropped")
            logger.debug("No subscribers; message dropped", extra={"channel": self.channel})
            return
        self._stats.increment("published")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for all subscriptions to settle their queued messages."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            targets = list(self._subscriptions)
        for subscription in targets:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not subscription.flush(remaining):
                return False
        return True

    def stats(self) -> Dict[str, int]:
        return self._stats.snapshot()

    def close(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            targets = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in targets:
            subscription.cancel(wait=wait)
