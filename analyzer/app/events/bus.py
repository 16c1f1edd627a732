from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol

from analyzer.app.events.models import AnalysisEvent

logger = logging.getLogger(__name__)


class EventSubscriber(Protocol):
    """
    Interface for receiving analysis events.

    Implementations should be:
    - fast (delivery is synchronous on the publishing task)
    - observational only (handlers MUST NOT influence control flow)

    A handler that raises is isolated by the bus; it never affects
    other subscribers or the run that published the event.
    """

    subscriber_id: str

    def handle(self, event: AnalysisEvent) -> None:
        ...


class ProgressEventBus:
    """
    Ordered registry of subscribers with per-subscriber failure isolation.

    Delivery properties:
    - synchronous, in registration order
    - at-most-once per subscriber per publish call
    - no buffering or replay for late subscribers

    The registry is the only state shared between concurrent runs.
    Mutation happens under a lock; publish iterates a snapshot taken
    under the same lock, so subscribe/unsubscribe never races delivery.
    """

    def __init__(
        self,
        subscribers: Optional[Iterable[EventSubscriber]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, EventSubscriber] = {}

        for subscriber in subscribers or ():
            self.subscribe(subscriber)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: EventSubscriber) -> None:
        """
        Register a subscriber under its subscriber_id.

        Re-subscribing an existing id replaces the handler but keeps
        the original delivery position.
        """
        with self._lock:
            self._subscribers[subscriber.subscriber_id] = subscriber
            total = len(self._subscribers)

        logger.debug(
            "Subscriber attached: %s (total=%d)",
            subscriber.subscriber_id,
            total,
        )

    def unsubscribe(self, subscriber_id: str) -> bool:
        with self._lock:
            removed = self._subscribers.pop(subscriber_id, None) is not None
            total = len(self._subscribers)

        logger.debug(
            "Subscriber detached: %s (removed=%s, total=%d)",
            subscriber_id,
            removed,
            total,
        )
        return removed

    def subscriber_ids(self) -> List[str]:
        with self._lock:
            return list(self._subscribers)

    def has_subscriber(self, subscriber_id: str) -> bool:
        with self._lock:
            return subscriber_id in self._subscribers

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def with_subscribers(
        self,
        subscribers: Optional[Iterable[EventSubscriber]],
    ) -> "ProgressEventBus":
        """
        Return a run-scoped bus: this bus's current subscribers followed
        by the per-call subscribers.

        The parent registry is not modified, so per-call subscribers
        never observe events from other runs.

        Raises ValueError if a per-call subscriber_id is already taken,
        either by an inherited subscriber or by another per-call one.
        Inherited subscribers are never displaced.
        """
        extra = list(subscribers or ())
        if not extra:
            return self

        with self._lock:
            inherited = list(self._subscribers.values())

        taken = {subscriber.subscriber_id for subscriber in inherited}
        for subscriber in extra:
            if subscriber.subscriber_id in taken:
                raise ValueError(
                    f"Subscriber id '{subscriber.subscriber_id}' is already "
                    "registered for this run"
                )
            taken.add(subscriber.subscriber_id)

        return ProgressEventBus([*inherited, *extra])

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def publish(self, event: AnalysisEvent) -> int:
        """
        Deliver the event to every current subscriber.

        Returns the number of subscribers whose handler returned normally.
        """
        with self._lock:
            snapshot = list(self._subscribers.items())

        delivered = 0

        for subscriber_id, subscriber in snapshot:
            try:
                subscriber.handle(event)
            except Exception:
                # subscriber_failure: absorbed here, never surfaced
                logger.exception(
                    "Subscriber %s failed to handle %s event for run %s",
                    subscriber_id,
                    event.kind.value,
                    event.run_id,
                    extra={
                        "subscriber_id": subscriber_id,
                        "event_kind": event.kind.value,
                        "error_kind": "subscriber_failure",
                    },
                )
                continue

            delivered += 1

        return delivered
