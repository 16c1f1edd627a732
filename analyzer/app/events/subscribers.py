from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Tuple

from analyzer.app.events.models import AnalysisEvent

logger = logging.getLogger(__name__)


class CallbackSubscriber:
    """Adapts a plain callable to the EventSubscriber interface."""

    def __init__(
        self,
        subscriber_id: str,
        callback: Callable[[AnalysisEvent], None],
    ) -> None:
        self.subscriber_id = subscriber_id
        self._callback = callback

    def handle(self, event: AnalysisEvent) -> None:
        self._callback(event)


class NullSubscriber:
    """
    A safe no-op subscriber.

    Used when:
    - streaming is disabled
    - no event sink is configured
    - tests that do not care about events
    """

    def __init__(self, subscriber_id: str = "null") -> None:
        self.subscriber_id = subscriber_id

    def handle(self, event: AnalysisEvent) -> None:
        return


class MemoryQueueSubscriber:
    """
    In-memory subscriber suitable for SSE streaming of a single run.

    Properties:
    - single-consumer
    - never blocks the publishing task (put_nowait on an unbounded queue)
    - deterministic ordering
    - terminates cleanly on run completion or failure
    """

    def __init__(
        self,
        subscriber_id: str,
        *,
        run_id: Optional[str] = None,
    ) -> None:
        self.subscriber_id = subscriber_id
        self._run_id = run_id
        self._queue: asyncio.Queue[AnalysisEvent | None] = asyncio.Queue()
        self._closed = False

    def handle(self, event: AnalysisEvent) -> None:
        if self._closed:
            return

        if self._run_id is not None and event.run_id != self._run_id:
            return

        self._queue.put_nowait(event)

        if event.is_terminal:
            self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def stream(self) -> AsyncIterator[AnalysisEvent]:
        """
        Async generator yielding received events in order.
        """
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event


# ----------------------------------------------------------------------
# Structured sink (append-only store keyed by (user_id, run_id))
# ----------------------------------------------------------------------

class EventStore(Protocol):
    """
    Append-only persistence collaborator for analysis events.

    The pipeline never reads the store back.
    """

    def append(self, user_id: str, run_id: str, event: AnalysisEvent) -> None:
        ...


class InMemoryEventStore:
    """Process-local EventStore. Suitable for tests and single-node runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: Dict[Tuple[str, str], List[AnalysisEvent]] = defaultdict(list)

    def append(self, user_id: str, run_id: str, event: AnalysisEvent) -> None:
        with self._lock:
            self._events[(user_id, run_id)].append(event)

    def events_for(self, user_id: str, run_id: str) -> List[AnalysisEvent]:
        with self._lock:
            return list(self._events.get((user_id, run_id), ()))


class EventStoreSubscriber:
    """
    Default persisting subscriber: writes every event to an EventStore.

    Events without a user_id are stored under `anonymous_user_id`.
    """

    def __init__(
        self,
        store: EventStore,
        *,
        subscriber_id: str = "event-store",
        anonymous_user_id: str = "anonymous",
    ) -> None:
        self.subscriber_id = subscriber_id
        self._store = store
        self._anonymous_user_id = anonymous_user_id

    def handle(self, event: AnalysisEvent) -> None:
        user_id = event.user_id or self._anonymous_user_id
        self._store.append(user_id, event.run_id, event)

        logger.debug(
            "Event stored: %s %s for run %s",
            event.scope.value,
            event.kind.value,
            event.run_id,
        )
