from .models import AnalysisEvent, AnalysisEventKind, AnalysisEventScope
from .bus import EventSubscriber, ProgressEventBus
from .subscribers import (
    CallbackSubscriber,
    EventStore,
    EventStoreSubscriber,
    InMemoryEventStore,
    MemoryQueueSubscriber,
    NullSubscriber,
)

__all__ = [
    "AnalysisEvent",
    "AnalysisEventKind",
    "AnalysisEventScope",
    "EventSubscriber",
    "ProgressEventBus",
    "CallbackSubscriber",
    "EventStore",
    "EventStoreSubscriber",
    "InMemoryEventStore",
    "MemoryQueueSubscriber",
    "NullSubscriber",
]
