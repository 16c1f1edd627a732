"""
Progress event bus tests.

Verifies that:
- delivery follows registration order
- a raising subscriber never blocks a later well-behaved one
- unsubscribe takes effect for subsequent publishes
- run-scoped buses never leak per-call subscribers into the parent
"""

from __future__ import annotations

import logging

import pytest

from analyzer.app.events import (
    AnalysisEvent,
    AnalysisEventKind,
    AnalysisEventScope,
    CallbackSubscriber,
    NullSubscriber,
    ProgressEventBus,
)
from analyzer.tests.support.helpers import RecordingSubscriber


def make_event(kind: AnalysisEventKind = AnalysisEventKind.PROGRESS, **kwargs) -> AnalysisEvent:
    return AnalysisEvent(run_id=kwargs.pop("run_id", "run-1"), kind=kind, **kwargs)


class ExplodingSubscriber:
    def __init__(self, subscriber_id: str = "exploding") -> None:
        self.subscriber_id = subscriber_id
        self.calls = 0

    def handle(self, event: AnalysisEvent) -> None:
        self.calls += 1
        raise RuntimeError("subscriber crashed")


def test_delivery_in_registration_order():
    order = []
    bus = ProgressEventBus(
        [
            CallbackSubscriber("one", lambda e: order.append("one")),
            CallbackSubscriber("two", lambda e: order.append("two")),
            CallbackSubscriber("three", lambda e: order.append("three")),
        ]
    )

    delivered = bus.publish(make_event())

    assert delivered == 3
    assert order == ["one", "two", "three"]


def test_raising_subscriber_does_not_block_later_subscriber(caplog):
    exploding = ExplodingSubscriber()
    recorder = RecordingSubscriber()
    bus = ProgressEventBus([exploding, recorder])

    with caplog.at_level(logging.ERROR, logger="analyzer.app.events.bus"):
        delivered = bus.publish(make_event())

    assert exploding.calls == 1
    assert len(recorder.events) == 1
    assert delivered == 1

    failures = [r for r in caplog.records if getattr(r, "error_kind", None) == "subscriber_failure"]
    assert len(failures) == 1
    assert failures[0].subscriber_id == "exploding"


def test_unsubscribe_stops_delivery():
    recorder = RecordingSubscriber()
    bus = ProgressEventBus([recorder])

    bus.publish(make_event())
    assert bus.unsubscribe("recorder") is True
    bus.publish(make_event())

    assert len(recorder.events) == 1
    assert bus.unsubscribe("recorder") is False
    assert len(bus) == 0


def test_resubscribe_replaces_handler_and_keeps_position():
    order = []
    bus = ProgressEventBus(
        [
            CallbackSubscriber("a", lambda e: order.append("a1")),
            CallbackSubscriber("b", lambda e: order.append("b")),
        ]
    )

    bus.subscribe(CallbackSubscriber("a", lambda e: order.append("a2")))
    bus.publish(make_event())

    assert bus.subscriber_ids() == ["a", "b"]
    assert order == ["a2", "b"]


def test_with_subscribers_scopes_extra_subscribers_to_one_run():
    persistent = RecordingSubscriber("persistent")
    per_call = RecordingSubscriber("per-call")
    parent = ProgressEventBus([persistent])

    scoped = parent.with_subscribers([per_call])
    scoped.publish(make_event(run_id="scoped-run"))
    parent.publish(make_event(run_id="other-run"))

    assert [e.run_id for e in persistent.events] == ["scoped-run", "other-run"]
    assert [e.run_id for e in per_call.events] == ["scoped-run"]
    assert parent.subscriber_ids() == ["persistent"]
    assert scoped.subscriber_ids() == ["persistent", "per-call"]


def test_with_subscribers_rejects_id_already_inherited():
    store = RecordingSubscriber("event-store")
    parent = ProgressEventBus([store])

    with pytest.raises(ValueError):
        parent.with_subscribers([RecordingSubscriber("event-store")])

    with pytest.raises(ValueError):
        parent.with_subscribers([RecordingSubscriber("sse"), RecordingSubscriber("sse")])

    parent.publish(make_event())
    assert parent.subscriber_ids() == ["event-store"]
    assert len(store.events) == 1


def test_with_no_extra_subscribers_returns_same_bus():
    bus = ProgressEventBus()

    assert bus.with_subscribers(None) is bus
    assert bus.with_subscribers([]) is bus


def test_publish_without_subscribers_is_noop():
    bus = ProgressEventBus([NullSubscriber()])

    assert bus.publish(make_event()) == 1
    assert ProgressEventBus().publish(make_event()) == 0


def test_terminal_only_for_run_scope_completion():
    assert make_event(AnalysisEventKind.COMPLETED).is_terminal
    assert make_event(AnalysisEventKind.FAILED).is_terminal
    assert not make_event(AnalysisEventKind.PROGRESS).is_terminal
    assert not make_event(
        AnalysisEventKind.COMPLETED,
        scope=AnalysisEventScope.STAGE,
    ).is_terminal


def test_sse_payload_frame():
    frame = make_event(AnalysisEventKind.PROGRESS, progress=40).to_sse_payload()

    assert frame.startswith("event: progress\ndata: {")
    assert '"progress":40' in frame
    assert frame.endswith("\n\n")
