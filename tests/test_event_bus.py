"""In-process status bus."""

from __future__ import annotations

import time

from core.event_bus import EventBus, channel_for, status_event


def test_publish_reaches_every_handler_once() -> None:
    bus = EventBus()
    seen: list[str] = []
    handler = lambda name, payload: seen.append(name)  # noqa: E731
    bus.subscribe(handler)
    bus.subscribe(handler, channel="igg-1")

    bus.publish("queue_update", {})

    assert seen == ["queue_update"]


def test_publish_to_is_scoped_to_channel() -> None:
    bus = EventBus()
    everyone: list[str] = []
    one: list[str] = []
    two: list[str] = []
    bus.subscribe(lambda n, p: everyone.append(n))
    bus.subscribe(lambda n, p: one.append(n), channel=channel_for("1"))
    bus.subscribe(lambda n, p: two.append(n), channel=channel_for("2"))

    bus.publish_to(channel_for("1"), "automation_status", {})

    assert everyone == ["automation_status"]
    assert one == ["automation_status"]
    assert two == []


def test_failing_handler_does_not_stop_delivery() -> None:
    bus = EventBus()
    seen: list[str] = []

    def broken(name, payload):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(lambda n, p: seen.append(n))

    bus.publish("queue_update", {})

    assert seen == ["queue_update"]


def test_unsubscribe() -> None:
    bus = EventBus()
    seen: list[str] = []
    handler = lambda name, payload: seen.append(name)  # noqa: E731
    bus.subscribe(handler)
    bus.unsubscribe(handler)

    bus.publish("queue_update", {})

    assert seen == []


def test_status_event_shape() -> None:
    before = int(time.time() * 1000)
    event = status_event("completed", "Changes applied successfully")

    assert event["status"] == "completed"
    assert event["message"] == "Changes applied successfully"
    assert before <= event["timestamp"] <= int(time.time() * 1000)
    assert channel_for("42") == "igg-42"
