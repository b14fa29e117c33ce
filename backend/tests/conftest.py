from __future__ import annotations

import pytest

from app.services.coordinator import Coordinator


class FakeHandle:
    def __init__(self, when: float, callback, args) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock standing in for the event loop's call_later."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[FakeHandle] = []

    def call_later(self, delay, callback, *args) -> FakeHandle:
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted((h for h in self.handles if h.when <= self.now and not h.fired), key=lambda h: h.when)
        for handle in due:
            handle.fired = True
            if not handle.cancelled:
                handle.callback(*handle.args)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def coordinator(scheduler) -> Coordinator:
    return Coordinator(scheduler=scheduler)


def connect(coordinator: Coordinator, subject: str, connection_id: str | None = None) -> str:
    connection_id = connection_id or f"conn-{subject}"
    coordinator.connect(connection_id, subject)
    coordinator.hub.drain(connection_id)
    return connection_id


def send(coordinator: Coordinator, connection_id: str, event: str, **fields):
    return coordinator.handle(connection_id, {"event": event, **fields})


def received(coordinator: Coordinator, connection_id: str) -> list[dict]:
    return coordinator.hub.drain(connection_id)


def names(messages: list[dict]) -> list[str]:
    return [message["event"] for message in messages]


def open_room(coordinator: Coordinator, host: str, room_id: str, name: str = "Host") -> str:
    send(coordinator, host, "create-room", roomId=room_id, hostProfile={"name": name})
    received(coordinator, host)
    return room_id
