"""
Pytest configuration and fixtures for stream client tests.

The connection manager is driven by a fake clock, a manually advanced
scheduler and a scripted transport, so state machine tests need no event
loop and no network.
"""

import json
from typing import Any, Callable

import pytest

from activity_stream.components.events.dispatcher import EventDispatcher
from activity_stream.components.resilience.reconnection import ReconnectionConfig
from activity_stream.connection_manager import StreamConnectionManager


STREAM_URL = "http://test/api/gastown/feed/stream"


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTimer:
    def __init__(self, when: float, delay: float, callback: Callable[[], None]):
        self.when = when
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """call_later() look-alike; advance() moves the clock and fires due timers."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.clock.now + delay, delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and t.callback is not None]

    @property
    def delays(self) -> list[float]:
        """Delays of every timer ever scheduled, in order."""
        return [t.delay for t in self.timers]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.clock.now = max(self.clock.now, timer.when)
            callback, timer.callback = timer.callback, None
            callback()
        self.clock.now = target


class FakeHandle:
    """Transport handle whose lifecycle the test drives explicitly."""

    def __init__(self, url: str, last_event_id: str | None, sink: Any):
        self.url = url
        self.last_event_id = last_event_id
        self.sink = sink
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def open(self) -> None:
        self.sink.handle_open(self)

    def fail(self, error: BaseException | None = None) -> None:
        self.sink.handle_failure(self, error)

    def send(self, payload: Any, event_id: str | None = None) -> None:
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        self.sink.handle_message(self, raw, event_id)


class FakeTransport:
    """Records every open() call; fail_on_open makes open() raise instead."""

    def __init__(self):
        self.handles: list[FakeHandle] = []
        self.fail_on_open: BaseException | None = None

    def open(self, url: str, last_event_id: str | None, sink: Any) -> FakeHandle:
        if self.fail_on_open is not None:
            raise self.fail_on_open
        handle = FakeHandle(url, last_event_id, sink)
        self.handles.append(handle)
        return handle

    @property
    def latest(self) -> FakeHandle:
        return self.handles[-1]


def make_event(event_type: str = "work_changed", **data: Any) -> dict[str, Any]:
    return {"type": event_type, "timestamp": "2026-01-14T00:00:00Z", "data": data}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return FakeScheduler(clock)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def config():
    """1 s doubling to 30 s, stale after 60 s offline."""
    return ReconnectionConfig(
        initial_delay=1.0,
        max_delay=30.0,
        full_refresh_threshold=60.0,
        backoff_multiplier=2.0,
    )


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def make_manager(config, transport, scheduler, clock, dispatcher):
    """Factory for managers wired to the fakes; keyword overrides allowed."""

    def _make(**overrides: Any) -> StreamConnectionManager:
        kwargs: dict[str, Any] = {
            "transport": transport,
            "scheduler": scheduler,
            "clock": clock,
            "dispatcher": dispatcher,
            "max_message_size": 64 * 1024,
        }
        kwargs.update(overrides)
        return StreamConnectionManager(STREAM_URL, kwargs.pop("config", config), **kwargs)

    return _make


@pytest.fixture
def manager(make_manager):
    return make_manager()
