"""
Transport and scheduler contracts consumed by the connection manager.

Protocols only, to avoid circular imports between the manager and the
concrete transports. The running asyncio loop already satisfies Scheduler
(`loop.call_later(delay, callback)` returns a TimerHandle with cancel()).
"""

from __future__ import annotations

from typing import Callable, Protocol


class TransportHandle(Protocol):
    """One open (or opening) transport connection."""

    def close(self) -> None:
        """
        Close the connection.

        Synchronous: once this returns the handle never calls its sink again.
        """
        ...


class TransportSink(Protocol):
    """Receiver of transport notifications (the connection manager)."""

    def handle_open(self, handle: TransportHandle) -> None: ...

    def handle_message(
        self, handle: TransportHandle, raw: str, event_id: str | None = None
    ) -> None: ...

    def handle_failure(
        self, handle: TransportHandle, error: BaseException | None = None
    ) -> None: ...


class Transport(Protocol):
    """Opens server-to-client event channels."""

    def open(
        self, url: str, last_event_id: str | None, sink: TransportSink
    ) -> TransportHandle:
        """
        Start opening a connection to `url`.

        Must return before any sink callback fires. `last_event_id`, when
        set, asks the server to resume after that event.
        """
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...
