"""
Event Dispatcher - fans parsed stream events out to subscribers.

Registrations are keyed by a generated token, so the same callable can be
subscribed twice and each registration removed independently.

Usage:
    dispatcher = EventDispatcher()
    sub = dispatcher.subscribe("work_changed", on_work_changed)
    dispatcher.subscribe("*", on_any_event)
    dispatcher.on_connect(lambda: print("live"))

    dispatcher.dispatch(event)
    dispatcher.unsubscribe(sub)
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from activity_stream.components.core.constants import WILDCARD_TOPIC
from activity_stream.components.events.types import (
    ConnectionCallback,
    ErrorCallback,
    EventCallback,
    StreamEvent,
)


class Channel(str, Enum):
    """Registration channels. Only EVENT registrations are keyed by topic."""

    EVENT = "event"
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    ERROR = "error"
    FULL_REFRESH = "full_refresh"


@dataclass(frozen=True, slots=True)
class Subscription:
    """Handle returned by every registration call. Pass it to unsubscribe()."""

    token: int
    channel: Channel
    topic: str | None = None


class EventDispatcher:
    """
    Topic-keyed listener registry with wildcard and lifecycle channels.

    Delivery rules:
    - dispatch() calls exact-topic listeners first, then wildcard listeners,
      each group in registration order, synchronously.
    - Listener exceptions are not swallowed. Every listener still runs; the
      error is re-raised afterwards (an ExceptionGroup if several failed).
    - Ordering is only guaranteed within one topic's listeners.
    """

    def __init__(self) -> None:
        self._topics: dict[str, dict[int, EventCallback]] = {}
        self._lifecycle: dict[Channel, dict[int, Callable[..., Any]]] = {
            Channel.CONNECT: {},
            Channel.DISCONNECT: {},
            Channel.ERROR: {},
            Channel.FULL_REFRESH: {},
        }
        self._tokens = itertools.count(1)

    # =========================================================================
    # Registration
    # =========================================================================

    def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        """
        Register a callback for events of the given type.

        Args:
            topic: Event type to receive, or "*" for every event.
            callback: Called with each matching StreamEvent.

        Returns:
            Subscription handle for unsubscribe().
        """
        token = next(self._tokens)
        self._topics.setdefault(topic, {})[token] = callback
        return Subscription(token, Channel.EVENT, topic)

    def on_connect(self, callback: ConnectionCallback) -> Subscription:
        return self._register(Channel.CONNECT, callback)

    def on_disconnect(self, callback: ConnectionCallback) -> Subscription:
        return self._register(Channel.DISCONNECT, callback)

    def on_error(self, callback: ErrorCallback) -> Subscription:
        return self._register(Channel.ERROR, callback)

    def on_full_refresh(self, callback: ConnectionCallback) -> Subscription:
        """Register a callback for "outage too long, re-fetch the snapshot"."""
        return self._register(Channel.FULL_REFRESH, callback)

    def _register(self, channel: Channel, callback: Callable[..., Any]) -> Subscription:
        token = next(self._tokens)
        self._lifecycle[channel][token] = callback
        return Subscription(token, channel)

    def unsubscribe(self, subscription: Subscription) -> bool:
        """
        Remove one registration.

        Returns:
            True if the registration existed, False if it was already removed.
        """
        if subscription.channel is Channel.EVENT:
            listeners = self._topics.get(subscription.topic or "")
            if listeners is None or listeners.pop(subscription.token, None) is None:
                return False
            if not listeners:
                del self._topics[subscription.topic or ""]
            return True
        return self._lifecycle[subscription.channel].pop(subscription.token, None) is not None

    def unsubscribe_topic(self, topic: str) -> int:
        """
        Remove every event listener registered for one topic.

        Returns:
            Number of registrations removed.
        """
        return len(self._topics.pop(topic, {}))

    def unsubscribe_all(self) -> None:
        """Clear every registration on every channel (final teardown)."""
        self._topics.clear()
        for listeners in self._lifecycle.values():
            listeners.clear()

    def listener_count(self, topic: str | None = None) -> int:
        """Number of event listeners for a topic, or across all topics."""
        if topic is not None:
            return len(self._topics.get(topic, {}))
        return sum(len(listeners) for listeners in self._topics.values())

    # =========================================================================
    # Delivery
    # =========================================================================

    def dispatch(self, event: StreamEvent) -> int:
        """
        Fan an event out to its topic listeners and the wildcard listeners.

        Returns:
            Number of callbacks invoked.
        """
        callbacks = list(self._topics.get(event.type, {}).values())
        if event.type != WILDCARD_TOPIC:
            callbacks.extend(self._topics.get(WILDCARD_TOPIC, {}).values())
        return _invoke_all(callbacks, event)

    def notify_connect(self) -> int:
        return _invoke_all(list(self._lifecycle[Channel.CONNECT].values()))

    def notify_disconnect(self) -> int:
        return _invoke_all(list(self._lifecycle[Channel.DISCONNECT].values()))

    def notify_error(self, error: BaseException) -> int:
        return _invoke_all(list(self._lifecycle[Channel.ERROR].values()), error)

    def notify_full_refresh(self) -> int:
        return _invoke_all(list(self._lifecycle[Channel.FULL_REFRESH].values()))


def _invoke_all(callbacks: list[Callable[..., Any]], *args: Any) -> int:
    """
    Call every callback, then re-raise what failed.

    The list is a snapshot, so callbacks may unsubscribe during delivery.
    """
    errors: list[Exception] = []
    for callback in callbacks:
        try:
            callback(*args)
        except Exception as e:
            errors.append(e)

    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise ExceptionGroup(f"{len(errors)} stream listeners raised", errors)
    return len(callbacks)
