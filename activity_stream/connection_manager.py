"""
Stream Connection Manager.

Owns one live event-stream subscription and keeps it alive:

    IDLE --connect()--> CONNECTING --open--> CONNECTED
                            ^                    |
                            |                 failure
                       timer fires               |
                            |                    v
                            +---------- RECONNECT_PENDING

    any state --disconnect()--> CLOSED (connect() may start over)

Decisions (backoff delay, full refresh) come from the pure policy in
components.resilience.reconnection; this class only applies them. It is
driven by transport callbacks and a single reconnect timer on one
cooperative event loop and is not safe for concurrent use from threads.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable

from activity_stream.components.events.dispatcher import EventDispatcher, Subscription
from activity_stream.components.events.types import (
    ConnectionCallback,
    ErrorCallback,
    EventCallback,
)
from activity_stream.components.resilience.reconnection import (
    ReconnectionConfig,
    ReconnectionState,
    StateUpdate,
    calculate_backoff,
    create_reconnection_state,
    reset_reconnection_state,
    should_full_refresh,
    update_reconnection_state,
)
from activity_stream.core.subscriber.drop_tracker import MalformedMessageTracker
from activity_stream.core.subscriber.validator import validate_stream_message
from activity_stream.core.transport.base import (
    Scheduler,
    TimerHandle,
    Transport,
    TransportHandle,
)
from activity_stream.shared.config.logging import get_logger
from activity_stream.shared.config.settings import settings
from activity_stream.shared.utils.exceptions import (
    InvalidParameterError,
    TransportFailureError,
)

logger = get_logger(__name__)

__all__ = [
    "StreamConnectionManager",
    "StreamState",
]


class StreamState(Enum):
    """Connection lifecycle states."""

    IDLE = "idle"  # Never connected
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_PENDING = "reconnect_pending"  # Timer scheduled
    CLOSED = "closed"  # Explicit teardown or fatal configuration error


_LIVE_STATES = frozenset({StreamState.CONNECTING, StreamState.CONNECTED})


class StreamConnectionManager:
    """
    Resilient client for one server-to-client event stream.

    Composes:
    - Transport: opens the channel (SSETransport by default)
    - EventDispatcher: fans events and lifecycle notifications out
    - MalformedMessageTracker: monitors dropped messages
    - Reconnection policy functions: backoff and full-refresh decisions

    Failure handling:
    - Transport failures reconnect forever, backing off up to max_delay.
    - Malformed messages are dropped; the stream continues.
    - An invalid ReconnectionConfig is reported once to error listeners and
      closes the manager without entering the retry loop.
    - When an outage outlasts full_refresh_threshold, full-refresh listeners
      are told once per outage; the stream is still re-established, without
      a resume id, so the owner can pair it with a fresh snapshot.

    Usage:
        manager = StreamConnectionManager(url)
        manager.subscribe("work_changed", store.apply)
        manager.on_full_refresh(store.schedule_snapshot)
        manager.connect()
        ...
        manager.disconnect()
    """

    def __init__(
        self,
        url: str,
        config: ReconnectionConfig | None = None,
        *,
        transport: Transport | None = None,
        dispatcher: EventDispatcher | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        last_event_id: str | None = None,
        max_message_size: int | None = None,
        name: str | None = None,
    ) -> None:
        """
        Args:
            url: Stream endpoint.
            config: Reconnection tuning; defaults to settings.
            transport: Channel opener; defaults to SSETransport.
            dispatcher: Listener registry; a private one is created if omitted.
            scheduler: Timer source; defaults to the running asyncio loop.
            clock: Time source in epoch seconds.
            last_event_id: Known resume position from a previous session.
            max_message_size: Messages above this many bytes are dropped.
            name: Label used in logs; defaults to the URL.
        """
        if transport is None:
            from activity_stream.core.transport.sse import SSETransport

            transport = SSETransport()

        self._url = url
        self._config = config or ReconnectionConfig.from_settings(settings)
        self._transport = transport
        self._dispatcher = dispatcher or EventDispatcher()
        self._scheduler = scheduler
        self._clock = clock
        self._name = name or url
        self._max_message_size = (
            settings.stream_max_message_size if max_message_size is None else max_message_size
        )

        self._state = StreamState.IDLE
        self._reconnection = create_reconnection_state(last_event_id)
        self._handle: TransportHandle | None = None
        self._timer: TimerHandle | None = None
        self._next_delay: float | None = None
        self._stopped = False
        self._refresh_due = False
        self._fatal_error: InvalidParameterError | None = None

        self._drop_tracker = MalformedMessageTracker(
            window_seconds=settings.stream_drop_window_seconds,
            alert_threshold_percent=settings.stream_drop_alert_threshold_percent,
            alert_cooldown_seconds=settings.stream_drop_alert_cooldown_seconds,
            clock=clock,
            name=self._name,
        )

        # Metrics
        self._events_received = 0
        self._reconnects_scheduled = 0
        self._last_scheduled_delay: float | None = None
        self._full_refresh_signals = 0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is StreamState.CONNECTED

    @property
    def reconnection_state(self) -> ReconnectionState:
        """Current reconnection bookkeeping (immutable snapshot)."""
        return self._reconnection

    @property
    def last_event_id(self) -> str | None:
        return self._reconnection.last_event_id

    @property
    def has_pending_reconnect(self) -> bool:
        return self._timer is not None

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    # =========================================================================
    # Listener registration (delegates to the dispatcher)
    # =========================================================================

    def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        return self._dispatcher.subscribe(topic, callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._dispatcher.unsubscribe(subscription)

    def unsubscribe_topic(self, topic: str) -> int:
        return self._dispatcher.unsubscribe_topic(topic)

    def on_connect(self, callback: ConnectionCallback) -> Subscription:
        return self._dispatcher.on_connect(callback)

    def on_disconnect(self, callback: ConnectionCallback) -> Subscription:
        return self._dispatcher.on_disconnect(callback)

    def on_error(self, callback: ErrorCallback) -> Subscription:
        return self._dispatcher.on_error(callback)

    def on_full_refresh(self, callback: ConnectionCallback) -> Subscription:
        return self._dispatcher.on_full_refresh(callback)

    # =========================================================================
    # Public lifecycle
    # =========================================================================

    def connect(self) -> None:
        """
        Start (or restart) the stream.

        No-op while connecting or connected. From RECONNECT_PENDING the
        pending attempt runs immediately instead of waiting for the timer.

        Raises:
            InvalidParameterError: If no scheduler was given and no asyncio
                loop is running. The manager state is left unchanged, so
                connect() can be called again from inside a loop.
        """
        if self._state in _LIVE_STATES:
            return
        if self._fatal_error is not None:
            logger.debug("Ignoring connect on misconfigured stream", stream=self._name)
            return

        try:
            self._config.validate()
        except InvalidParameterError as e:
            self._fatal_error = e
            self._state = StreamState.CLOSED
            self._notify(self._dispatcher.notify_error, e)
            return

        if self._scheduler is None:
            try:
                self._scheduler = asyncio.get_running_loop()
            except RuntimeError:
                raise InvalidParameterError(
                    "scheduler",
                    None,
                    "is required when connect() is called outside a running event loop",
                    stream=self._name,
                ) from None

        self._stopped = False

        if self._state is StreamState.RECONNECT_PENDING:
            self._cancel_timer()
            self._attempt_reconnect()
            return

        if self._state is StreamState.CLOSED:
            # The outage may have started with disconnect(); decide whether
            # resuming from last_event_id is still trustworthy
            self._check_full_refresh()
            if self._state is not StreamState.CLOSED or self._stopped:
                return

        self._open_transport()

    def disconnect(self) -> None:
        """
        Close the stream for good.

        Cancels any pending reconnect and closes the transport before
        returning. Idempotent. Late failures from the old transport are
        ignored, so no automatic reconnection follows.
        """
        self._stopped = True
        self._cancel_timer()

        if self._state is StreamState.CLOSED:
            return

        was_connected = self._state is StreamState.CONNECTED
        if self._state in _LIVE_STATES:
            self._reconnection = update_reconnection_state(
                self._reconnection, StateUpdate.disconnect(), now=self._clock()
            )
        self._discard_transport()
        self._state = StreamState.CLOSED

        logger.info(
            "Stream disconnected",
            stream=self._name,
            last_event_id=self._reconnection.last_event_id,
        )
        if was_connected:
            self._notify(self._dispatcher.notify_disconnect)

    def destroy(self) -> None:
        """Disconnect and drop every listener."""
        self.disconnect()
        self._dispatcher.unsubscribe_all()

    # =========================================================================
    # Transport callbacks
    # =========================================================================

    def handle_open(self, handle: TransportHandle) -> None:
        if handle is not self._handle or self._state is not StreamState.CONNECTING:
            return

        attempts = self._reconnection.attempt_count
        self._state = StreamState.CONNECTED
        self._reconnection = reset_reconnection_state(self._reconnection)
        self._next_delay = None
        self._refresh_due = False

        logger.info(
            "Stream connected",
            stream=self._name,
            attempts=attempts,
            last_event_id=self._reconnection.last_event_id,
        )
        self._notify(self._dispatcher.notify_connect)

    def handle_message(
        self, handle: TransportHandle, raw: str, event_id: str | None = None
    ) -> None:
        if handle is not self._handle or self._state is not StreamState.CONNECTED:
            return

        is_valid, error, event = validate_stream_message(raw, max_size=self._max_message_size)
        if not is_valid or event is None:
            self._drop_tracker.record_dropped()
            logger.debug("Dropping malformed stream message", stream=self._name, reason=error)
            return

        self._drop_tracker.record_processed()
        self._events_received += 1
        self._reconnection = update_reconnection_state(
            self._reconnection, StateUpdate.event(event_id)
        )

        try:
            self._dispatcher.dispatch(event)
        except Exception:
            logger.error(
                "Stream listener raised during dispatch",
                stream=self._name,
                event_type=event.type,
                exc_info=True,
            )

    def handle_failure(
        self, handle: TransportHandle, error: BaseException | None = None
    ) -> None:
        if handle is not self._handle or self._state not in _LIVE_STATES:
            return

        was_connected = self._state is StreamState.CONNECTED
        self._reconnection = update_reconnection_state(
            self._reconnection, StateUpdate.disconnect(), now=self._clock()
        )
        self._discard_transport()

        if self._stopped:
            self._state = StreamState.CLOSED
            return

        self._state = StreamState.RECONNECT_PENDING
        logger.warning(
            "Stream transport failed",
            stream=self._name,
            error=str(error) if error else None,
            was_connected=was_connected,
            attempt=self._reconnection.attempt_count,
        )

        self._notify(self._dispatcher.notify_disconnect)
        if self._state is not StreamState.RECONNECT_PENDING:
            return  # a listener called disconnect() or connect()
        self._check_full_refresh()
        self._schedule_reconnect()

    # =========================================================================
    # Internals
    # =========================================================================

    def _open_transport(self) -> None:
        self._state = StreamState.CONNECTING
        resume_from = None if self._refresh_due else self._reconnection.last_event_id

        logger.debug(
            "Opening stream",
            stream=self._name,
            resume_from=resume_from,
            attempt=self._reconnection.attempt_count,
        )
        try:
            handle = self._transport.open(self._url, resume_from, self)
        except Exception as e:
            failed = _FailedOpen()
            self._handle = failed
            self.handle_failure(failed, TransportFailureError(f"Transport open failed: {e!r}"))
            return
        self._handle = handle

    def _schedule_reconnect(self) -> None:
        if self._timer is not None or self._state is not StreamState.RECONNECT_PENDING:
            return

        delay = self._next_delay
        if delay is None:
            delay = calculate_backoff(self._reconnection.attempt_count, self._config)

        self._timer = self._scheduler.call_later(delay, self._on_reconnect_timer)
        self._reconnects_scheduled += 1
        self._last_scheduled_delay = delay

        logger.info(
            "Reconnect scheduled",
            stream=self._name,
            delay=round(delay, 3),
            attempt=self._reconnection.attempt_count + 1,
        )

    def _on_reconnect_timer(self) -> None:
        self._timer = None
        if self._stopped or self._state is not StreamState.RECONNECT_PENDING:
            return
        self._attempt_reconnect()

    def _attempt_reconnect(self) -> None:
        self._reconnection = update_reconnection_state(
            self._reconnection, StateUpdate.attempt(), now=self._clock()
        )
        self._next_delay = calculate_backoff(self._reconnection.attempt_count, self._config)

        self._check_full_refresh()
        if self._stopped or self._state is not StreamState.RECONNECT_PENDING:
            return
        self._open_transport()

    def _check_full_refresh(self) -> None:
        """Signal full-refresh listeners once per outage when it runs too long."""
        if self._refresh_due:
            return
        if not should_full_refresh(self._reconnection, self._config, now=self._clock()):
            return

        self._refresh_due = True
        self._full_refresh_signals += 1
        logger.warning(
            "Outage exceeded full refresh threshold",
            stream=self._name,
            outage_seconds=round(self._clock() - (self._reconnection.disconnected_at or 0), 3),
            threshold=self._config.full_refresh_threshold,
        )
        self._notify(self._dispatcher.notify_full_refresh)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _discard_transport(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            logger.warning("Error closing stream transport", stream=self._name, error=str(e))

    def _notify(self, notify: Callable[..., int], *args: Any) -> None:
        """Run a lifecycle notification; listener errors never break the state machine."""
        try:
            notify(*args)
        except Exception:
            logger.error(
                "Stream lifecycle listener raised",
                stream=self._name,
                channel=notify.__name__,
                exc_info=True,
            )

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """
        Get stream statistics for monitoring.

        Returns:
            Dictionary with state, reconnection and message metrics.
        """
        return {
            "stream": self._name,
            "state": self._state.value,
            "attempt_count": self._reconnection.attempt_count,
            "last_event_id": self._reconnection.last_event_id,
            "disconnected_at": self._reconnection.disconnected_at,
            "events_received": self._events_received,
            "reconnects_scheduled": self._reconnects_scheduled,
            "last_scheduled_delay": self._last_scheduled_delay,
            "full_refresh_signals": self._full_refresh_signals,
            "reconnect_pending": self._timer is not None,
            "malformed": self._drop_tracker.get_stats(),
        }


class _FailedOpen:
    """Stand-in handle for a transport whose open() raised."""

    def close(self) -> None:
        pass
