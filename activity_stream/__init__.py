"""
Resilient client for server-pushed activity event streams.

Usage (inside a running asyncio loop, or pass `scheduler=`):
    from activity_stream import StreamConnectionManager

    async def main():
        manager = StreamConnectionManager("https://ops.example/api/gastown/feed/stream")
        manager.subscribe("*", print)
        manager.connect()
        ...
"""

from activity_stream.components.events import EventDispatcher, StreamEvent, Subscription
from activity_stream.components.resilience import (
    ReconnectionConfig,
    ReconnectionState,
    calculate_backoff,
    should_full_refresh,
    create_reconnection_state,
    update_reconnection_state,
    reset_reconnection_state,
)
from activity_stream.connection_manager import StreamConnectionManager, StreamState
from activity_stream.shared.utils.exceptions import (
    StreamError,
    InvalidParameterError,
    TransportFailureError,
    MalformedMessageError,
)

__version__ = "0.1.0"

__all__ = [
    "StreamConnectionManager",
    "StreamState",
    "EventDispatcher",
    "StreamEvent",
    "Subscription",
    "ReconnectionConfig",
    "ReconnectionState",
    "calculate_backoff",
    "should_full_refresh",
    "create_reconnection_state",
    "update_reconnection_state",
    "reset_reconnection_state",
    "StreamError",
    "InvalidParameterError",
    "TransportFailureError",
    "MalformedMessageError",
]
