"""
Event components.

StreamEvent value object and the topic-keyed EventDispatcher.
"""

from activity_stream.components.events.types import (
    StreamEvent,
    EventCallback,
    ErrorCallback,
    ConnectionCallback,
)
from activity_stream.components.events.dispatcher import (
    EventDispatcher,
    Subscription,
    Channel,
)

__all__ = [
    "StreamEvent",
    "EventCallback",
    "ErrorCallback",
    "ConnectionCallback",
    "EventDispatcher",
    "Subscription",
    "Channel",
]
