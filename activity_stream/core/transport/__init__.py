"""
Transports: the contract the connection manager consumes and the SSE adapter.
"""

from activity_stream.core.transport.base import (
    Transport,
    TransportHandle,
    TransportSink,
    Scheduler,
    TimerHandle,
)
from activity_stream.core.transport.sse import (
    SSETransport,
    SSEConnection,
    SSELineParser,
    SSEMessage,
)

__all__ = [
    "Transport",
    "TransportHandle",
    "TransportSink",
    "Scheduler",
    "TimerHandle",
    "SSETransport",
    "SSEConnection",
    "SSELineParser",
    "SSEMessage",
]
