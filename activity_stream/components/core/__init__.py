"""
Core components: constants shared across the stream client.
"""

from activity_stream.components.core.constants import (
    StreamConstants,
    WILDCARD_TOPIC,
    SSE_CONTENT_TYPE,
    LAST_EVENT_ID_HEADER,
    DEFAULT_SSE_EVENT,
)

__all__ = [
    "StreamConstants",
    "WILDCARD_TOPIC",
    "SSE_CONTENT_TYPE",
    "LAST_EVENT_ID_HEADER",
    "DEFAULT_SSE_EVENT",
]
