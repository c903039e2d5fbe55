"""
Inbound message handling: validation and malformed-message tracking.
"""

from activity_stream.core.subscriber.validator import (
    parse_stream_message,
    validate_stream_message,
)
from activity_stream.core.subscriber.drop_tracker import MalformedMessageTracker

__all__ = [
    "parse_stream_message",
    "validate_stream_message",
    "MalformedMessageTracker",
]
