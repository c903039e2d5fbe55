"""
Shared utilities.
"""

from activity_stream.shared.utils.exceptions import (
    StreamError,
    InvalidParameterError,
    TransportFailureError,
    MalformedMessageError,
)

__all__ = [
    "StreamError",
    "InvalidParameterError",
    "TransportFailureError",
    "MalformedMessageError",
]
