"""
Stream Client Constants.

Centralized constants with documentation explaining rationale for each value.
"""

from typing import Final

__all__ = [
    "StreamConstants",
    "WILDCARD_TOPIC",
    "SSE_CONTENT_TYPE",
    "LAST_EVENT_ID_HEADER",
    "DEFAULT_SSE_EVENT",
]


# Topic that receives every dispatched event
WILDCARD_TOPIC: Final[str] = "*"

# Server-Sent Events wire constants
SSE_CONTENT_TYPE: Final[str] = "text/event-stream"
LAST_EVENT_ID_HEADER: Final[str] = "Last-Event-ID"
DEFAULT_SSE_EVENT: Final[str] = "message"


class StreamConstants:
    """
    Stream client operational constants.

    These are fallbacks used when no ReconnectionConfig is supplied and
    settings are not consulted (e.g. in factory helpers). At runtime the
    connection manager reads `activity_stream.shared.config.settings`, which
    can override them via environment variables.
    """

    # ==========================================================================
    # Reconnection defaults (seconds)
    # ==========================================================================

    # First retry after one second: fast enough that a dropped proxy connection
    # is invisible to the operator, slow enough not to spin on a dead server.
    DEFAULT_INITIAL_DELAY: Final[float] = 1.0

    # Ceiling for the backoff curve. Outages can last arbitrarily long and the
    # client never gives up, so this is the steady-state polling interval.
    DEFAULT_MAX_DELAY: Final[float] = 30.0

    # After a minute offline the server's replay buffer can no longer be
    # trusted to hold every missed event, so a fresh snapshot is required.
    DEFAULT_FULL_REFRESH_THRESHOLD: Final[float] = 60.0

    # Doubling: 1, 2, 4, 8, 16, 30, 30, ...
    DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0

    # ==========================================================================
    # Malformed message monitoring
    # ==========================================================================

    # Upper bound on sliding-window entries per second of window
    DROP_WINDOW_MAX_ENTRIES_PER_SECOND: Final[int] = 1000
