"""
Centralized stream client exceptions.

Three failure classes with different propagation:
- InvalidParameterError: fatal configuration error, reported to the application.
- TransportFailureError: recoverable, converted into a reconnect.
- MalformedMessageError: recovered by dropping the single message.

Usage:
    from activity_stream.shared.utils.exceptions import InvalidParameterError

    raise InvalidParameterError("max_delay", config.max_delay, "must be positive")
"""

from typing import Any

from activity_stream.shared.config.logging import get_logger

logger = get_logger(__name__)


class StreamError(Exception):
    """
    Base exception with automatic logging.

    All stream client exceptions inherit from this class
    to ensure consistent logging.
    """

    def __init__(self, detail: str, log_level: str = "warning", **log_context: Any):
        self.detail = detail
        self.context = log_context

        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, error_class=type(self).__name__, **log_context)

        super().__init__(detail)


class InvalidParameterError(StreamError, ValueError):
    """
    Invalid reconnection parameter. Fatal, never retried.

    Logged once at ERROR on construction; callers reporting it do not log again.

    Usage:
        raise InvalidParameterError("attempt_count", -1, "cannot be negative")
    """

    def __init__(self, parameter: str, value: Any, reason: str, **log_context: Any):
        self.parameter = parameter
        self.value = value
        super().__init__(
            f"{parameter} {reason} (got {value!r})",
            log_level="error",
            parameter=parameter,
            value=value,
            **log_context,
        )


class TransportFailureError(StreamError):
    """
    Transport-level failure (refused connection, bad status, closed stream).

    Recoverable: the connection manager answers it with a scheduled reconnect.
    """

    def __init__(self, detail: str, status_code: int | None = None, **log_context: Any):
        self.status_code = status_code
        super().__init__(detail, log_level="debug", status_code=status_code, **log_context)


class MalformedMessageError(StreamError, ValueError):
    """
    Message could not be parsed into a StreamEvent. The message is dropped.
    """

    def __init__(self, reason: str, **log_context: Any):
        self.reason = reason
        super().__init__(f"Malformed stream message: {reason}", log_level="debug", **log_context)
