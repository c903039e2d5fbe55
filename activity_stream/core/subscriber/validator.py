"""
Stream Message Validation.

Parses raw transport messages into StreamEvent objects.
A message that fails here is dropped by the connection manager; it must
never terminate the stream.
"""

from __future__ import annotations

from pydantic import ValidationError

from activity_stream.components.events.types import StreamEvent
from activity_stream.shared.utils.exceptions import MalformedMessageError


def parse_stream_message(raw: str | bytes, max_size: int | None = None) -> StreamEvent:
    """
    Parse one raw message into a StreamEvent.

    Args:
        raw: JSON-encoded envelope `{type, timestamp, data}`.
        max_size: Optional size limit in bytes; larger messages are rejected
            before parsing.

    Returns:
        The parsed event.

    Raises:
        MalformedMessageError: If the message is too large, is not JSON, is
            not an object, or does not match the envelope schema.
    """
    if max_size is not None:
        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        if size > max_size:
            raise MalformedMessageError("message too large", size=size, max_size=max_size)

    try:
        return StreamEvent.model_validate_json(raw)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
        raise MalformedMessageError(
            f"{location}: {first.get('msg', 'invalid envelope')}",
            error_count=len(errors),
        ) from e


def validate_stream_message(
    raw: str | bytes,
    max_size: int | None = None,
) -> tuple[bool, str | None, StreamEvent | None]:
    """
    Non-raising variant of parse_stream_message().

    Returns:
        Tuple of (is_valid, error_message, event).
        - is_valid: True if the message parsed
        - error_message: Reason if invalid, None if valid
        - event: StreamEvent if valid, None if invalid
    """
    try:
        return True, None, parse_stream_message(raw, max_size=max_size)
    except MalformedMessageError as e:
        return False, e.reason, None
