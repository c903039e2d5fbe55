"""
Event Value Objects for the stream client.

StreamEvent is the parsed form of one server-pushed message. Payload
semantics belong to the subscribers; this module only fixes the envelope:

    {"type": "work_changed", "timestamp": "2026-01-14T00:00:00Z", "data": {...}}

The envelope round-trips unchanged: the timestamp stays the string the
server sent and unknown top-level fields are kept.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field


class StreamEvent(BaseModel):
    """
    Immutable Value Object representing a stream event.

    Attributes:
        type: Tag identifying the event kind, also the dispatch topic.
        timestamp: When the event was produced, verbatim from the wire.
        data: Opaque payload. Kept as an open mapping so fields this client
            does not know about survive untouched.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str = Field(min_length=1)
    timestamp: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def parsed_timestamp(self) -> datetime | None:
        """The timestamp as a datetime, or None if it is not ISO-8601."""
        try:
            return datetime.fromisoformat(self.timestamp)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the wire envelope shape."""
        return self.model_dump(mode="json")


# Listener signatures
EventCallback = Callable[[StreamEvent], None]
ErrorCallback = Callable[[BaseException], None]
ConnectionCallback = Callable[[], None]
