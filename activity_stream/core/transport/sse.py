"""
Server-Sent Events transport over httpx.

Behaves like a browser EventSource without its built-in retry loop:
reconnection belongs to the connection manager, so every failure (refused
connection, bad status, wrong content type, server closing the body) is
reported once to the sink and the connection ends.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx

from activity_stream.components.core.constants import (
    DEFAULT_SSE_EVENT,
    LAST_EVENT_ID_HEADER,
    SSE_CONTENT_TYPE,
)
from activity_stream.core.transport.base import TransportSink
from activity_stream.shared.config.logging import get_logger
from activity_stream.shared.config.settings import settings
from activity_stream.shared.utils.exceptions import TransportFailureError

logger = get_logger(__name__)


@dataclass(slots=True)
class SSEMessage:
    """One dispatched Server-Sent Events message."""

    data: str
    event: str = DEFAULT_SSE_EVENT
    event_id: str | None = None


@dataclass(slots=True)
class SSELineParser:
    """
    Incremental parser for the text/event-stream line format.

    Feed it lines without terminators; a blank line completes a message.
    The last event id persists across messages, as in EventSource.
    """

    _data: list[str] = field(default_factory=list)
    _event: str = ""
    last_event_id: str = ""

    def feed_line(self, line: str) -> SSEMessage | None:
        if not line:
            return self._flush()
        if line.startswith(":"):
            return None  # comment / keep-alive

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        # "retry" is ignored: backoff is owned by the reconnection policy
        return None

    def _flush(self) -> SSEMessage | None:
        data, event = self._data, self._event or DEFAULT_SSE_EVENT
        self._data, self._event = [], ""
        if not data:
            return None
        return SSEMessage("\n".join(data), event, self.last_event_id or None)


class SSEConnection:
    """
    Handle for one SSE request.

    close() marks the handle closed before cancelling the reader task, so no
    sink callback can fire after it returns.
    """

    def __init__(self, url: str, sink: TransportSink) -> None:
        self.url = url
        self._sink = sink
        self._closed = False
        self._task: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def task(self) -> asyncio.Task[None] | None:
        """Reader task, exposed for shutdown and tests."""
        return self._task

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _notify_open(self) -> None:
        if not self._closed:
            self._sink.handle_open(self)

    def _notify_message(self, message: SSEMessage) -> None:
        if not self._closed:
            self._sink.handle_message(self, message.data, message.event_id)

    def _notify_failure(self, error: BaseException) -> None:
        if self._closed:
            return
        # A failed connection is finished; later close() calls are no-ops
        self._closed = True
        self._sink.handle_failure(self, error)


class SSETransport:
    """
    Opens SSE connections with a shared or per-connection httpx.AsyncClient.

    Args:
        client: Client to reuse (owned by the caller). When omitted, each
            connection creates and closes its own client.
        headers: Extra request headers (e.g. authorization).
        timeout: httpx timeout; defaults to settings (no read timeout).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._client = client
        self._headers = dict(headers or {})
        self._timeout = timeout or httpx.Timeout(
            settings.stream_connect_timeout,
            connect=settings.stream_connect_timeout,
            read=settings.stream_read_timeout,
        )

    def open(
        self, url: str, last_event_id: str | None, sink: TransportSink
    ) -> SSEConnection:
        loop = asyncio.get_running_loop()
        connection = SSEConnection(url, sink)
        connection._task = loop.create_task(self._read(connection, last_event_id))
        return connection

    def _request_headers(self, last_event_id: str | None) -> dict[str, str]:
        headers = {
            "Accept": SSE_CONTENT_TYPE,
            "Cache-Control": "no-cache",
            **self._headers,
        }
        if last_event_id:
            headers[LAST_EVENT_ID_HEADER] = last_event_id
        return headers

    async def _read(self, connection: SSEConnection, last_event_id: str | None) -> None:
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            async with client.stream(
                "GET", connection.url, headers=self._request_headers(last_event_id)
            ) as response:
                _check_response(response)
                connection._notify_open()

                parser = SSELineParser()
                async for line in response.aiter_lines():
                    message = parser.feed_line(line)
                    if message is not None and message.event == DEFAULT_SSE_EVENT:
                        connection._notify_message(message)
                    if connection.closed:
                        return

            connection._notify_failure(TransportFailureError("Stream closed by server", url=connection.url))
        except asyncio.CancelledError:
            raise
        except TransportFailureError as e:
            connection._notify_failure(e)
        except httpx.HTTPError as e:
            connection._notify_failure(
                TransportFailureError(f"{type(e).__name__}: {e}", url=connection.url)
            )
        except Exception as e:
            # Anything else from the HTTP stack must still end in a reconnect
            logger.warning("Unexpected SSE transport error", url=connection.url, error=repr(e))
            connection._notify_failure(TransportFailureError(repr(e), url=connection.url))
        finally:
            if self._client is None:
                await client.aclose()


def _check_response(response: httpx.Response) -> None:
    """Reject responses a browser EventSource would fail on."""
    if response.status_code != 200:
        raise TransportFailureError(
            f"Unexpected status {response.status_code}",
            status_code=response.status_code,
            url=str(response.request.url),
        )
    content_type = response.headers.get("content-type", "")
    if content_type.split(";")[0].strip().lower() != SSE_CONTENT_TYPE:
        raise TransportFailureError(
            f"Unexpected content type {content_type!r}",
            status_code=response.status_code,
            url=str(response.request.url),
        )
