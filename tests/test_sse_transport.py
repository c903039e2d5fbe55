"""
Tests for the Server-Sent Events transport.

Tests verify:
- Line format parsing (data, id, event, comments, multi-line data)
- Request headers, including Last-Event-ID resumption
- Bad status / content type / network errors reported as failures
- close() silences the connection immediately
- End-to-end reconnection through StreamConnectionManager
"""

import asyncio
import json

import httpx
import pytest

from activity_stream.components.resilience.reconnection import ReconnectionConfig
from activity_stream.connection_manager import StreamConnectionManager, StreamState
from activity_stream.core.transport.sse import SSELineParser, SSETransport
from activity_stream.shared.utils.exceptions import TransportFailureError

from tests.conftest import STREAM_URL, make_event


def _sse_body(*blocks: str) -> bytes:
    return "".join(block + "\n\n" for block in blocks).encode()


def _stream_response(body: bytes, status: int = 200, content_type: str = "text/event-stream") -> httpx.Response:
    return httpx.Response(status, headers={"content-type": content_type}, content=body)


class RecordingSink:
    """Collects transport callbacks."""

    def __init__(self):
        self.calls: list[tuple] = []

    def handle_open(self, handle):
        self.calls.append(("open",))

    def handle_message(self, handle, raw, event_id=None):
        self.calls.append(("message", raw, event_id))

    def handle_failure(self, handle, error=None):
        self.calls.append(("failure", error))

    @property
    def kinds(self) -> list[str]:
        return [call[0] for call in self.calls]


class TestSSELineParser:
    """Tests for the event-stream line parser."""

    def _feed(self, parser: SSELineParser, text: str):
        messages = []
        for line in text.split("\n"):
            message = parser.feed_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def test_single_message(self):
        messages = self._feed(SSELineParser(), 'data: {"a": 1}\n\n')

        assert len(messages) == 1
        assert messages[0].data == '{"a": 1}'
        assert messages[0].event == "message"
        assert messages[0].event_id is None

    def test_multi_line_data_joined(self):
        messages = self._feed(SSELineParser(), "data: first\ndata: second\n\n")

        assert messages[0].data == "first\nsecond"

    def test_id_persists_across_messages(self):
        messages = self._feed(SSELineParser(), "id: e1\ndata: a\n\ndata: b\n\n")

        assert [m.event_id for m in messages] == ["e1", "e1"]

    def test_comments_and_retry_ignored(self):
        messages = self._feed(SSELineParser(), ": keep-alive\nretry: 10000\n\ndata: x\n\n")

        assert [m.data for m in messages] == ["x"]

    def test_named_event(self):
        messages = self._feed(SSELineParser(), "event: heartbeat\ndata: x\n\n")

        assert messages[0].event == "heartbeat"

    def test_blank_line_without_data_dispatches_nothing(self):
        assert self._feed(SSELineParser(), "id: e1\n\n") == []

    def test_value_without_space(self):
        messages = self._feed(SSELineParser(), "data:tight\n\n")

        assert messages[0].data == "tight"


class TestSSETransport:
    """Tests for SSETransport against httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_delivers_messages_then_reports_close(self):
        requests = []
        body = _sse_body(
            "id: e1\ndata: " + json.dumps(make_event("work_changed")),
            "event: heartbeat\ndata: ignored",
            "id: e2\ndata: " + json.dumps(make_event("agent_status")),
        )

        def handler(request):
            requests.append(request)
            return _stream_response(body)

        sink = RecordingSink()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            connection = SSETransport(client=client).open(STREAM_URL, "e0", sink)
            await connection.task

        assert sink.kinds == ["open", "message", "message", "failure"]
        assert sink.calls[1][2] == "e1"
        assert json.loads(sink.calls[2][1])["type"] == "agent_status"
        assert isinstance(sink.calls[3][1], TransportFailureError)

        headers = requests[0].headers
        assert headers["accept"] == "text/event-stream"
        assert headers["cache-control"] == "no-cache"
        assert headers["last-event-id"] == "e0"

    @pytest.mark.asyncio
    async def test_no_resume_header_without_id(self):
        requests = []

        def handler(request):
            requests.append(request)
            return _stream_response(b"")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            connection = SSETransport(client=client).open(STREAM_URL, None, RecordingSink())
            await connection.task

        assert "last-event-id" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_bad_status_is_failure_without_open(self):
        sink = RecordingSink()

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: _stream_response(b"", status=503))
        ) as client:
            connection = SSETransport(client=client).open(STREAM_URL, None, sink)
            await connection.task

        assert sink.kinds == ["failure"]
        assert sink.calls[0][1].status_code == 503

    @pytest.mark.asyncio
    async def test_wrong_content_type_is_failure(self):
        sink = RecordingSink()

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: _stream_response(b"<html>", content_type="text/html")
            )
        ) as client:
            connection = SSETransport(client=client).open(STREAM_URL, None, sink)
            await connection.task

        assert sink.kinds == ["failure"]

    @pytest.mark.asyncio
    async def test_network_error_is_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        sink = RecordingSink()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            connection = SSETransport(client=client).open(STREAM_URL, None, sink)
            await connection.task

        assert sink.kinds == ["failure"]
        assert "ConnectError" in str(sink.calls[0][1])

    @pytest.mark.asyncio
    async def test_close_before_start_silences_connection(self):
        sink = RecordingSink()

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: _stream_response(_sse_body("data: x")))
        ) as client:
            connection = SSETransport(client=client).open(STREAM_URL, None, sink)
            connection.close()
            await asyncio.gather(connection.task, return_exceptions=True)

        assert sink.calls == []
        assert connection.closed is True


class TestManagerOverSSE:
    """End-to-end: manager + SSE transport on a real event loop."""

    @pytest.mark.asyncio
    async def test_reconnects_and_resumes(self):
        requests = []
        resumed = asyncio.Event()
        body = _sse_body("id: e1\ndata: " + json.dumps(make_event("work_changed", id="w1")))

        def handler(request):
            requests.append(request)
            if len(requests) >= 3:
                resumed.set()
            if len(requests) == 1:
                return _stream_response(b"", status=503)
            return _stream_response(body)

        config = ReconnectionConfig(initial_delay=0.01, max_delay=0.05, full_refresh_threshold=60.0)
        received = []

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            manager = StreamConnectionManager(
                STREAM_URL, config, transport=SSETransport(client=client)
            )
            manager.subscribe("work_changed", received.append)
            connects = []
            manager.on_connect(lambda: connects.append(True))

            manager.connect()
            await asyncio.wait_for(resumed.wait(), timeout=5.0)
            manager.disconnect()
            await asyncio.sleep(0.1)

        assert manager.state is StreamState.CLOSED
        assert manager.has_pending_reconnect is False
        assert received[0].data == {"id": "w1"}
        assert len(connects) >= 1
        assert "last-event-id" not in requests[1].headers
        assert requests[2].headers["last-event-id"] == "e1"
