"""
Tests for the SSE decoder and the httpx event source.
"""
import asyncio

import httpx
import pytest

from transmit_client.stream.event_source import EventSource, SSEDecoder, StreamError


def decode_all(lines):
    decoder = SSEDecoder()
    events = [decoder.decode(line) for line in lines]
    return [event for event in events if event is not None], decoder


class TestSSEDecoder:
    """Tests for text/event-stream parsing."""

    def test_single_event(self):
        events, _ = decode_all(['data: {"channel": "a"}', ""])
        assert events == ['{"channel": "a"}']

    def test_multiline_data_joined(self):
        events, _ = decode_all(["data: first", "data: second", ""])
        assert events == ["first\nsecond"]

    def test_no_space_after_colon(self):
        events, _ = decode_all(["data:value", ""])
        assert events == ["value"]

    def test_comments_ignored(self):
        events, _ = decode_all([": keep-alive", "", "data: x", ""])
        assert events == ["x"]

    def test_blank_line_without_data(self):
        events, _ = decode_all(["", "", "event: message", ""])
        assert events == []

    def test_named_events_skipped(self):
        events, _ = decode_all(["event: custom", "data: skipped", "", "data: kept", ""])
        assert events == ["kept"]

    def test_explicit_message_event(self):
        events, _ = decode_all(["event: message", "data: kept", ""])
        assert events == ["kept"]

    def test_id_and_retry_tracked(self):
        _, decoder = decode_all(["id: 42", "retry: 3000", "retry: soon", "data: x", ""])
        assert decoder.last_event_id == "42"
        assert decoder.retry == 3000

    def test_incomplete_event_not_emitted(self):
        events, _ = decode_all(["data: partial"])
        assert events == []


def build_source(handler, **callbacks):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    events = []
    source = EventSource(
        "http://localhost/__transmit/events?uid=1",
        client=client,
        on_open=callbacks.get("on_open", lambda: events.append(("open",))),
        on_message=callbacks.get("on_message", lambda data: events.append(("message", data))),
        on_error=callbacks.get("on_error", lambda error: events.append(("error", error))),
    )
    return source, events


def stream_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"Content-Type": "text/event-stream"},
        content=body.encode(),
    )


class TestEventSource:
    """Tests for the single-shot stream connection."""

    async def test_open_messages_then_error_on_end(self):
        requests = []

        def handler(request):
            requests.append(request)
            return stream_response('data: {"channel":"a","payload":1}\n\n: ping\n\ndata: two\r\n\r\n')

        source, events = build_source(handler)
        source.open()
        await source._task

        assert events[0] == ("open",)
        assert events[1:3] == [("message", '{"channel":"a","payload":1}'), ("message", "two")]
        assert events[3][0] == "error"
        assert isinstance(events[3][1], StreamError)
        assert source.messages_received == 2
        assert not source.is_open

        request = requests[0]
        assert request.method == "GET"
        assert request.url.params["uid"] == "1"
        assert request.headers["Accept"] == "text/event-stream"

    @pytest.mark.parametrize("status_code", [401, 404, 500])
    async def test_non_200_reports_error(self, status_code):
        source, events = build_source(lambda request: stream_response("", status_code))

        source.open()
        await source._task

        assert len(events) == 1
        assert events[0][0] == "error"
        assert isinstance(events[0][1], StreamError)

    async def test_connect_error_reported(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        source, events = build_source(handler)
        source.open()
        await source._task

        assert len(events) == 1
        assert isinstance(events[0][1], httpx.ConnectError)

    async def test_async_message_callback_awaited(self):
        received = []

        async def on_message(data):
            await asyncio.sleep(0)
            received.append(data)

        source, _ = build_source(lambda request: stream_response("data: a\n\ndata: b\n\n"), on_message=on_message)
        source.open()
        await source._task

        assert received == ["a", "b"]

    async def test_close_from_callback_silences_stream(self):
        received = []
        errors = []

        def on_message(data):
            received.append(data)
            source.close()

        source, _ = build_source(
            lambda request: stream_response("data: a\n\ndata: b\n\n"),
            on_message=on_message,
            on_error=errors.append,
        )
        source.open()
        await source._task

        assert received == ["a"]
        assert errors == []
        assert source.closed

    async def test_close_before_open_is_noop(self):
        requests = []
        source, events = build_source(lambda request: requests.append(request) or stream_response(""))

        source.close()
        source.open()
        await asyncio.sleep(0.01)

        assert requests == []
        assert events == []
        assert source._task is None

    async def test_open_twice_starts_one_task(self):
        source, _ = build_source(lambda request: stream_response(""))

        source.open()
        task = source._task
        source.open()

        assert source._task is task
        await task
