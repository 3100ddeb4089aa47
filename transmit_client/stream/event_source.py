"""
Server-Sent Events transport over httpx.
Reads one long-lived GET response and reports open/message/error.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

import httpx

from transmit_client.utils.logging import get_logger

logger = get_logger("stream.event_source")

OpenCallback = Callable[[], None]
MessageCallback = Callable[[str], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Optional[BaseException]], None]


class Transport(Protocol):
    """What the connection manager needs from a stream transport."""

    def open(self) -> None: ...

    def close(self) -> None: ...


class TransportFactory(Protocol):
    def __call__(
        self,
        url: str,
        *,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> Transport: ...


class StreamError(Exception):
    """The event stream was refused or ended."""


class SSEDecoder:
    """
    Incremental decoder for the ``text/event-stream`` format.

    Feed it one line at a time (without the line terminator); it returns the
    data of a ``message`` event when a blank line completes one.
    """

    def __init__(self):
        self._data: List[str] = []
        self._event: Optional[str] = None
        self.last_event_id: Optional[str] = None
        self.retry: Optional[int] = None

    def decode(self, line: str) -> Optional[str]:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)
        # Unknown fields are ignored
        return None

    def _dispatch(self) -> Optional[str]:
        data, event = self._data, self._event
        self._data, self._event = [], None

        if not data:
            return None
        if event not in (None, "", "message"):
            logger.debug(f"Ignoring SSE event of type {event}")
            return None
        return "\n".join(data)


class EventSource:
    """
    Single-shot SSE connection.

    Unlike a browser EventSource it never reconnects by itself: any failure
    is reported once through ``on_error`` and the reconnect decision is left
    to the caller. ``close()`` silences every callback.
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient,
        on_open: OpenCallback,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = url
        self._client = client
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self._headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            **(headers or {}),
        }

        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.is_open = False
        self.messages_received = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self):
        """Start reading the stream in a background task."""
        if self._task is not None or self._closed:
            return
        self._task = asyncio.create_task(self._run())

    def close(self):
        """Stop reading. Safe to call from inside one of the callbacks."""
        if self._closed:
            return
        self._closed = True
        self.is_open = False

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self):
        try:
            await self._consume()
            raise StreamError("Event stream ended")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._closed:
                return
            logger.warning(f"Event stream error: {e}")
            self.is_open = False
            self._on_error(e)

    async def _consume(self):
        logger.info(f"Opening event stream {self.url}")

        # No read timeout: a quiet stream is the heartbeat monitor's concern
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)

        async with self._client.stream("GET", self.url, headers=self._headers, timeout=timeout) as response:
            if response.status_code != 200:
                raise StreamError(f"Stream request failed with status {response.status_code}")

            if self._closed:
                return
            self.is_open = True
            self._on_open()

            decoder = SSEDecoder()
            async for line in response.aiter_lines():
                if self._closed:
                    return

                data = decoder.decode(line.rstrip("\r"))
                if data is None:
                    continue

                self.messages_received += 1
                result: Any = self._on_message(data)
                if inspect.isawaitable(result):
                    await result
