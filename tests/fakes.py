"""
Test doubles for the stream transport and the control plane.
"""
import asyncio
import inspect
import json
from collections import Counter
from typing import Any, Dict, List, Optional, Set

from transmit_client.config import Settings
from transmit_client.control.client import ControlPlaneResult
from transmit_client.hooks import Hook


class FakeTransport:
    """Stream transport driven by the test instead of a server."""

    def __init__(self, url, *, on_open, on_message, on_error):
        self.url = url
        self._on_open = on_open
        self._on_message = on_message
        self._on_error = on_error
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True

    def send_open(self):
        self._on_open()

    def send_error(self, error: Optional[BaseException] = None):
        self._on_error(error)

    async def send_raw(self, data: str):
        result = self._on_message(data)
        if inspect.isawaitable(result):
            await result

    async def send_message(self, channel: str, payload: Any):
        await self.send_raw(json.dumps({"channel": channel, "payload": payload}))


class TransportRecorder:
    """Transport factory that keeps every transport it built."""

    def __init__(self):
        self.instances: List[FakeTransport] = []

    def __call__(self, url, **callbacks) -> FakeTransport:
        transport = FakeTransport(url, **callbacks)
        self.instances.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.instances[-1]

    def __len__(self) -> int:
        return len(self.instances)


class FakeControlPlane:
    """Records join/leave calls; results and latency are configurable."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.joins: List[str] = []
        self.leaves: List[str] = []
        self.fail_joins: Set[str] = set()
        self.fail_leaves: Set[str] = set()
        self._in_flight: Counter = Counter()
        self.max_in_flight: Dict[str, int] = {}

    async def join(self, channel: str) -> ControlPlaneResult:
        self.joins.append(channel)
        return await self._exchange(channel, channel in self.fail_joins)

    async def leave(self, channel: str) -> ControlPlaneResult:
        self.leaves.append(channel)
        return await self._exchange(channel, channel in self.fail_leaves)

    async def _exchange(self, channel: str, fail: bool) -> ControlPlaneResult:
        self._in_flight[channel] += 1
        self.max_in_flight[channel] = max(self.max_in_flight.get(channel, 0), self._in_flight[channel])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
        finally:
            self._in_flight[channel] -= 1

        if fail:
            return ControlPlaneResult(channel=channel, ok=False, status_code=500, body="nope")
        return ControlPlaneResult(channel=channel, ok=True, status_code=204)


class HookRecorder:
    """Collects every emission of the events it is attached to."""

    def __init__(self, hooks: Hook, *events):
        self.calls: List[tuple] = []
        for event in events:
            hooks.register(event, self._recorder(event))

    def _recorder(self, event):
        def record(*args):
            self.calls.append((event, *args))
        return record

    def of(self, event) -> List[tuple]:
        return [call[1:] for call in self.calls if call[0] == event]


async def settle(delay: float = 0.01):
    """Let background tasks and short timers run."""
    await asyncio.sleep(delay)


def make_settings(**overrides) -> Settings:
    values = {
        "BASE_URL": "http://localhost",
        "MAX_RECONNECT_ATTEMPTS": 5,
        "RECONNECT_DELAY_INITIAL": 0.01,
        "RECONNECT_DELAY_MAX": 0.1,
        "HEARTBEAT_TIMEOUT": None,
        "UNSUBSCRIBE_ON_LAST_HANDLER": False,
    }
    values.update(overrides)
    return Settings(**values)
