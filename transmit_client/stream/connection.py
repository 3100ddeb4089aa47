"""
Streaming connection manager with automatic reconnection and heartbeat.
Owns the single event stream of a client and its state machine.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from transmit_client.config import Settings, settings as default_settings
from transmit_client.hooks import Hook, HookEvent
from transmit_client.models import ClientSession, ConnectionState, StreamFrame
from transmit_client.stream.event_source import Transport, TransportFactory
from transmit_client.stream.heartbeat import HeartbeatMonitor
from transmit_client.subscriptions.registry import SubscriptionRegistry
from transmit_client.utils.logging import bind_logger, get_logger

logger = get_logger("stream.connection")

EVENTS_PATH = "/__transmit/events"

StatusCallback = Callable[[ConnectionState], Any]


@dataclass
class ReconnectState:
    """Attempt counter and backoff policy between reconnect attempts."""
    max_attempts: Optional[int] = 5
    delay_initial: float = 1.0
    delay_max: float = 30.0
    multiplier: float = 1.0
    attempt_count: int = 0

    @classmethod
    def from_settings(cls, config: Settings) -> "ReconnectState":
        return cls(
            max_attempts=config.MAX_RECONNECT_ATTEMPTS,
            delay_initial=config.RECONNECT_DELAY_INITIAL,
            delay_max=config.RECONNECT_DELAY_MAX,
            multiplier=config.RECONNECT_DELAY_MULTIPLIER,
        )

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempt_count >= self.max_attempts

    @property
    def backoff_interval(self) -> float:
        """Delay before the current attempt."""
        exponent = max(self.attempt_count - 1, 0)
        return min(self.delay_initial * (self.multiplier ** exponent), self.delay_max)

    def next_attempt(self) -> int:
        self.attempt_count += 1
        return self.attempt_count

    def reset(self):
        self.attempt_count = 0


class ConnectionManager:
    """
    Keeps one logical event stream alive.

    - Initializing -> Connecting -> Connected on transport open
    - Connected -> Disconnected -> Reconnecting on transport error or
      heartbeat timeout, then Connecting again once the backoff elapses
    - Gives up after ``max_attempts`` and fires ``RECONNECT_FAILED`` once
    - Re-announces created subscriptions on every successful open

    ``close()`` is the only terminal exit; nothing fires afterwards.
    """

    def __init__(
        self,
        session: ClientSession,
        registry: SubscriptionRegistry,
        transport_factory: TransportFactory,
        *,
        hooks: Optional[Hook] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.session = session
        self._registry = registry
        self._transport_factory = transport_factory
        self._hooks = hooks or Hook()
        self._status_hooks = Hook()
        self._log = bind_logger(logger, uid=session.uid)

        # Connection state
        self._state = ConnectionState.INITIALIZING
        self._transport: Optional[Transport] = None
        self._closed = False
        self._abandoned = False

        # Reconnection state
        self.reconnect = ReconnectState.from_settings(self.config)
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None

        # Heartbeat
        self.heartbeat = HeartbeatMonitor(self.config.HEARTBEAT_TIMEOUT, self._on_heartbeat_timeout)
        self._heartbeat_channel = self.config.HEARTBEAT_CHANNEL

        # Stats
        self._frames_received = 0
        self._malformed_frames = 0
        self._connections_opened = 0
        self._last_frame_time = 0.0

    @property
    def url(self) -> str:
        """Stream endpoint for this session."""
        query = urlencode({"uid": self.session.uid})
        return f"{self.config.BASE_URL}{EVENTS_PATH}?{query}"

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def on(self, state: ConnectionState, callback: StatusCallback):
        """Observe transitions into ``state``."""
        self._status_hooks.register(ConnectionState(state), callback)

    def connect(self):
        """
        Open the event stream unless it is already open or opening.
        Completion is reported through the state machine, never returned.
        """
        if self._closed:
            self._log.debug("connect() ignored, client is closed")
            return

        if self._transport is not None and self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ):
            return

        if self._abandoned:
            self._log.info("Restarting connection after reconnection was abandoned")
            self._abandoned = False
            self.reconnect.reset()

        self._cancel_reconnect_timer()
        self._dispose_transport()
        self._change_state(ConnectionState.CONNECTING)

        self._log.info(f"Connecting to {self.url}")

        transport: Optional[Transport] = None

        def on_open():
            if transport is not None and transport is self._transport:
                self._on_open()

        def on_message(data: str):
            if transport is not None and transport is self._transport:
                return self._on_frame(data)
            return None

        def on_error(error: Optional[BaseException] = None):
            if transport is not None and transport is self._transport:
                self._on_error(error)

        transport = self._transport_factory(
            self.url,
            on_open=on_open,
            on_message=on_message,
            on_error=on_error,
        )
        self._transport = transport
        transport.open()

    def close(self):
        """Stop every timer and the transport. No transition happens afterwards."""
        if self._closed:
            return
        self._closed = True
        self._cancel_reconnect_timer()
        self.heartbeat.stop()
        self._dispose_transport()
        self._log.info("Connection closed")

    # ------------------------------------------------------------------
    # Transport reactions
    # ------------------------------------------------------------------

    def _on_open(self):
        if self._closed:
            return

        self._change_state(ConnectionState.CONNECTED)
        self.reconnect.reset()
        self._cancel_reconnect_timer()
        self._connections_opened += 1
        self.heartbeat.start()
        self._log.info("Connected to event stream")

        # The server forgets channel joins across connections
        self._registry.replay_created()
        self._registry.drain_pending()

    async def _on_frame(self, data: str):
        self._frames_received += 1
        self._last_frame_time = time.time()

        try:
            frame = StreamFrame.model_validate_json(data)
        except ValidationError as e:
            self._malformed_frames += 1
            self._log.warning(f"Dropping malformed frame {data[:200]!r}: {e.error_count()} error(s)")
            return

        if frame.channel == self._heartbeat_channel:
            self.heartbeat.reset()
            return

        await self._registry.dispatch(frame.channel, frame.payload)

    def _on_error(self, error: Optional[BaseException] = None):
        if self._closed or self._abandoned:
            return

        if error is not None:
            self._log.warning(f"Event stream failed: {error}")

        self.heartbeat.stop()
        self._dispose_transport()

        if self._state != ConnectionState.RECONNECTING:
            self._change_state(ConnectionState.DISCONNECTED)
        self._change_state(ConnectionState.RECONNECTING)

        if self.reconnect.exhausted:
            self._abandoned = True
            self._cancel_reconnect_timer()
            self._log.error(f"Giving up after {self.reconnect.attempt_count} reconnect attempts")
            self._hooks.emit(HookEvent.RECONNECT_FAILED)
            return

        attempt = self.reconnect.next_attempt()
        delay = self.reconnect.backoff_interval

        self._cancel_reconnect_timer()
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(delay, self._reconnect_now)

        self._log.info(f"Reconnecting in {delay:.2f}s (attempt {attempt})", extra={"attempt": attempt})
        self._hooks.emit(HookEvent.RECONNECT_ATTEMPT, attempt)

    def _on_heartbeat_timeout(self):
        if self._closed:
            return
        self._dispose_transport()
        self._on_error()

    def _reconnect_now(self):
        self._reconnect_timer = None
        self.connect()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _change_state(self, state: ConnectionState):
        if self._state != state:
            self._log.debug(f"Connection state {self._state.value} -> {state.value}", extra={"state": state.value})
        self._state = state
        self._status_hooks.emit(state, state)

    def _cancel_reconnect_timer(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _dispose_transport(self):
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                transport.close()
            except Exception as e:
                self._log.warning(f"Error closing transport: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        last_heartbeat = self.heartbeat.last_heartbeat
        return {
            "state": self._state.value,
            "closed": self._closed,
            "url": self.url,
            "reconnect_attempts": self.reconnect.attempt_count,
            "max_reconnect_attempts": self.reconnect.max_attempts,
            "connections_opened": self._connections_opened,
            "frames_received": self._frames_received,
            "malformed_frames": self._malformed_frames,
            "last_frame_ago": time.time() - self._last_frame_time if self._last_frame_time else None,
            "last_heartbeat_ago": time.time() - last_heartbeat if last_heartbeat else None,
        }
