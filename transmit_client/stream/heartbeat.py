"""
Dead-connection detection.
A deadline timer rearmed on every heartbeat frame.
"""
import asyncio
import time
from typing import Callable, Optional

from transmit_client.utils.logging import get_logger

logger = get_logger("stream.heartbeat")


class HeartbeatMonitor:
    """
    Declares the stream dead when no heartbeat arrives within ``timeout``.

    Long-lived HTTP responses behind proxies can stall without any transport
    error; the server pings on a reserved channel and this timer catches the
    silence. A ``timeout`` of ``None`` disables the monitor.
    """

    def __init__(self, timeout: Optional[float], on_timeout: Callable[[], None]):
        self.timeout = timeout
        self._on_timeout = on_timeout
        self._timer: Optional[asyncio.TimerHandle] = None
        self.last_heartbeat: Optional[float] = None
        self.expirations = 0

    @property
    def enabled(self) -> bool:
        return self.timeout is not None

    @property
    def is_armed(self) -> bool:
        return self._timer is not None

    def start(self):
        """Arm the deadline for a freshly opened connection."""
        self.last_heartbeat = None
        self._arm()

    def reset(self):
        """Record a heartbeat and push the deadline back."""
        self.last_heartbeat = time.time()
        self._arm()

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self):
        self.stop()
        if not self.enabled:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout, self._expire)

    def _expire(self):
        self._timer = None
        self.expirations += 1
        logger.warning(f"No heartbeat within {self.timeout:.1f}s, treating connection as dead")
        self._on_timeout()
