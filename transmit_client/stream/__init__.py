"""Stream package for the event stream connection and its health."""
from .connection import ConnectionManager, ReconnectState
from .event_source import EventSource, SSEDecoder, StreamError, Transport, TransportFactory
from .heartbeat import HeartbeatMonitor

__all__ = [
    "ConnectionManager",
    "ReconnectState",
    "EventSource",
    "SSEDecoder",
    "StreamError",
    "Transport",
    "TransportFactory",
    "HeartbeatMonitor",
]
