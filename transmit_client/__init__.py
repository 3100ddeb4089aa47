"""Resilient client for Transmit server-sent event channels."""
from .client import Transmit
from .config import Settings, settings
from .control import ControlPlaneClient, ControlPlaneResult, XsrfCookieProvider, StaticHeadersProvider
from .hooks import Hook, HookEvent
from .models import ClientSession, ConnectionState, SubscriptionStatus, StreamFrame
from .stream import ConnectionManager, EventSource, HeartbeatMonitor, ReconnectState
from .subscriptions import Subscription, SubscriptionRegistry

__version__ = "0.1.0"

__all__ = [
    "Transmit",
    "Settings",
    "settings",
    "ControlPlaneClient",
    "ControlPlaneResult",
    "XsrfCookieProvider",
    "StaticHeadersProvider",
    "Hook",
    "HookEvent",
    "ClientSession",
    "ConnectionState",
    "SubscriptionStatus",
    "StreamFrame",
    "ConnectionManager",
    "EventSource",
    "HeartbeatMonitor",
    "ReconnectState",
    "Subscription",
    "SubscriptionRegistry",
]
