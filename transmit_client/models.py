"""
Data models shared by the stream, the registry and the control plane.
Defines the wire format of stream frames and control-plane requests.
"""
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict


class ConnectionState(str, Enum):
    """States of the streaming connection."""
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


class SubscriptionStatus(str, Enum):
    """Lifecycle of a channel subscription."""
    PENDING = "pending"
    CREATED = "created"
    DELETED = "deleted"


# Type for the injected identifier provider
UidGenerator = Callable[[], str]


def default_uid_generator() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ClientSession:
    """Identifies this client instance to the server for its whole lifetime."""
    uid: str

    @classmethod
    def create(cls, uid_generator: Optional[UidGenerator] = None) -> "ClientSession":
        generator = uid_generator or default_uid_generator
        return cls(uid=generator())


# =============================================================================
# Wire Messages
# =============================================================================

class StreamFrame(BaseModel):
    """
    Message delivered on the event stream.

    Example:
    {
        "channel": "orders/42",
        "payload": {"status": "shipped"}
    }
    """
    model_config = ConfigDict(extra="ignore")

    channel: str
    payload: Any = None


class ChannelRequest(BaseModel):
    """
    Body of a subscribe or unsubscribe request.

    Example:
    {
        "uid": "5f0c...",
        "channel": "orders/42"
    }
    """
    uid: str
    channel: str
