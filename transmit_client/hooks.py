"""
Lifecycle hooks.
A single dispatch table from event tag to an ordered set of handlers.
"""
from enum import Enum
from typing import Any, Callable, Dict, Hashable

from transmit_client.utils.logging import get_logger

logger = get_logger("hooks")

HookHandler = Callable[..., Any]


class HookEvent(str, Enum):
    """Lifecycle events a caller can observe."""
    BEFORE_SUBSCRIBE = "before_subscribe"
    BEFORE_UNSUBSCRIBE = "before_unsubscribe"
    RECONNECT_ATTEMPT = "reconnect_attempt"
    RECONNECT_FAILED = "reconnect_failed"
    SUBSCRIBE_FAILED = "subscribe_failed"
    SUBSCRIPTION = "subscription"
    UNSUBSCRIPTION = "unsubscription"
    UNSUBSCRIBE_FAILED = "unsubscribe_failed"


class Hook:
    """
    Registry of observers keyed by event tag.

    Handlers for one event run in registration order. A handler that raises
    is logged and skipped so the remaining handlers still run.
    """

    def __init__(self):
        # Event -> {handler: None}, a dict keeps insertion order
        self._handlers: Dict[Hashable, Dict[HookHandler, None]] = {}

    def register(self, event: Hashable, handler: HookHandler) -> "Hook":
        self._handlers.setdefault(event, {})[handler] = None
        return self

    def unregister(self, event: Hashable, handler: HookHandler) -> bool:
        handlers = self._handlers.get(event)
        if not handlers or handler not in handlers:
            return False
        del handlers[handler]
        if not handlers:
            del self._handlers[event]
        return True

    def has(self, event: Hashable) -> bool:
        return bool(self._handlers.get(event))

    def emit(self, event: Hashable, *args: Any) -> "Hook":
        """Call every handler registered for ``event`` with ``args``."""
        for handler in list(self._handlers.get(event, {})):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Hook handler error for {_event_name(event)}: {e}", exc_info=True)
        return self

    def clear(self):
        self._handlers.clear()


def _event_name(event: Hashable) -> str:
    return event.value if isinstance(event, Enum) else str(event)
