"""
Per-channel subscription handle.
"""
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

from transmit_client.models import SubscriptionStatus

if TYPE_CHECKING:
    from transmit_client.subscriptions.registry import SubscriptionRegistry

# Type for message handlers; coroutine functions are awaited during dispatch
MessageHandler = Callable[[Any], Union[None, Awaitable[None]]]


class Subscription:
    """
    Interest in one channel.

    Status only moves forward: pending until the server confirms the join,
    created afterwards, deleted once the server confirms the leave. A deleted
    subscription is never reused; asking the registry for the same channel
    again builds a new one.
    """

    def __init__(self, channel: str, registry: "SubscriptionRegistry"):
        self.channel = channel
        self._registry = registry
        self.status = SubscriptionStatus.PENDING
        # Dict used as an insertion-ordered set
        self._handlers: Dict[MessageHandler, None] = {}

    def __repr__(self) -> str:
        return (
            f"Subscription(channel={self.channel!r}, status={self.status.value}, "
            f"handlers={len(self._handlers)})"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == SubscriptionStatus.PENDING

    @property
    def is_created(self) -> bool:
        return self.status == SubscriptionStatus.CREATED

    @property
    def is_deleted(self) -> bool:
        return self.status == SubscriptionStatus.DELETED

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    @property
    def handlers(self) -> List[MessageHandler]:
        """Snapshot of the handlers in registration order."""
        return list(self._handlers)

    def add_handler(self, handler: MessageHandler) -> bool:
        if handler in self._handlers:
            return False
        self._handlers[handler] = None
        return True

    def discard_handler(self, handler: MessageHandler) -> bool:
        if handler not in self._handlers:
            return False
        del self._handlers[handler]
        return True

    def on_message(
        self,
        handler: MessageHandler,
        force_server_leave: Optional[bool] = None,
    ) -> Callable[[], bool]:
        """
        Register ``handler`` for messages on this channel.

        Returns a callable that removes the handler again, leaving the channel
        on the server when it was the last one and ``force_server_leave`` (or
        the configured default) asks for it.
        """
        self.add_handler(handler)

        def remove() -> bool:
            return self._registry.release(self.channel, handler, force_server_leave)

        return remove

    def on_message_once(
        self,
        handler: MessageHandler,
        force_server_leave: Optional[bool] = None,
    ) -> Callable[[], bool]:
        """Register a handler that removes itself after the first message."""
        remove: Callable[[], bool]

        def once(payload: Any):
            remove()
            return handler(payload)

        remove = self.on_message(once, force_server_leave)
        return remove

    async def create(self) -> bool:
        """Join the channel on the server. See ``SubscriptionRegistry.create``."""
        if self._registry.get(self.channel) is not self:
            # Discarded after a failed join, or deleted
            return self.is_created
        return await self._registry.create(self.channel)

    async def delete(self) -> bool:
        """Leave the channel on the server. See ``SubscriptionRegistry.delete``."""
        if self._registry.get(self.channel) is not self:
            return False
        return await self._registry.delete(self.channel)
