"""
Subscription registry.
Tracks channel interest, serializes joins per channel and replays
created subscriptions after a reconnection.
"""
import asyncio
import inspect
from typing import Any, Callable, Coroutine, Dict, List, Optional, Protocol, Set

from transmit_client.control.client import ControlPlaneResult
from transmit_client.hooks import Hook, HookEvent
from transmit_client.models import SubscriptionStatus
from transmit_client.subscriptions.subscription import MessageHandler, Subscription
from transmit_client.utils.logging import get_logger

logger = get_logger("subscriptions.registry")


class ControlPlane(Protocol):
    """The two control-plane calls the registry relies on."""

    async def join(self, channel: str) -> ControlPlaneResult: ...

    async def leave(self, channel: str) -> ControlPlaneResult: ...


class SubscriptionRegistry:
    """
    Owns the channel -> Subscription mapping.

    Features:
    - At most one join request in flight per channel
    - Joins requested while disconnected wait in a queue drained on connect
    - Per-handler failure isolation during dispatch
    - Replay of created subscriptions after a reconnection
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        *,
        is_connected: Callable[[], bool],
        hooks: Optional[Hook] = None,
        unsubscribe_on_last_handler: bool = False,
    ):
        self._control = control_plane
        self._is_connected = is_connected
        self._hooks = hooks or Hook()
        self.unsubscribe_on_last_handler = unsubscribe_on_last_handler

        # Channel -> Subscription
        self._subscriptions: Dict[str, Subscription] = {}

        # Channel -> lock held for the duration of a join or leave
        self._join_locks: Dict[str, asyncio.Lock] = {}

        # Joins waiting for the connection; resolved True on connect, False on close
        self._awaiting_connection: List[asyncio.Future] = []

        # Background replays and leaves
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        # Stats
        self._joins_sent = 0
        self._leaves_sent = 0
        self._messages_dispatched = 0
        self._handler_errors = 0

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, channel: str) -> bool:
        return channel in self._subscriptions

    @property
    def channels(self) -> List[str]:
        return list(self._subscriptions)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get(self, channel: str) -> Optional[Subscription]:
        return self._subscriptions.get(channel)

    def obtain(self, channel: str) -> Subscription:
        """
        Return the subscription for ``channel``, registering a pending one if needed.

        Once the registry is closed, unknown channels get a detached handle
        that is never stored and never joins.
        """
        subscription = self._subscriptions.get(channel)
        if subscription is None and self._closed:
            logger.debug(f"Registry closed, handing out detached subscription for {channel}")
            return Subscription(channel, self)
        if subscription is None:
            subscription = Subscription(channel, self)
            self._subscriptions[channel] = subscription
            logger.debug(f"Registered pending subscription for {channel}")
        return subscription

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    async def subscribe(self, channel: str, handler: Optional[MessageHandler] = None) -> Subscription:
        """
        Attach ``handler`` to ``channel`` and make sure the channel is joined.

        Concurrent calls for the same channel share one join request; every
        handler lands on the same Subscription object.
        """
        subscription = self.obtain(channel)
        if handler is not None:
            subscription.add_handler(handler)
        await self.create(channel)
        return subscription

    async def create(self, channel: str) -> bool:
        """
        Join ``channel`` on the server.

        Returns True once the subscription is created. A call made while a
        join for the same channel is in flight waits for that join instead of
        sending another one. A call made while disconnected waits until the
        connection opens, or returns False if the registry is closed first.
        """
        subscription = self._subscriptions.get(channel)
        if subscription is None or self._closed:
            return False
        if subscription.is_created:
            return True

        lock = self._lock_for(channel)
        try:
            if lock.locked():
                logger.debug(f"Join for {channel} already in flight, waiting for it")
                async with lock:
                    return subscription.is_created

            async with lock:
                return await self._join(subscription)
        finally:
            self._prune_lock(channel)

    async def _join(self, subscription: Subscription) -> bool:
        channel = subscription.channel
        if not await self._wait_for_connection(channel):
            logger.debug(f"Abandoning join for {channel}, registry closed")
            return False

        if subscription.is_created:
            return True

        result = await self._call(self._control.join, channel)
        self._joins_sent += 1

        if self._closed:
            # Answer arrived after shutdown; leave the subscription untouched
            logger.debug(f"Ignoring join result for {channel}, registry closed")
            return False

        if not result.ok:
            logger.warning(f"Subscribe to {channel} failed: {result.describe()}", extra={"channel": channel})
            self._discard(subscription)
            self._hooks.emit(HookEvent.SUBSCRIBE_FAILED, channel, result)
            return False

        subscription.status = SubscriptionStatus.CREATED
        logger.info(f"Subscribed to {channel}", extra={"channel": channel})
        self._hooks.emit(HookEvent.SUBSCRIPTION, channel)
        return True

    async def _wait_for_connection(self, channel: str) -> bool:
        if self._closed:
            return False
        if self._is_connected():
            return True

        waiter = asyncio.get_running_loop().create_future()
        self._awaiting_connection.append(waiter)
        logger.debug(f"Join for {channel} queued until connected")
        return await waiter

    def drain_pending(self) -> int:
        """Release every join queued while disconnected. Called on connect."""
        waiters, self._awaiting_connection = self._awaiting_connection, []
        released = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(True)
                released += 1
        if released:
            logger.debug(f"Released {released} queued join(s)")
        return released

    # ------------------------------------------------------------------
    # Leave
    # ------------------------------------------------------------------

    async def unsubscribe(
        self,
        channel: str,
        handler: MessageHandler,
        force_server_leave: Optional[bool] = None,
    ) -> bool:
        """
        Detach ``handler`` from ``channel``.

        When no handler remains and a server leave is requested, the leave is
        awaited. Returns True if the handler was registered.
        """
        subscription = self._subscriptions.get(channel)
        if subscription is None:
            return False

        removed = self._remove_handler(subscription, handler)
        if removed and self._should_leave(subscription, force_server_leave):
            await self._leave(subscription, notify=False)
        return removed

    def release(
        self,
        channel: str,
        handler: MessageHandler,
        force_server_leave: Optional[bool] = None,
    ) -> bool:
        """Like ``unsubscribe`` but runs a needed server leave in the background."""
        subscription = self._subscriptions.get(channel)
        if subscription is None:
            return False

        removed = self._remove_handler(subscription, handler)
        if removed and self._should_leave(subscription, force_server_leave):
            self._spawn(self._leave(subscription, notify=False))
        return removed

    async def delete(self, channel: str) -> bool:
        """Leave ``channel`` on the server. Only created subscriptions are left."""
        subscription = self._subscriptions.get(channel)
        if subscription is None or not subscription.is_created:
            return False
        return await self._leave(subscription, notify=True)

    async def _leave(self, subscription: Subscription, notify: bool) -> bool:
        channel = subscription.channel

        try:
            async with self._lock_for(channel):
                if self._subscriptions.get(channel) is not subscription or not subscription.is_created:
                    return False

                result = await self._call(self._control.leave, channel)
                self._leaves_sent += 1

                if self._closed:
                    logger.debug(f"Ignoring leave result for {channel}, registry closed")
                    return False

                if not result.ok:
                    # Still joined on the server; the caller may retry
                    logger.warning(
                        f"Unsubscribe from {channel} failed: {result.describe()}",
                        extra={"channel": channel},
                    )
                    self._hooks.emit(HookEvent.UNSUBSCRIBE_FAILED, channel, result)
                    return False

                subscription.status = SubscriptionStatus.DELETED
                self._discard(subscription)
                logger.info(f"Unsubscribed from {channel}", extra={"channel": channel})
                if notify:
                    self._hooks.emit(HookEvent.UNSUBSCRIPTION, channel)
                return True
        finally:
            self._prune_lock(channel)

    def _remove_handler(self, subscription: Subscription, handler: MessageHandler) -> bool:
        if not subscription.discard_handler(handler):
            return False
        self._hooks.emit(HookEvent.UNSUBSCRIPTION, subscription.channel)
        return True

    def _should_leave(self, subscription: Subscription, force_server_leave: Optional[bool]) -> bool:
        if force_server_leave is None:
            force_server_leave = self.unsubscribe_on_last_handler
        # A pending join is never cancelled by losing its handlers
        return force_server_leave and subscription.handler_count == 0 and subscription.is_created

    # ------------------------------------------------------------------
    # Dispatch and replay
    # ------------------------------------------------------------------

    async def dispatch(self, channel: str, payload: Any):
        """Run every handler of ``channel`` in registration order."""
        subscription = self._subscriptions.get(channel)
        if subscription is None:
            return

        self._messages_dispatched += 1
        for handler in subscription.handlers:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._handler_errors += 1
                logger.error(f"Handler error on {channel}: {e}", exc_info=True, extra={"channel": channel})

    def replay_created(self) -> int:
        """
        Re-join every created subscription on a fresh connection.
        Pending joins are already driven by their own ``create()`` call.
        """
        if self._closed:
            return 0

        created = [s for s in self._subscriptions.values() if s.is_created]
        if created:
            logger.info(f"Replaying {len(created)} subscription(s)")
        for subscription in created:
            self._spawn(self._rejoin(subscription))
        return len(created)

    async def _rejoin(self, subscription: Subscription):
        channel = subscription.channel

        try:
            async with self._lock_for(channel):
                if self._subscriptions.get(channel) is not subscription or not subscription.is_created:
                    return

                result = await self._call(self._control.join, channel)
                self._joins_sent += 1

                if self._closed:
                    return

                if not result.ok:
                    # Stays created so the next connection tries again
                    logger.warning(
                        f"Re-subscribe to {channel} failed: {result.describe()}",
                        extra={"channel": channel},
                    )
                    self._hooks.emit(HookEvent.SUBSCRIBE_FAILED, channel, result)
                else:
                    logger.debug(f"Re-subscribed to {channel}")
        finally:
            self._prune_lock(channel)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self):
        """Abandon queued joins and stop background work."""
        self._closed = True

        waiters, self._awaiting_connection = self._awaiting_connection, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(False)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        for channel in list(self._join_locks):
            self._prune_lock(channel)

        logger.debug("Subscription registry closed")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_for(self, channel: str) -> asyncio.Lock:
        lock = self._join_locks.get(channel)
        if lock is None:
            lock = self._join_locks[channel] = asyncio.Lock()
        return lock

    def _prune_lock(self, channel: str):
        # Locks only outlive their channel while someone still holds them
        lock = self._join_locks.get(channel)
        if lock is None or lock.locked():
            return
        if self._closed or channel not in self._subscriptions:
            del self._join_locks[channel]

    def _discard(self, subscription: Subscription):
        if self._subscriptions.get(subscription.channel) is subscription:
            del self._subscriptions[subscription.channel]

    async def _call(
        self,
        operation: Callable[[str], Coroutine[Any, Any, ControlPlaneResult]],
        channel: str,
    ) -> ControlPlaneResult:
        try:
            return await operation(channel)
        except Exception as e:
            return ControlPlaneResult.from_error(channel, e)

    def _spawn(self, coro: Coroutine[Any, Any, Any]):
        if self._closed:
            coro.close()
            return
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        by_status = {status.value: 0 for status in SubscriptionStatus}
        for subscription in self._subscriptions.values():
            by_status[subscription.status.value] += 1

        return {
            "channels": len(self._subscriptions),
            "by_status": by_status,
            "queued_joins": sum(1 for w in self._awaiting_connection if not w.done()),
            "background_tasks": len(self._tasks),
            "join_locks": len(self._join_locks),
            "joins_sent": self._joins_sent,
            "leaves_sent": self._leaves_sent,
            "messages_dispatched": self._messages_dispatched,
            "handler_errors": self._handler_errors,
        }
