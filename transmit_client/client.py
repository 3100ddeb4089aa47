"""
Transmit client.
Wires the event stream, the subscription registry and the control plane
behind one object.
"""
import functools
from typing import Any, Callable, Dict, Optional

import httpx

from transmit_client.config import Settings, settings as default_settings
from transmit_client.control.client import ControlPlaneClient
from transmit_client.control.credentials import CredentialProvider, XsrfCookieProvider
from transmit_client.hooks import Hook, HookEvent, HookHandler
from transmit_client.models import ClientSession, ConnectionState, UidGenerator
from transmit_client.stream.connection import ConnectionManager, StatusCallback
from transmit_client.stream.event_source import EventSource, TransportFactory
from transmit_client.subscriptions.registry import ControlPlane, SubscriptionRegistry
from transmit_client.subscriptions.subscription import MessageHandler, Subscription
from transmit_client.utils.logging import get_logger

logger = get_logger("client")

ControlPlaneFactory = Callable[[str, str], ControlPlane]


class Transmit:
    """
    Client for a Transmit server.

    Usage:
        async with Transmit("https://example.com") as transmit:
            subscription = transmit.subscription("orders/42")
            subscription.on_message(print)
            await subscription.create()

    Recoverable failures are reported through hooks (``register`` / the
    ``on_*`` keyword arguments) and status observers (``on``), never raised.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        uid_generator: Optional[UidGenerator] = None,
        transport_factory: Optional[TransportFactory] = None,
        control_plane_factory: Optional[ControlPlaneFactory] = None,
        credential_provider: Optional[CredentialProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        before_subscribe: Optional[Callable[[httpx.Request], Any]] = None,
        before_unsubscribe: Optional[Callable[[httpx.Request], Any]] = None,
        on_reconnect_attempt: Optional[Callable[[int], Any]] = None,
        on_reconnect_failed: Optional[Callable[[], Any]] = None,
        on_subscribe_failed: Optional[HookHandler] = None,
        on_subscription: Optional[Callable[[str], Any]] = None,
        on_unsubscription: Optional[Callable[[str], Any]] = None,
    ):
        config = settings or default_settings
        if base_url is not None:
            config = config.model_copy(update={"BASE_URL": base_url.strip().rstrip("/")})
        self.config = config

        self.session = ClientSession.create(uid_generator)
        self.hooks = Hook()

        for event, handler in (
            (HookEvent.BEFORE_SUBSCRIBE, before_subscribe),
            (HookEvent.BEFORE_UNSUBSCRIBE, before_unsubscribe),
            (HookEvent.RECONNECT_ATTEMPT, on_reconnect_attempt),
            (HookEvent.RECONNECT_FAILED, on_reconnect_failed),
            (HookEvent.SUBSCRIBE_FAILED, on_subscribe_failed),
            (HookEvent.SUBSCRIPTION, on_subscription),
            (HookEvent.UNSUBSCRIPTION, on_unsubscription),
        ):
            if handler is not None:
                self.hooks.register(event, handler)

        # Shared by the stream and the control plane so cookies flow both ways
        self._owns_http_client = http_client is None and (
            transport_factory is None or control_plane_factory is None
        )
        self._http_client = http_client
        if self._owns_http_client:
            self._http_client = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)

        if control_plane_factory is None:
            control_plane_factory = functools.partial(
                self._default_control_plane,
                credential_provider=credential_provider,
            )
        self.control_plane = control_plane_factory(config.BASE_URL, self.session.uid)

        if transport_factory is None:
            transport_factory = functools.partial(EventSource, client=self._http_client)

        self.registry = SubscriptionRegistry(
            self.control_plane,
            is_connected=lambda: self.connection.is_connected,
            hooks=self.hooks,
            unsubscribe_on_last_handler=config.UNSUBSCRIBE_ON_LAST_HANDLER,
        )
        self.connection = ConnectionManager(
            self.session,
            self.registry,
            transport_factory,
            hooks=self.hooks,
            config=config,
        )

    def _default_control_plane(
        self,
        base_url: str,
        uid: str,
        credential_provider: Optional[CredentialProvider] = None,
    ) -> ControlPlaneClient:
        if credential_provider is None:
            credential_provider = XsrfCookieProvider(
                self._http_client.cookies,
                cookie_name=self.config.XSRF_COOKIE_NAME,
                header_name=self.config.XSRF_HEADER_NAME,
            )
        return ControlPlaneClient(
            base_url,
            uid,
            client=self._http_client,
            credential_provider=credential_provider,
            hooks=self.hooks,
            timeout=self.config.HTTP_TIMEOUT,
        )

    @property
    def uid(self) -> str:
        return self.session.uid

    @property
    def status(self) -> ConnectionState:
        return self.connection.state

    @property
    def is_closed(self) -> bool:
        return self.connection.is_closed

    def connect(self):
        """Open the event stream. Must be called from a running event loop."""
        self.connection.connect()

    def subscription(self, channel: str) -> Subscription:
        """Get the subscription for ``channel``, creating a pending one if needed."""
        return self.registry.obtain(channel)

    async def subscribe(self, channel: str, handler: Optional[MessageHandler] = None) -> Subscription:
        """Attach ``handler`` to ``channel`` and join it on the server."""
        return await self.registry.subscribe(channel, handler)

    async def unsubscribe(
        self,
        channel: str,
        handler: MessageHandler,
        force_server_leave: Optional[bool] = None,
    ) -> bool:
        """Detach ``handler``; optionally leave the channel once no handler remains."""
        return await self.registry.unsubscribe(channel, handler, force_server_leave)

    def on(self, state: ConnectionState, callback: StatusCallback):
        """Observe transitions into a connection state."""
        self.connection.on(state, callback)

    def register(self, event: HookEvent, handler: HookHandler) -> Hook:
        """Observe a lifecycle event."""
        return self.hooks.register(HookEvent(event), handler)

    async def close(self):
        """Shut the client down. Nothing runs in the background afterwards."""
        if self.connection.is_closed and self.registry.is_closed:
            return

        self.connection.close()
        await self.registry.close()

        if self._owns_http_client:
            await self._http_client.aclose()

        logger.info(f"Transmit client {self.uid} closed", extra={"uid": self.uid})

    async def __aenter__(self) -> "Transmit":
        self.connect()
        return self

    async def __aexit__(self, *args):
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "uid": self.uid,
            "connection": self.connection.get_stats(),
            "subscriptions": self.registry.get_stats(),
        }
