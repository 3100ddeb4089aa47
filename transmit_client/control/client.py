"""
Control-plane HTTP client.
Joins and leaves channels on behalf of one client session.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from transmit_client.control.credentials import CredentialProvider, no_credentials
from transmit_client.hooks import Hook, HookEvent
from transmit_client.models import ChannelRequest
from transmit_client.utils.logging import get_logger

logger = get_logger("control.client")

SUBSCRIBE_PATH = "/__transmit/subscribe"
UNSUBSCRIBE_PATH = "/__transmit/unsubscribe"


@dataclass
class ControlPlaneResult:
    """Outcome of a single join or leave exchange."""
    channel: str
    ok: bool
    status_code: Optional[int] = None
    body: str = ""
    error: Optional[BaseException] = None

    @classmethod
    def from_response(cls, channel: str, response: httpx.Response) -> "ControlPlaneResult":
        return cls(
            channel=channel,
            ok=response.is_success,
            status_code=response.status_code,
            body=response.text,
        )

    @classmethod
    def from_error(cls, channel: str, error: BaseException) -> "ControlPlaneResult":
        return cls(channel=channel, ok=False, error=error)

    def describe(self) -> str:
        if self.error is not None:
            return f"{type(self.error).__name__}: {self.error}"
        return f"HTTP {self.status_code}"


class ControlPlaneClient:
    """
    Issues subscribe/unsubscribe requests.

    Every failure, non-2xx status or transport error alike, comes back as a
    ``ControlPlaneResult`` with ``ok=False``. Nothing is retried here.
    """

    def __init__(
        self,
        base_url: str,
        uid: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        credential_provider: Optional[CredentialProvider] = None,
        hooks: Optional[Hook] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.uid = uid
        self._credential_provider = credential_provider or no_credentials
        self._hooks = hooks
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def create_request(self, path: str, channel: str) -> httpx.Request:
        """Build a JSON POST carrying the session uid and the channel."""
        body = ChannelRequest(uid=self.uid, channel=channel)
        headers = {"Content-Type": "application/json"}
        headers.update(self._credential_provider())

        return self._client.build_request(
            "POST",
            f"{self.base_url}{path}",
            content=body.model_dump_json(),
            headers=headers,
            timeout=self._timeout,
        )

    async def send(self, request: httpx.Request) -> httpx.Response:
        return await self._client.send(request)

    async def join(self, channel: str) -> ControlPlaneResult:
        """Ask the server to start delivering ``channel`` on our stream."""
        return await self._exchange(SUBSCRIBE_PATH, channel, HookEvent.BEFORE_SUBSCRIBE)

    async def leave(self, channel: str) -> ControlPlaneResult:
        """Ask the server to stop delivering ``channel`` on our stream."""
        return await self._exchange(UNSUBSCRIBE_PATH, channel, HookEvent.BEFORE_UNSUBSCRIBE)

    async def _exchange(self, path: str, channel: str, before: HookEvent) -> ControlPlaneResult:
        request = self.create_request(path, channel)

        if self._hooks is not None:
            self._hooks.emit(before, request)

        try:
            response = await self.send(request)
        except httpx.HTTPError as e:
            logger.warning(f"{path} for {channel} failed: {e}")
            return ControlPlaneResult.from_error(channel, e)

        result = ControlPlaneResult.from_response(channel, response)
        if not result.ok:
            logger.warning(f"{path} for {channel} rejected with HTTP {response.status_code}")
        else:
            logger.debug(f"{path} for {channel} succeeded")
        return result

    async def aclose(self):
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
