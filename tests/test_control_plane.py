"""
Tests for the control-plane HTTP client.
"""
import json

import httpx

from transmit_client.control.client import ControlPlaneClient
from transmit_client.control.credentials import StaticHeadersProvider, XsrfCookieProvider
from transmit_client.hooks import Hook, HookEvent


class Recorder:
    """httpx mock handler that records requests."""

    def __init__(self, status_code: int = 204, error: Exception = None):
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text="")


def build_client(recorder: Recorder, **kwargs) -> ControlPlaneClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return ControlPlaneClient("http://localhost/", "1", client=http, **kwargs)


class TestJoinLeave:
    """Tests for the subscribe/unsubscribe exchanges."""

    async def test_join_request(self):
        recorder = Recorder()
        client = build_client(recorder)

        result = await client.join("orders")

        assert result.ok
        assert result.status_code == 204
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://localhost/__transmit/subscribe"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {"uid": "1", "channel": "orders"}

    async def test_leave_request(self):
        recorder = Recorder()
        client = build_client(recorder)

        result = await client.leave("orders")

        assert result.ok
        assert str(recorder.requests[0].url) == "http://localhost/__transmit/unsubscribe"
        assert json.loads(recorder.requests[0].content) == {"uid": "1", "channel": "orders"}

    async def test_non_2xx_is_failure(self):
        client = build_client(Recorder(status_code=403))

        result = await client.join("orders")

        assert not result.ok
        assert result.status_code == 403
        assert result.error is None
        assert result.describe() == "HTTP 403"

    async def test_transport_error_is_failure(self):
        client = build_client(Recorder(error=httpx.ConnectError("refused")))

        result = await client.join("orders")

        assert not result.ok
        assert result.status_code is None
        assert isinstance(result.error, httpx.ConnectError)
        assert "ConnectError" in result.describe()

    async def test_no_retry(self):
        recorder = Recorder(status_code=500)
        client = build_client(recorder)

        await client.join("orders")

        assert len(recorder.requests) == 1

    async def test_aclose_keeps_shared_client(self):
        http = httpx.AsyncClient(transport=httpx.MockTransport(Recorder()))
        client = ControlPlaneClient("http://localhost", "1", client=http)

        await client.aclose()

        assert not http.is_closed
        await http.aclose()


class TestCredentials:
    """Tests for credential providers and request hooks."""

    async def test_xsrf_cookie_forwarded(self):
        recorder = Recorder()
        http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        http.cookies.set("XSRF-TOKEN", "secret-token")
        client = ControlPlaneClient(
            "http://localhost",
            "1",
            client=http,
            credential_provider=XsrfCookieProvider(http.cookies),
        )

        await client.join("orders")

        assert recorder.requests[0].headers["X-XSRF-TOKEN"] == "secret-token"

    def test_xsrf_missing_cookie(self):
        provider = XsrfCookieProvider(httpx.Cookies())
        assert provider() == {"X-XSRF-TOKEN": ""}

    def test_xsrf_custom_names(self):
        cookies = httpx.Cookies()
        cookies.set("csrf", "abc")
        provider = XsrfCookieProvider(cookies, cookie_name="csrf", header_name="X-CSRF")
        assert provider() == {"X-CSRF": "abc"}

    async def test_static_headers(self):
        recorder = Recorder()
        client = build_client(
            recorder,
            credential_provider=StaticHeadersProvider({"Authorization": "Bearer t"}),
        )

        await client.leave("orders")

        assert recorder.requests[0].headers["Authorization"] == "Bearer t"

    async def test_before_hooks_see_request(self):
        recorder = Recorder()
        hooks = Hook()
        seen = []

        def before_subscribe(request: httpx.Request):
            seen.append(("subscribe", request.url.path))
            request.headers["X-Trace"] = "42"

        hooks.register(HookEvent.BEFORE_SUBSCRIBE, before_subscribe)
        hooks.register(HookEvent.BEFORE_UNSUBSCRIBE, lambda request: seen.append(("unsubscribe", request.url.path)))
        client = build_client(recorder, hooks=hooks)

        await client.join("orders")
        await client.leave("orders")

        assert seen == [
            ("subscribe", "/__transmit/subscribe"),
            ("unsubscribe", "/__transmit/unsubscribe"),
        ]
        assert recorder.requests[0].headers["X-Trace"] == "42"
