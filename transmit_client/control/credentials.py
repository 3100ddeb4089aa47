"""
Credential providers for control-plane requests.
A provider is any zero-argument callable returning extra request headers.
"""
from typing import Callable, Dict, Mapping, Optional

import httpx

CredentialProvider = Callable[[], Mapping[str, str]]


def no_credentials() -> Dict[str, str]:
    return {}


class XsrfCookieProvider:
    """
    Forwards an XSRF cookie from a cookie jar as a request header.

    The jar is usually the one of the ``httpx.AsyncClient`` shared with the
    event stream, so a token set by the server on the stream response is
    echoed back on subscribe/unsubscribe calls.
    """

    def __init__(
        self,
        cookies: httpx.Cookies,
        cookie_name: str = "XSRF-TOKEN",
        header_name: str = "X-XSRF-TOKEN",
    ):
        self.cookies = cookies
        self.cookie_name = cookie_name
        self.header_name = header_name

    def token(self) -> Optional[str]:
        try:
            return self.cookies.get(self.cookie_name)
        except httpx.CookieConflict:
            # Same name set for several domains or paths; take the first one
            for cookie in self.cookies.jar:
                if cookie.name == self.cookie_name:
                    return cookie.value
        return None

    def __call__(self) -> Dict[str, str]:
        # Header is always present, empty when no token was issued yet
        return {self.header_name: self.token() or ""}


class StaticHeadersProvider:
    """Sends a fixed set of headers, e.g. a bearer token."""

    def __init__(self, headers: Mapping[str, str]):
        self.headers = dict(headers)

    def __call__(self) -> Dict[str, str]:
        return dict(self.headers)
