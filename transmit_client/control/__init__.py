"""Control-plane package for joining and leaving channels."""
from .client import ControlPlaneClient, ControlPlaneResult
from .credentials import CredentialProvider, XsrfCookieProvider, StaticHeadersProvider

__all__ = [
    "ControlPlaneClient",
    "ControlPlaneResult",
    "CredentialProvider",
    "XsrfCookieProvider",
    "StaticHeadersProvider",
]
