"""
Shared fixtures.
"""
import pytest

from transmit_client.client import Transmit
from transmit_client.config import Settings

from fakes import FakeControlPlane, TransportRecorder, make_settings


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def transmit(settings, transports, control_plane):
    client = Transmit(
        settings=settings,
        uid_generator=lambda: "1",
        transport_factory=transports,
        control_plane_factory=lambda base_url, uid: control_plane,
    )
    yield client
    await client.close()
