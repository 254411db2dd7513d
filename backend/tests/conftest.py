"""Root conftest — shared test configuration and fake peer network fixtures."""

import os

import pytest

# Ensure tests never pick up a developer's node identity
os.environ.setdefault("PEERLINK_LOCAL_DOMAIN", "local.test")
os.environ.setdefault("PEERLINK_LOG_FORMAT", "text")

from peerlink.config import Settings  # noqa: E402
from peerlink.services.runtime import FederationRuntime  # noqa: E402
from tests.fake_network import FakeNetwork  # noqa: E402

# Periodic cycles are driven explicitly by tests
_NEVER = 3600.0


@pytest.fixture
def settings() -> Settings:
    return Settings(
        local_domain="local.test",
        local_name="Local Test Node",
        url_scheme="https",
        health_check_interval_seconds=_NEVER,
        discovery_interval_seconds=_NEVER,
        stats_interval_seconds=_NEVER,
        ping_interval_seconds=_NEVER,
        delivery_timeout_seconds=5.0,
        peer_exchange="following",
        bootstrap_peers=[],
        log_format="text",
    )


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
async def runtime(settings, network):
    """Started node whose outbound HTTP goes to the fake network."""
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    yield rt
    await rt.stop()
