"""API test fixtures — app with its lifespan running, outbound HTTP to the fake network.

Invariants:
    - Every test gets its own app + runtime (no shared singleton state)
    - The client talks to the app in-process via ASGITransport, as host local.test
"""

import pytest
from httpx import ASGITransport, AsyncClient

from peerlink.main import create_app


@pytest.fixture
async def app(settings, network):
    application = create_app(settings, transport=network.transport())
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
def node(app):
    """The running FederationRuntime behind the app."""
    return app.state.runtime


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="https://local.test",
    ) as c:
        yield c
