"""Federation Runtime — builds and owns every component of one node; started/stopped by the lifespan.

Invariants:
    - Exactly one runtime per process once init_runtime() has run; routes reach it only via
      the get_runtime dependency
    - start() brings components up bottom-up (federator before coordinator), stop() reverses it
    - The shared HTTP client is closed on stop, never earlier

Design Decisions:
    - Singleton initialized on startup: FastAPI lifespan manages lifecycle
      (ADR: no global import side effects)
    - Optional httpx transport injected at construction so tests run whole nodes in-process
"""

import logging

import httpx
from fastapi import Request

from peerlink.config import Settings
from peerlink.core.errors import CoordinatorNotRunningError
from peerlink.core.repository_protocols import PeerExchangeStrategy
from peerlink.infrastructure.discovery_client import DiscoveryClient
from peerlink.infrastructure.event_bus import EventBus
from peerlink.infrastructure.federation_http import FederationHttpClient
from peerlink.infrastructure.identity_store import IdentityStore
from peerlink.infrastructure.registry import InstanceRegistry
from peerlink.services.coordinator import NetworkCoordinator
from peerlink.services.delivery import ActivityDelivery
from peerlink.services.federator import Federator
from peerlink.services.inbox import InboxProcessor
from peerlink.services.peer_exchange import FollowingPeerExchange, StaticPeerList

logger = logging.getLogger(__name__)


class FederationRuntime:
    """Wires settings into http client, registry, identities, federator, coordinator, inbox."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.http = FederationHttpClient(
            timeout_seconds=settings.http_timeout_seconds, transport=transport,
        )
        self.events = EventBus()
        self.registry = InstanceRegistry(events=self.events)
        self.identities = IdentityStore(http=self.http)
        self.discovery = DiscoveryClient(
            self.http, settings.service_name, scheme=settings.url_scheme,
        )
        self.deliverer = ActivityDelivery(
            self.discovery, self.identities, self.http, settings.local_domain,
        )
        self.federator = Federator(
            self.deliverer,
            self.registry,
            settings.local_domain,
            events=self.events,
            max_workers=settings.max_workers,
            max_retry_attempts=settings.max_retry_attempts,
            retry_base_delay_ms=settings.retry_base_delay_ms,
            retry_max_delay_ms=settings.retry_max_delay_ms,
            attempt_timeout_seconds=settings.delivery_timeout_seconds,
        )
        self.peer_exchange = self._build_peer_exchange()
        self.coordinator = NetworkCoordinator(
            settings,
            self.registry,
            self.identities,
            self.discovery,
            self.federator,
            self.events,
            self.peer_exchange,
        )
        self.inbox = InboxProcessor(
            self.identities, self.registry, self.coordinator, self.events,
        )

    def _build_peer_exchange(self) -> PeerExchangeStrategy:
        if self.settings.peer_exchange == "static":
            return StaticPeerList(self.settings.bootstrap_peers)
        return FollowingPeerExchange(self.discovery, self.settings.bootstrap_peers)

    async def start(self) -> None:
        await self.federator.start()
        await self.coordinator.start()
        logger.info(
            "Federation runtime started",
            extra={"domain": self.settings.local_domain},
        )

    async def stop(self) -> None:
        await self.coordinator.stop()
        await self.federator.stop()
        await self.http.aclose()
        logger.info("Federation runtime stopped")


# Singleton (initialized on startup)
runtime: FederationRuntime | None = None


def init_runtime(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None,
) -> FederationRuntime:
    global runtime
    runtime = FederationRuntime(settings, transport=transport)
    return runtime


def get_runtime(request: Request) -> FederationRuntime:
    """FastAPI dependency for the running node (app-scoped runtime wins over the singleton)."""
    rt = getattr(request.app.state, "runtime", None) or runtime
    if rt is None:
        raise CoordinatorNotRunningError()
    return rt
