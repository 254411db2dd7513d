"""Network Coordinator — actor owning network health, topology and stats; drives periodic cycles.

Invariants:
    - All coordinator state (health, topology, last_discovery, counters) is mutated only by the
      mailbox loop — one message at a time, so concurrent callers never race
    - Network IO (discovery, probes, peer exchange) runs in spawned tasks; results come back as
      mailbox messages and are applied one at a time
    - A failing peer never stops a cycle, and a failing cycle never stops its timer
    - Discovery failures are logged and leave state untouched
    - The local domain is never discovered, probed or counted as a peer
    - stop() fails every outstanding reply with CoordinatorNotRunningError; no caller waits forever

Design Decisions:
    - Mailbox actor (asyncio.Queue) over lock-based shared state (ADR: single writer)
    - Cast/call split: discover_instance / force_health_check return immediately unless
      wait=True, in which case the caller gets the applied result
    - Queries go through the mailbox too, so readers see state between messages, never mid-update
    - Re-discovery keeps the record's created_at; the queried domain stays the registry key
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from peerlink.config import Settings
from peerlink.core.activities import build_health_ping_activity, build_presence_activity
from peerlink.core.domain_types import EventType, InstanceStatus, normalize_domain
from peerlink.core.errors import (
    CoordinatorNotRunningError,
    DiscoveryError,
    InstanceNotFoundError,
)
from peerlink.core.network_health import (
    NetworkHealth,
    compute_network_health,
    initial_health,
)
from peerlink.core.network_stats import compute_network_stats
from peerlink.core.peer_instance import PeerInstance, build_local_instance
from peerlink.core.repository_protocols import EventPublisher, PeerExchangeStrategy
from peerlink.core.topology import TopologyGraph, build_topology
from peerlink.infrastructure.discovery_client import DiscoveryClient
from peerlink.infrastructure.identity_store import IdentityStore
from peerlink.infrastructure.registry import InstanceRegistry
from peerlink.services.federator import Federator

logger = logging.getLogger(__name__)


# ─── Mailbox Messages ────────────────────────────────────────────

@dataclass(frozen=True)
class _Discover:
    domain: str
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _Discovered:
    domain: str
    instance: PeerInstance | None
    error: str | None
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _HealthCheck:
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _HealthResults:
    results: dict[str, InstanceStatus]
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _DiscoveryCycle:
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _DiscoveryCandidates:
    domains: list[str]
    reply: asyncio.Future | None = None


@dataclass(frozen=True)
class _BroadcastStats:
    pass


@dataclass(frozen=True)
class _PingBroadcast:
    pass


@dataclass(frozen=True)
class _ActivityReceived:
    pass


@dataclass(frozen=True)
class _Query:
    read: Callable[[], Awaitable[object]]
    reply: asyncio.Future


def _resolve(reply: asyncio.Future | None, value: object) -> None:
    if reply is not None and not reply.done():
        reply.set_result(value)


class NetworkCoordinator:
    """Single writer of network state; runs health, discovery, stats and ping cycles."""

    def __init__(
        self,
        settings: Settings,
        registry: InstanceRegistry,
        identities: IdentityStore,
        discovery: DiscoveryClient,
        federator: Federator,
        events: EventPublisher,
        peer_exchange: PeerExchangeStrategy,
    ):
        self._settings = settings
        self._registry = registry
        self._identities = identities
        self._discovery = discovery
        self._federator = federator
        self._events = events
        self._peer_exchange = peer_exchange

        self._local: PeerInstance | None = None
        self._health: NetworkHealth = initial_health()
        self._topology = TopologyGraph()
        self._last_discovery: datetime | None = None
        self._started_at = time.time()
        self._messages_received = 0
        self._discovering: set[str] = set()

        self._mailbox: asyncio.Queue = asyncio.Queue()
        self._loop_task: asyncio.Task | None = None
        self._timers: list[asyncio.Task] = []
        self._tasks: set[asyncio.Task] = set()
        self._replies: set[asyncio.Future] = set()

    @property
    def local_instance(self) -> PeerInstance:
        if self._local is None:
            raise CoordinatorNotRunningError()
        return self._local.copy()

    @property
    def running(self) -> bool:
        return self._loop_task is not None

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Establish identity + self-record, arm timers, announce presence."""
        if self._loop_task is not None:
            return
        s = self._settings
        identity = self._identities.create_local_identity(s.local_domain, s.url_scheme)
        self._local = build_local_instance(
            s.local_domain, s.local_name, s.local_description, s.version,
            s.capabilities, public_key=identity.public_key_pem, scheme=s.url_scheme,
        )
        await self._registry.upsert(self._local)
        self._started_at = time.time()
        await self._refresh_topology()

        self._loop_task = asyncio.create_task(self._run(), name="network-coordinator")
        self._timers = [
            asyncio.create_task(self._timer(s.health_check_interval_seconds, _HealthCheck)),
            asyncio.create_task(self._timer(s.discovery_interval_seconds, _DiscoveryCycle)),
            asyncio.create_task(self._timer(s.stats_interval_seconds, _BroadcastStats)),
            asyncio.create_task(self._timer(s.ping_interval_seconds, _PingBroadcast)),
        ]
        logger.info("Network coordinator started", extra={"domain": self._local.domain})

        queued = await self._federator.broadcast(
            build_presence_activity(self._local, s.url_scheme),
        )
        logger.info(f"Presence announced to {queued} peer(s)")
        for domain in s.bootstrap_peers:
            await self.discover_instance(domain)

    async def stop(self) -> None:
        tasks = [*self._timers, *self._tasks]
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers = []
        self._loop_task = None
        self._fail_outstanding()
        logger.info("Network coordinator stopped")

    def _fail_outstanding(self) -> None:
        while not self._mailbox.empty():
            self._mailbox.get_nowait()
        self._discovering.clear()
        for reply in list(self._replies):
            if not reply.done():
                reply.set_exception(CoordinatorNotRunningError())
        self._replies.clear()

    async def _timer(self, interval: float, make_message: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval)
            self._mailbox.put_nowait(make_message())

    # ─── Public API ──────────────────────────────────────────────

    async def discover_instance(
        self, domain: str, wait: bool = False,
    ) -> PeerInstance | None:
        """Discover and register a peer; with wait=True returns it (None on failure)."""
        domain = normalize_domain(domain)
        if self._local is not None and domain == self._local.domain:
            logger.info("Ignoring discovery of the local domain", extra={"domain": domain})
            return None
        if not wait:
            self._post(_Discover(domain))
            return None
        return await self._call(lambda reply: _Discover(domain, reply))

    async def force_health_check(self, wait: bool = False) -> NetworkHealth | None:
        """Run a health cycle now; with wait=True returns the resulting NetworkHealth."""
        if not wait:
            self._post(_HealthCheck())
            return None
        return await self._call(lambda reply: _HealthCheck(reply))

    async def run_discovery_cycle(self, wait: bool = False) -> list[str] | None:
        """Run a peer-exchange cycle now; with wait=True returns the domains being discovered."""
        if not wait:
            self._post(_DiscoveryCycle())
            return None
        return await self._call(lambda reply: _DiscoveryCycle(reply))

    def broadcast_stats(self) -> None:
        self._post(_BroadcastStats())

    def record_activity_received(self) -> None:
        self._post(_ActivityReceived())

    async def get_known_instances(self) -> list[PeerInstance]:
        return await self._query(self._peers)

    async def get_network_health(self) -> NetworkHealth:
        async def read():
            return self._health
        return await self._query(read)

    async def get_network_topology(self) -> TopologyGraph:
        async def read():
            return self._topology
        return await self._query(read)

    async def get_network_stats(self) -> dict:
        async def read():
            return self._stats()
        return await self._query(read)

    # ─── Mailbox plumbing ────────────────────────────────────────

    def _post(self, message: object) -> None:
        if self._loop_task is None:
            raise CoordinatorNotRunningError()
        self._mailbox.put_nowait(message)

    async def _call(self, build: Callable[[asyncio.Future], object]):
        reply = asyncio.get_running_loop().create_future()
        self._post(build(reply))
        self._replies.add(reply)
        reply.add_done_callback(self._replies.discard)
        return await reply

    async def _query(self, read: Callable[[], Awaitable[object]]):
        return await self._call(lambda reply: _Query(read, reply))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        while True:
            message = await self._mailbox.get()
            try:
                await self._handle(message)
            except Exception as e:
                logger.error(
                    f"Coordinator failed to handle {type(message).__name__}: {e}",
                    exc_info=True,
                )
                reply = getattr(message, "reply", None)
                if reply is not None and not reply.done():
                    reply.set_exception(e)

    async def _handle(self, message: object) -> None:
        match message:
            case _Discover(domain=domain, reply=reply):
                self._start_discovery(domain, reply)
            case _Discovered():
                await self._apply_discovery(message)
            case _HealthCheck(reply=reply):
                peers = await self._peers()
                self._spawn(self._probe_all(peers, reply))
            case _HealthResults(results=results, reply=reply):
                await self._apply_health(results, reply)
            case _DiscoveryCycle(reply=reply):
                peers = await self._peers()
                self._spawn(self._exchange_peers(peers, reply))
            case _DiscoveryCandidates(domains=domains, reply=reply):
                self._apply_candidates(domains, reply)
            case _BroadcastStats():
                self._events.publish(EventType.STATS_UPDATE.value, self._stats())
            case _PingBroadcast():
                activity = build_health_ping_activity(self._local, self._settings.url_scheme)
                self._spawn(self._federator.broadcast(activity))
            case _ActivityReceived():
                self._messages_received += 1
            case _Query(read=read, reply=reply):
                _resolve(reply, await read())
            case _:
                logger.warning(f"Unknown coordinator message: {message!r}")

    # ─── Discovery ───────────────────────────────────────────────

    def _start_discovery(self, domain: str, reply: asyncio.Future | None) -> None:
        self._discovering.add(domain)
        self._spawn(self._resolve_instance(domain, reply))

    async def _resolve_instance(self, domain: str, reply: asyncio.Future | None) -> None:
        try:
            instance, _ = await self._discovery.resolve_instance(domain)
            message = _Discovered(domain, replace(instance, domain=domain), None, reply)
        except DiscoveryError as e:
            message = _Discovered(domain, None, e.message, reply)
        except Exception as e:
            logger.error(f"Unexpected discovery error for {domain}: {e}", exc_info=True)
            message = _Discovered(domain, None, str(e), reply)
        self._mailbox.put_nowait(message)

    async def _apply_discovery(self, message: _Discovered) -> None:
        self._discovering.discard(message.domain)
        if message.instance is None:
            logger.warning(
                f"Failed to discover {message.domain}: {message.error}",
                extra={"domain": message.domain},
            )
            _resolve(message.reply, None)
            return

        instance = message.instance
        if self._registry.contains(instance.domain):
            existing = await self._registry.get(instance.domain)
            instance = replace(instance, created_at=existing.created_at)
        stored = await self._registry.upsert(instance)
        if stored.public_key:
            self._identities.remember_public_key(stored.domain, stored.public_key)
        await self._refresh_topology()
        self._events.publish(EventType.INSTANCE_DISCOVERED.value, stored.to_dict())
        logger.info("Discovered peer", extra={"domain": stored.domain})
        _resolve(message.reply, stored)

    async def _exchange_peers(
        self, peers: list[PeerInstance], reply: asyncio.Future | None,
    ) -> None:
        try:
            domains = await self._peer_exchange.candidate_domains(peers)
        except Exception as e:
            logger.error(f"Peer exchange failed: {e}", exc_info=True)
            domains = []
        self._mailbox.put_nowait(_DiscoveryCandidates(domains, reply))

    def _apply_candidates(self, domains: list[str], reply: asyncio.Future | None) -> None:
        self._last_discovery = datetime.now(timezone.utc)
        fresh = []
        for domain in domains:
            domain = normalize_domain(domain)
            if (domain == self._local.domain or domain in self._discovering
                    or self._registry.contains(domain) or domain in fresh):
                continue
            fresh.append(domain)
            self._start_discovery(domain, None)
        logger.debug(f"Discovery cycle started {len(fresh)} lookup(s)")
        _resolve(reply, fresh)

    # ─── Health ──────────────────────────────────────────────────

    async def _probe_all(
        self, peers: list[PeerInstance], reply: asyncio.Future | None,
    ) -> None:
        outcomes = await asyncio.gather(
            *(self._discovery.probe_health(p.domain) for p in peers),
            return_exceptions=True,
        )
        results = {
            peer.domain: (
                outcome if isinstance(outcome, InstanceStatus) else InstanceStatus.OFFLINE
            )
            for peer, outcome in zip(peers, outcomes)
        }
        self._mailbox.put_nowait(_HealthResults(results, reply))

    async def _apply_health(
        self, results: dict[str, InstanceStatus], reply: asyncio.Future | None,
    ) -> None:
        for domain, status in results.items():
            try:
                await self._registry.update_status(domain, status)
            except InstanceNotFoundError:
                logger.warning("Probed peer vanished from registry", extra={"domain": domain})
        self._health = compute_network_health(results.values())
        await self._refresh_topology()
        self._events.publish(EventType.HEALTH_UPDATE.value, self._health.to_dict())
        logger.debug(
            f"Health cycle: {self._health.healthy_instances}/{self._health.total_instances} "
            f"healthy ({self._health.status.value})",
        )
        _resolve(reply, self._health)

    # ─── Derived views ───────────────────────────────────────────

    async def _peers(self) -> list[PeerInstance]:
        local = self._local.domain if self._local else None
        return [p for p in await self._registry.list() if p.domain != local]

    async def _refresh_topology(self) -> None:
        self._topology = build_topology(self._local, await self._peers())

    def _stats(self) -> dict:
        known = sum(1 for d in self._registry.domains() if d != self._local.domain)
        return compute_network_stats(
            known_instances=known,
            health=self._health,
            started_at=self._started_at,
            now=time.time(),
            last_discovery=self._last_discovery,
            messages_sent=self._federator.sent,
            messages_failed=self._federator.failed,
            messages_received=self._messages_received,
        )
