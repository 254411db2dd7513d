"""Network Coordinator — discovery, health cycles, peer exchange, timers, queries.

Invariants tested:
    - Discovered peers are registered online and appear in topology
    - Health cycles reclassify peers and the network from probe outcomes
    - Discovery failures leave state untouched
    - Timers keep firing after a failing cycle
    - Operations before start() raise CoordinatorNotRunningError
    - stop() fails callers still waiting on a reply instead of leaving them hung
"""

import asyncio

import pytest

from peerlink.core.domain_types import InstanceStatus, NetworkStatus
from peerlink.core.errors import CoordinatorNotRunningError
from peerlink.services.runtime import FederationRuntime
from tests.fake_network import wait_until


async def test_start_registers_local_self_record(runtime):
    local = await runtime.registry.get("local.test")
    assert local.status == InstanceStatus.ONLINE
    assert local.public_key == runtime.identities.local.public_key_pem
    assert await runtime.coordinator.get_known_instances() == []
    assert (await runtime.coordinator.get_network_health()).status == NetworkStatus.INITIALIZING
    topology = await runtime.coordinator.get_network_topology()
    assert [n.id for n in topology.nodes] == ["local.test"]


async def test_discover_registers_peer_online(runtime, network):
    network.add("peer.example", name="Example")
    async with runtime.events.subscribe() as queue:
        instance = await runtime.coordinator.discover_instance("peer.example", wait=True)
        event = queue.get_nowait()

    assert instance.domain == "peer.example"
    assert instance.status == InstanceStatus.ONLINE
    assert (await runtime.registry.get("peer.example")).name == "Example"
    assert event["type"] == "instance_discovered"
    topology = await runtime.coordinator.get_network_topology()
    assert [(e.source, e.target) for e in topology.edges] == [("local.test", "peer.example")]


async def test_failed_discovery_leaves_registry_untouched(runtime, network):
    network.add("peer.example").webfinger_status = 500
    assert await runtime.coordinator.discover_instance("peer.example", wait=True) is None
    assert not runtime.registry.contains("peer.example")
    assert await runtime.coordinator.get_known_instances() == []


async def test_local_domain_is_never_discovered(runtime, network):
    assert await runtime.coordinator.discover_instance("LOCAL.test", wait=True) is None
    assert network.requests == []


async def test_rediscovery_keeps_created_at(runtime, network):
    network.add("peer.example")
    first = await runtime.coordinator.discover_instance("peer.example", wait=True)
    second = await runtime.coordinator.discover_instance("peer.example", wait=True)
    assert second.created_at == first.created_at
    assert len(await runtime.coordinator.get_known_instances()) == 1


async def test_discover_online_then_offline_reclassifies(runtime, network):
    peer = network.add("peer.example")
    await runtime.coordinator.discover_instance("peer.example", wait=True)

    health = await runtime.coordinator.force_health_check(wait=True)
    assert health.status == NetworkStatus.ALL_HEALTHY
    assert (await runtime.registry.get("peer.example")).status == InstanceStatus.ONLINE

    peer.health_status = 500
    health = await runtime.coordinator.force_health_check(wait=True)
    assert (await runtime.registry.get("peer.example")).status == InstanceStatus.OFFLINE
    assert health.status == NetworkStatus.ALL_DOWN
    assert health.health_percentage == 0.0
    topology = await runtime.coordinator.get_network_topology()
    assert topology.nodes[1].status == "offline"


async def test_four_of_five_healthy_is_mostly_healthy(runtime, network):
    for i in range(5):
        network.add(f"peer{i}.test")
        await runtime.coordinator.discover_instance(f"peer{i}.test", wait=True)
    network.unreachable.add("peer4.test")

    health = await runtime.coordinator.force_health_check(wait=True)

    assert (health.healthy_instances, health.total_instances) == (4, 5)
    assert health.status == NetworkStatus.MOSTLY_HEALTHY
    stats = await runtime.coordinator.get_network_stats()
    assert stats["total_instances"] == 6
    assert stats["network_status"] == "mostly_healthy"


async def test_empty_network_health_cycle_is_isolated(runtime):
    health = await runtime.coordinator.force_health_check(wait=True)
    assert health.status == NetworkStatus.ISOLATED
    assert health.health_percentage == 100.0


async def test_health_cycle_publishes_health_update(runtime):
    async with runtime.events.subscribe() as queue:
        await runtime.coordinator.force_health_check(wait=True)
        event = queue.get_nowait()
    assert event == {"type": "health_update", "data": event["data"]}
    assert event["data"]["status"] == "isolated"


async def test_discovery_cycle_follows_known_peers(runtime, network):
    network.add("a.test", following=["b.test", "c.test", "local.test"])
    network.add("b.test")
    network.add("c.test")
    await runtime.coordinator.discover_instance("a.test", wait=True)

    started = await runtime.coordinator.run_discovery_cycle(wait=True)

    assert started == ["b.test", "c.test"]
    await wait_until(
        lambda: runtime.registry.contains("b.test") and runtime.registry.contains("c.test"),
    )
    stats = await runtime.coordinator.get_network_stats()
    assert stats["last_discovery"] is not None


async def test_discovery_cycle_skips_known_domains(runtime, network):
    network.add("a.test", following=["a.test"])
    await runtime.coordinator.discover_instance("a.test", wait=True)
    assert await runtime.coordinator.run_discovery_cycle(wait=True) == []


async def test_queries_before_start_raise(settings, network):
    rt = FederationRuntime(settings, transport=network.transport())
    with pytest.raises(CoordinatorNotRunningError):
        await rt.coordinator.get_network_health()
    with pytest.raises(CoordinatorNotRunningError):
        await rt.coordinator.discover_instance("peer.example")
    with pytest.raises(CoordinatorNotRunningError):
        rt.coordinator.local_instance
    await rt.http.aclose()


async def test_health_timer_fires(settings, network):
    settings.health_check_interval_seconds = 0.02
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    try:
        await wait_until(
            lambda: _health_status(rt), timeout=2,
        )
    finally:
        await rt.stop()


async def _health_status(rt) -> bool:
    health = await rt.coordinator.get_network_health()
    return health.status == NetworkStatus.ISOLATED


class _ExplodingExchange:
    def __init__(self):
        self.calls = 0

    async def candidate_domains(self, known):
        self.calls += 1
        raise RuntimeError("peer exchange blew up")


async def test_discovery_timer_survives_failing_cycle(settings, network):
    settings.discovery_interval_seconds = 0.02
    rt = FederationRuntime(settings, transport=network.transport())
    exchange = _ExplodingExchange()
    rt.coordinator._peer_exchange = exchange
    await rt.start()
    try:
        await wait_until(lambda: exchange.calls >= 3, timeout=2)
        assert (await rt.coordinator.get_network_stats())["last_discovery"] is not None
    finally:
        await rt.stop()


async def test_ping_timer_broadcasts_health_check(settings, network):
    settings.ping_interval_seconds = 0.02
    peer = network.add("peer.example")
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    try:
        await rt.coordinator.discover_instance("peer.example", wait=True)
        await wait_until(lambda: len(peer.inbox_requests) >= 1, timeout=2)
    finally:
        await rt.stop()
    assert b"PeerHealthCheck" in peer.inbox_requests[0].content


async def test_stats_timer_publishes_stats(settings, network):
    settings.stats_interval_seconds = 0.02
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    try:
        async with rt.events.subscribe() as queue:
            event = await asyncio.wait_for(queue.get(), timeout=2)
    finally:
        await rt.stop()
    assert event["type"] == "stats_update"
    assert event["data"]["total_instances"] == 1


async def test_bootstrap_peers_are_discovered_on_start(settings, network):
    settings.bootstrap_peers = ["peer.example"]
    network.add("peer.example")
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    try:
        await wait_until(lambda: rt.registry.contains("peer.example"))
    finally:
        await rt.stop()


class _HangingLookup:
    def __init__(self):
        self.entered = asyncio.Event()

    async def __call__(self, domain):
        self.entered.set()
        await asyncio.Event().wait()


async def test_stop_fails_caller_waiting_on_discovery(settings, network):
    rt = FederationRuntime(settings, transport=network.transport())
    lookup = _HangingLookup()
    rt.discovery.resolve_instance = lookup
    await rt.start()
    caller = asyncio.create_task(
        rt.coordinator.discover_instance("peer.example", wait=True),
    )
    await asyncio.wait_for(lookup.entered.wait(), timeout=2)

    await rt.stop()

    with pytest.raises(CoordinatorNotRunningError):
        await asyncio.wait_for(caller, timeout=1)


async def test_stop_fails_caller_waiting_on_health_check(settings, network):
    network.add("peer.example")
    rt = FederationRuntime(settings, transport=network.transport())
    await rt.start()
    await rt.coordinator.discover_instance("peer.example", wait=True)
    probe = _HangingLookup()
    rt.discovery.probe_health = probe
    caller = asyncio.create_task(rt.coordinator.force_health_check(wait=True))
    await asyncio.wait_for(probe.entered.wait(), timeout=2)

    await rt.stop()

    with pytest.raises(CoordinatorNotRunningError):
        await asyncio.wait_for(caller, timeout=1)


async def test_queries_after_stop_raise(runtime):
    await runtime.coordinator.stop()
    assert not runtime.coordinator.running
    with pytest.raises(CoordinatorNotRunningError):
        await runtime.coordinator.get_known_instances()
