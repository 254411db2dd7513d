"""Peer exchange strategies — candidate domains from a static list or peers' following collections."""

from peerlink.infrastructure.discovery_client import DiscoveryClient
from peerlink.infrastructure.federation_http import FederationHttpClient
from peerlink.services.peer_exchange import FollowingPeerExchange, StaticPeerList


async def test_static_list_is_normalized_and_deduplicated():
    strategy = StaticPeerList(["A.test", "a.test", " b.test ", ""])
    assert await strategy.candidate_domains([]) == ["a.test", "b.test"]


async def test_following_exchange_collects_peers_of_peers(network):
    network.add("a.test", following=["b.test", "c.test"])
    network.add("d.test", following=["c.test", "e.test"])
    http = FederationHttpClient(transport=network.transport())
    discovery = DiscoveryClient(http, "peerlink")
    known = [
        (await discovery.resolve_instance("a.test"))[0],
        (await discovery.resolve_instance("d.test"))[0],
    ]

    strategy = FollowingPeerExchange(discovery, bootstrap=["seed.test"])
    candidates = await strategy.candidate_domains(known)

    assert candidates == ["seed.test", "b.test", "c.test", "e.test"]
    await http.aclose()


async def test_unreachable_peer_contributes_nothing(network):
    network.add("a.test", following=["b.test"])
    http = FederationHttpClient(transport=network.transport())
    discovery = DiscoveryClient(http, "peerlink")
    known = [(await discovery.resolve_instance("a.test"))[0]]
    network.unreachable.add("a.test")

    assert await FollowingPeerExchange(discovery).candidate_domains(known) == []
    await http.aclose()
