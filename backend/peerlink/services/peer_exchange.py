"""Peer Exchange Strategies — where the discovery cycle gets candidate peer domains.

Invariants:
    - candidate_domains never raises; a failing peer contributes no candidates
    - Returned domains are normalized and de-duplicated, in first-seen order
    - Strategies never touch the registry — the coordinator filters out already-known domains

Design Decisions:
    - Pluggable strategy (Protocol in core/repository_protocols.py) instead of a hardcoded
      demo list: StaticPeerList covers bootstrap/demo mode, FollowingPeerExchange asks every
      known peer for its `following` collection (ADR: peer exchange, not open crawling)
"""

import asyncio
import logging

from peerlink.core.errors import DiscoveryError
from peerlink.core.domain_types import normalize_domain
from peerlink.core.peer_instance import PeerInstance, domain_from_url
from peerlink.infrastructure.discovery_client import DiscoveryClient

logger = logging.getLogger(__name__)


def _dedupe(domains: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for d in domains:
        d = normalize_domain(d)
        if d:
            seen.setdefault(d, None)
    return list(seen)


class StaticPeerList:
    """Fixed candidate list (bootstrap peers / demo mode)."""

    def __init__(self, domains: list[str]):
        self._domains = _dedupe(domains)

    async def candidate_domains(self, known: list[PeerInstance]) -> list[str]:
        return list(self._domains)


class FollowingPeerExchange:
    """Learn peers from each known peer's `following` collection, plus bootstrap peers."""

    def __init__(self, discovery: DiscoveryClient, bootstrap: list[str] | None = None):
        self._discovery = discovery
        self._bootstrap = _dedupe(bootstrap or [])

    async def candidate_domains(self, known: list[PeerInstance]) -> list[str]:
        results = await asyncio.gather(
            *(self._peers_of(p) for p in known), return_exceptions=True,
        )
        candidates = list(self._bootstrap)
        for peer, result in zip(known, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Peer exchange with {peer.domain} failed: {result}",
                    extra={"domain": peer.domain},
                )
                continue
            candidates.extend(result)
        return _dedupe(candidates)

    async def _peers_of(self, peer: PeerInstance) -> list[str]:
        try:
            actor = await self._discovery.fetch_actor(peer.actor_url)
        except DiscoveryError as e:
            logger.info(f"Skipping peer exchange with {peer.domain}: {e.message}")
            return []
        domains = []
        for actor_url in await self._discovery.fetch_following(actor):
            try:
                domains.append(domain_from_url(actor_url))
            except ValueError:
                continue
        return domains
