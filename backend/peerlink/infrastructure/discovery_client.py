"""Discovery Client — WebFinger query, actor fetch, health probe and peer-list fetch over HTTP.

Invariants:
    - discover() raises only DiscoveryError subclasses (DiscoveryFailed / InvalidSubject / MissingSelfLink)
    - fetch_actor() raises only ActorFetchFailedError
    - probe_health() never raises: HTTP 200 → online, anything else (incl. transport failure) → offline
    - No local state is mutated — same remote response, same result

Design Decisions:
    - Protocol rules (subject check, self link) delegated to core/webfinger.py; this module only does IO
    - Scheme configurable (https in production, http for local multi-node setups)
"""

import logging

import httpx

from peerlink.core.domain_types import (
    ACTIVITY_CONTENT_TYPE,
    HEALTH_PATH,
    JRD_CONTENT_TYPE,
    WEBFINGER_PATH,
    InstanceStatus,
    normalize_domain,
)
from peerlink.core.errors import ActorFetchFailedError, DiscoveryFailedError
from peerlink.core.peer_instance import PeerInstance, base_url, parse_actor_document
from peerlink.core.webfinger import build_resource, resolve_actor_url, validate_profile
from peerlink.infrastructure.federation_http import FederationHttpClient

logger = logging.getLogger(__name__)


class DiscoveryClient:
    """Resolves domains to profiles and actor documents."""

    def __init__(
        self, http: FederationHttpClient, service_name: str, scheme: str = "https",
    ):
        self._http = http
        self.service_name = service_name
        self.scheme = scheme

    async def discover(self, domain: str) -> dict:
        """WebFinger profile for domain, validated against the queried resource."""
        domain = normalize_domain(domain)
        resource = build_resource(self.service_name, domain)
        url = f"{base_url(domain, self.scheme)}{WEBFINGER_PATH}"
        try:
            status_code, body = await self._http.get_json(
                url, accept=JRD_CONTENT_TYPE, params={"resource": resource},
            )
        except httpx.HTTPError as e:
            raise DiscoveryFailedError(domain, f"transport error: {e}")
        if status_code != 200:
            raise DiscoveryFailedError(domain, f"HTTP {status_code}")
        if not isinstance(body, dict):
            raise DiscoveryFailedError(domain, "response is not a JSON object")
        return validate_profile(body, resource, domain)

    def resolve_actor_url(self, profile: dict, domain: str | None = None) -> str:
        return resolve_actor_url(profile, domain)

    async def fetch_actor(self, actor_url: str) -> dict:
        """Actor document at actor_url."""
        try:
            status_code, body = await self._http.get_json(
                actor_url, accept=ACTIVITY_CONTENT_TYPE,
            )
        except httpx.HTTPError as e:
            raise ActorFetchFailedError(actor_url, f"transport error: {e}")
        if status_code != 200:
            raise ActorFetchFailedError(actor_url, f"HTTP {status_code}")
        if not isinstance(body, dict):
            raise ActorFetchFailedError(actor_url, "response is not a JSON object")
        return body

    async def resolve_instance(self, domain: str) -> tuple[PeerInstance, dict]:
        """Full discovery: profile → actor URL → actor document → PeerInstance."""
        profile = await self.discover(domain)
        actor_url = resolve_actor_url(profile, domain)
        actor = await self.fetch_actor(actor_url)
        instance = parse_actor_document(actor)
        return instance, actor

    async def probe_health(self, domain: str) -> InstanceStatus:
        url = f"{base_url(domain, self.scheme)}{HEALTH_PATH}"
        try:
            status_code = await self._http.get_status(url)
        except httpx.HTTPError as e:
            logger.info(f"Health probe failed for {domain}: {e}", extra={"domain": domain})
            return InstanceStatus.OFFLINE
        return InstanceStatus.ONLINE if status_code == 200 else InstanceStatus.OFFLINE

    async def fetch_following(self, actor: dict) -> list[str]:
        """Actor URLs listed in the actor's `following` collection (empty on any failure)."""
        following_url = actor.get("following")
        if not isinstance(following_url, str):
            return []
        try:
            status_code, body = await self._http.get_json(
                following_url, accept=ACTIVITY_CONTENT_TYPE,
            )
        except httpx.HTTPError as e:
            logger.info(f"Following fetch failed: {e}", extra={"target": following_url})
            return []
        if status_code != 200 or not isinstance(body, dict):
            return []
        items = body.get("orderedItems") or body.get("items") or []
        return [item for item in items if isinstance(item, str)]
