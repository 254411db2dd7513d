"""Activity Delivery — one signed delivery attempt to one target domain.

Invariants:
    - Steps run in fixed order: discover → resolve actor URL → fetch actor → sign → POST inbox
    - Any step failing surfaces as DeliveryFailedError carrying the step's reason
    - The request is signed over "(request-target) host date" with the local identity
    - Only 2xx inbox responses count as delivered

Design Decisions:
    - Stateless class (no queue, no retry): retry policy belongs to the federator
    - Target public key cached from the fetched actor, so replies can be verified without a refetch
"""

import json
import logging
from email.utils import formatdate
from urllib.parse import urlsplit

import httpx

from peerlink.core.domain_types import ACTIVITY_CONTENT_TYPE, DEFAULT_SIGNED_HEADERS
from peerlink.core.errors import DeliveryFailedError, DiscoveryError, PeerLinkError
from peerlink.infrastructure.discovery_client import DiscoveryClient
from peerlink.infrastructure.federation_http import FederationHttpClient
from peerlink.infrastructure.identity_store import IdentityStore

logger = logging.getLogger(__name__)


def _request_path(url: str) -> tuple[str, str]:
    """(host, path-with-query) of an inbox URL."""
    parts = urlsplit(url)
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return parts.netloc, path


class ActivityDelivery:
    """Performs single delivery attempts for the federator and send_direct."""

    def __init__(
        self,
        discovery: DiscoveryClient,
        identities: IdentityStore,
        http: FederationHttpClient,
        local_domain: str,
    ):
        self._discovery = discovery
        self._identities = identities
        self._http = http
        self._local_domain = local_domain

    async def deliver(self, target: str, activity: dict) -> dict:
        """Deliver activity to target's inbox; returns a result payload."""
        try:
            profile = await self._discovery.discover(target)
            actor_url = self._discovery.resolve_actor_url(profile, target)
            actor = await self._discovery.fetch_actor(actor_url)
        except DiscoveryError as e:
            raise DeliveryFailedError(target, e.message)

        inbox = actor.get("inbox")
        if not isinstance(inbox, str) or not inbox:
            raise DeliveryFailedError(target, "actor has no inbox")
        public_key = actor.get("publicKey")
        if isinstance(public_key, dict) and isinstance(public_key.get("publicKeyPem"), str):
            self._identities.remember_public_key(target, public_key["publicKeyPem"])

        body = json.dumps(activity, separators=(",", ":")).encode("utf-8")
        host, path = _request_path(inbox)
        headers = {
            "host": host,
            "date": formatdate(usegmt=True),
            "content-type": ACTIVITY_CONTENT_TYPE,
        }
        try:
            headers["signature"] = self._identities.sign_request(
                self._local_domain, "POST", path, headers, DEFAULT_SIGNED_HEADERS,
            )
        except PeerLinkError as e:
            raise DeliveryFailedError(target, f"signing failed: {e.message}")

        try:
            response = await self._http.post(inbox, content=body, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryFailedError(target, f"transport error: {e}")
        if not 200 <= response.status_code < 300:
            raise DeliveryFailedError(
                target, f"inbox returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(
            "Activity delivered",
            extra={"target": target, "status_code": response.status_code},
        )
        return {
            "target": target,
            "inbox": inbox,
            "status_code": response.status_code,
            "activity_id": activity.get("id"),
        }
