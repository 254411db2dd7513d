"""Peer Instance — identity/status record of a federation peer, plus actor document mapping.

Invariants:
    - domain is the unique key; it is derived from the actor `id` host when parsing
    - status changes only through with_status() (driven by health-check outcome)
    - Records are never deleted — stale peers persist as offline
    - parse_actor_document never trusts a document without an `id` URL

Design Decisions:
    - Dataclass, not ORM (ADR: memory-resident registry, rebuilt on boot)
    - Immutable-by-convention: with_status() returns a copy so registry snapshots stay stable
    - build_actor_document is pure — routes and tests render the same document
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from urllib.parse import urlsplit

from peerlink.core.domain_types import (
    ACTIVITYSTREAMS_CONTEXT,
    ACTOR_PATH,
    FOLLOWERS_PATH,
    FOLLOWING_PATH,
    INBOX_PATH,
    KEY_FRAGMENT,
    OUTBOX_PATH,
    SECURITY_CONTEXT,
    Domain,
    InstanceStatus,
    normalize_domain,
)
from peerlink.core.errors import ActorFetchFailedError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PeerInstance:
    """Known federation peer (or the local self-record)."""
    domain: Domain
    actor_url: str
    public_key: str | None = None
    name: str = "Unknown peer"
    description: str = ""
    version: str = "unknown"
    capabilities: list[str] = field(default_factory=list)
    status: InstanceStatus = InstanceStatus.UNKNOWN
    last_seen: datetime = field(default_factory=_utcnow)
    created_at: datetime = field(default_factory=_utcnow)

    def with_status(
        self, status: InstanceStatus, seen_at: datetime | None = None,
    ) -> "PeerInstance":
        """Copy with new status and refreshed last_seen."""
        return replace(self, status=status, last_seen=seen_at or _utcnow())

    def copy(self) -> "PeerInstance":
        return replace(self, capabilities=list(self.capabilities))

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "actor_url": self.actor_url,
            "public_key": self.public_key,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "capabilities": list(self.capabilities),
            "status": self.status.value,
            "last_seen": self.last_seen.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


def base_url(domain: str, scheme: str = "https") -> str:
    return f"{scheme}://{domain}"


def actor_url_for(domain: str, scheme: str = "https") -> str:
    return f"{base_url(domain, scheme)}{ACTOR_PATH}"


def domain_from_url(url: str) -> Domain:
    """Host (with port, when present) of a URL — the peer's registry key."""
    netloc = urlsplit(url).netloc
    if not netloc:
        raise ValueError(f"URL has no host: {url!r}")
    return normalize_domain(netloc.rsplit("@", 1)[-1])


def build_local_instance(
    domain: str,
    name: str,
    description: str,
    version: str,
    capabilities: list[str],
    public_key: str | None = None,
    scheme: str = "https",
) -> PeerInstance:
    """Self-record registered at boot — always online."""
    domain = normalize_domain(domain)
    now = _utcnow()
    return PeerInstance(
        domain=domain,
        actor_url=actor_url_for(domain, scheme),
        public_key=public_key,
        name=name,
        description=description,
        version=version,
        capabilities=list(capabilities),
        status=InstanceStatus.ONLINE,
        last_seen=now,
        created_at=now,
    )


def parse_actor_document(document: dict) -> PeerInstance:
    """Build a PeerInstance from a fetched actor document (status online).

    Raises ActorFetchFailedError when the document is not an object or lacks
    a usable `id` URL.
    """
    if not isinstance(document, dict):
        raise ActorFetchFailedError("<unknown>", "actor document is not an object")
    actor_id = document.get("id")
    if not isinstance(actor_id, str):
        raise ActorFetchFailedError("<unknown>", "actor document has no id")
    try:
        domain = domain_from_url(actor_id)
    except ValueError as e:
        raise ActorFetchFailedError(actor_id, str(e))

    public_key = document.get("publicKey")
    pem = public_key.get("publicKeyPem") if isinstance(public_key, dict) else None
    capabilities = document.get("capabilities") or []
    now = _utcnow()
    return PeerInstance(
        domain=domain,
        actor_url=actor_id,
        public_key=pem,
        name=document.get("name") or "Unknown peer",
        description=document.get("summary") or "",
        version=document.get("version") or "unknown",
        capabilities=[str(c) for c in capabilities if isinstance(c, str)],
        status=InstanceStatus.ONLINE,
        last_seen=now,
        created_at=now,
    )


def build_actor_document(instance: PeerInstance, scheme: str = "https") -> dict:
    """Actor document served at /api/federation/actor."""
    root = base_url(instance.domain, scheme)
    return {
        "@context": [ACTIVITYSTREAMS_CONTEXT, SECURITY_CONTEXT],
        "id": instance.actor_url,
        "type": "Service",
        "preferredUsername": "peerlink",
        "name": instance.name,
        "summary": instance.description,
        "url": f"{root}/",
        "inbox": f"{root}{INBOX_PATH}",
        "outbox": f"{root}{OUTBOX_PATH}",
        "followers": f"{root}{FOLLOWERS_PATH}",
        "following": f"{root}{FOLLOWING_PATH}",
        "publicKey": {
            "id": f"{instance.actor_url}{KEY_FRAGMENT}",
            "owner": instance.actor_url,
            "publicKeyPem": instance.public_key,
        },
        "capabilities": list(instance.capabilities),
        "version": instance.version,
        "endpoints": {"sharedInbox": f"{root}{INBOX_PATH}"},
    }
