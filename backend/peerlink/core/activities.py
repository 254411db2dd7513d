"""Activities — closed tagged-variant type over incoming activity kinds, plus outgoing builders.

Invariants:
    - parse_activity is total: every dict maps to exactly one variant, unknown types
      become UnknownActivity carrying the raw payload (accepted, never rejected)
    - Variants are frozen; `payload` is the original document, untouched
    - Outgoing activities always carry @context, id, type, actor, published

Design Decisions:
    - Explicit dict from wire type to variant class over getattr/string branching
      (ADR: every mapping visible in one place)
    - actor_domain derived once at parse time so handlers never re-parse URLs
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from peerlink.core.domain_types import ACTIVITYSTREAMS_CONTEXT, ActivityKind
from peerlink.core.peer_instance import PeerInstance, base_url, domain_from_url


@dataclass(frozen=True)
class _ActivityBase:
    actor: str | None
    actor_domain: str | None
    payload: dict


@dataclass(frozen=True)
class PresenceAnnounce(_ActivityBase):
    """A peer announcing it is online."""
    kind = ActivityKind.PRESENCE_ANNOUNCE


@dataclass(frozen=True)
class ConnectRequest(_ActivityBase):
    """A peer asking to connect."""
    kind = ActivityKind.CONNECT_REQUEST


@dataclass(frozen=True)
class HealthCheckPing(_ActivityBase):
    """Periodic liveness ping broadcast by a peer."""
    kind = ActivityKind.HEALTH_CHECK_PING


@dataclass(frozen=True)
class UnknownActivity(_ActivityBase):
    """Any unrecognized type — carries the raw payload."""
    type_name: str | None = None
    kind = None


Activity = PresenceAnnounce | ConnectRequest | HealthCheckPing | UnknownActivity

_VARIANTS: dict[str, type[_ActivityBase]] = {
    ActivityKind.PRESENCE_ANNOUNCE.value: PresenceAnnounce,
    ActivityKind.CONNECT_REQUEST.value: ConnectRequest,
    ActivityKind.HEALTH_CHECK_PING.value: HealthCheckPing,
}


def _actor_of(document: dict) -> tuple[str | None, str | None]:
    actor = document.get("actor")
    if isinstance(actor, dict):
        actor = actor.get("id")
    if not isinstance(actor, str):
        return None, None
    try:
        return actor, domain_from_url(actor)
    except ValueError:
        return actor, None


def parse_activity(document: dict) -> Activity:
    """Map an activity document to its variant."""
    actor, actor_domain = _actor_of(document)
    type_name = document.get("type")
    variant = _VARIANTS.get(type_name) if isinstance(type_name, str) else None
    if variant is None:
        return UnknownActivity(
            actor=actor, actor_domain=actor_domain, payload=document,
            type_name=type_name if isinstance(type_name, str) else None,
        )
    return variant(actor=actor, actor_domain=actor_domain, payload=document)


# ─── Outgoing Builders ───────────────────────────────────────────

def _envelope(local: PeerInstance, kind: ActivityKind, obj: dict, scheme: str) -> dict:
    return {
        "@context": ACTIVITYSTREAMS_CONTEXT,
        "id": f"{base_url(local.domain, scheme)}/activities/{uuid.uuid4()}",
        "type": kind.value,
        "actor": local.actor_url,
        "published": datetime.now(timezone.utc).isoformat(),
        "object": obj,
    }


def build_presence_activity(local: PeerInstance, scheme: str = "https") -> dict:
    """Self-description broadcast on start."""
    return _envelope(local, ActivityKind.PRESENCE_ANNOUNCE, {
        "type": "PeerPresence",
        "name": local.name,
        "summary": local.description,
        "capabilities": list(local.capabilities),
    }, scheme)


def build_health_ping_activity(local: PeerInstance, scheme: str = "https") -> dict:
    """Periodic liveness ping."""
    return _envelope(local, ActivityKind.HEALTH_CHECK_PING, {
        "type": "PeerStatus",
        "status": "healthy",
        "version": local.version,
        "capabilities": list(local.capabilities),
    }, scheme)


def build_connect_activity(
    local: PeerInstance, target_actor: str, scheme: str = "https",
) -> dict:
    """Connection request addressed to a peer actor."""
    return _envelope(local, ActivityKind.CONNECT_REQUEST, {
        "type": "PeerConnection",
        "target": target_actor,
    }, scheme)
