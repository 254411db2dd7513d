"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - Domain wraps str and is always lowercase — it is the registry key
    - All valid states encoded as Enums — no raw string matching
    - Wire constants (content types, paths, relation names) live here and nowhere else

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (ADR: events and API are JSON)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

Domain = NewType("Domain", str)
ActorUrl = NewType("ActorUrl", str)
KeyId = NewType("KeyId", str)


def normalize_domain(raw: str) -> Domain:
    """Lowercase, strip whitespace and any trailing dot."""
    return Domain(raw.strip().rstrip(".").lower())


# ─── Enums ───────────────────────────────────────────────────────

class InstanceStatus(str, Enum):
    """Peer reachability — changes only via health-check outcome."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class NetworkStatus(str, Enum):
    """Aggregate network classification, recomputed each health cycle."""
    INITIALIZING = "initializing"
    ISOLATED = "isolated"
    ALL_DOWN = "all_down"
    ALL_HEALTHY = "all_healthy"
    MOSTLY_HEALTHY = "mostly_healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class EventType(str, Enum):
    """Events published to observers (dashboard, SSE stream)."""
    INSTANCE_DISCOVERED = "instance_discovered"
    INSTANCE_STATUS_CHANGED = "instance_status_changed"
    HEALTH_UPDATE = "health_update"
    STATS_UPDATE = "stats_update"
    ACTIVITY_RECEIVED = "activity_received"
    ACTIVITY_DELIVERED = "activity_delivered"


class ActivityKind(str, Enum):
    """Recognized incoming activity types — the value is the wire `type` field."""
    PRESENCE_ANNOUNCE = "PeerAnnounce"
    CONNECT_REQUEST = "PeerConnect"
    HEALTH_CHECK_PING = "PeerHealthCheck"


# ─── Wire Constants ──────────────────────────────────────────────

ACTIVITY_CONTENT_TYPE = "application/activity+json"
JRD_CONTENT_TYPE = "application/jrd+json"
ACTIVITYSTREAMS_CONTEXT = "https://www.w3.org/ns/activitystreams"
SECURITY_CONTEXT = "https://w3id.org/security/v1"

WEBFINGER_PATH = "/.well-known/webfinger"
FEDERATION_PREFIX = "/api/federation"
ACTOR_PATH = f"{FEDERATION_PREFIX}/actor"
INBOX_PATH = f"{FEDERATION_PREFIX}/inbox"
OUTBOX_PATH = f"{FEDERATION_PREFIX}/outbox"
FOLLOWERS_PATH = f"{FEDERATION_PREFIX}/followers"
FOLLOWING_PATH = f"{FEDERATION_PREFIX}/following"
HEALTH_PATH = "/health"

SELF_REL = "self"
PROFILE_PAGE_REL = "http://webfinger.net/rel/profile-page"
KEY_FRAGMENT = "#main-key"
SIGNATURE_ALGORITHM = "rsa-sha256"
DEFAULT_SIGNED_HEADERS = ("(request-target)", "host", "date")
