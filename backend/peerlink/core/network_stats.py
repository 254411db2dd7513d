"""Network Stats — pure computation of the aggregated counters broadcast to observers.

Invariants:
    - All inputs are passed in (no IO, no clock reads except the caller-provided now)
    - total_instances counts known peers plus the local node
    - Returns a flat JSON-serializable dict; never raises

Design Decisions:
    - Pure function, not a coordinator method (ADR: coordinator owns state, stats are presentation)
"""

from datetime import datetime

from peerlink.core.network_health import NetworkHealth


def compute_network_stats(
    *,
    known_instances: int,
    health: NetworkHealth,
    started_at: float,
    now: float,
    last_discovery: datetime | None,
    messages_sent: int = 0,
    messages_failed: int = 0,
    messages_received: int = 0,
) -> dict:
    """Stats payload for stats_update events and GET /stats."""
    return {
        "total_instances": known_instances + 1,
        "healthy_instances": health.healthy_instances,
        "health_percentage": health.health_percentage,
        "network_status": health.status.value,
        "uptime_seconds": max(0, int(now - started_at)),
        "last_discovery": last_discovery.isoformat() if last_discovery else None,
        "last_health_check": health.last_check.isoformat(),
        "messages_sent": messages_sent,
        "messages_failed": messages_failed,
        "messages_received": messages_received,
    }
