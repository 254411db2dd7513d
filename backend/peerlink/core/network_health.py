"""Network Health — pure classification of aggregate peer health.

Invariants:
    - classify_network_status is a deterministic function of (healthy, total)
    - Thresholds are evaluated in fixed order and inclusive at the boundary:
      0 total → isolated; 0 healthy → all_down; healthy == total → all_healthy;
      ratio >= 0.8 → mostly_healthy; ratio >= 0.5 → degraded; else critical
    - health_percentage is 100.0 for an empty network (nothing is unhealthy)
    - NetworkHealth is never mutated — each cycle produces a new value

Design Decisions:
    - Frozen dataclass: the coordinator swaps the whole value, readers get consistent snapshots
    - Integer comparison for the ratio thresholds (healthy * 10 >= total * 8) so exact
      boundaries never fall on the wrong side of float rounding
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from peerlink.core.domain_types import InstanceStatus, NetworkStatus


def classify_network_status(healthy: int, total: int) -> NetworkStatus:
    if total == 0:
        return NetworkStatus.ISOLATED
    if healthy == 0:
        return NetworkStatus.ALL_DOWN
    if healthy == total:
        return NetworkStatus.ALL_HEALTHY
    if healthy * 10 >= total * 8:
        return NetworkStatus.MOSTLY_HEALTHY
    if healthy * 10 >= total * 5:
        return NetworkStatus.DEGRADED
    return NetworkStatus.CRITICAL


@dataclass(frozen=True)
class NetworkHealth:
    """Derived aggregate health, recomputed each health cycle."""
    status: NetworkStatus
    healthy_instances: int = 0
    total_instances: int = 0
    health_percentage: float = 0.0
    last_check: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "healthy_instances": self.healthy_instances,
            "total_instances": self.total_instances,
            "health_percentage": self.health_percentage,
            "last_check": self.last_check.isoformat(),
        }


def initial_health() -> NetworkHealth:
    """Value held before the first cycle completes."""
    return NetworkHealth(status=NetworkStatus.INITIALIZING)


def compute_network_health(
    statuses: Iterable[InstanceStatus], checked_at: datetime | None = None,
) -> NetworkHealth:
    """NetworkHealth from one status per known peer."""
    statuses = list(statuses)
    total = len(statuses)
    healthy = sum(1 for s in statuses if s == InstanceStatus.ONLINE)
    percentage = healthy / total * 100 if total else 100.0
    return NetworkHealth(
        status=classify_network_status(healthy, total),
        healthy_instances=healthy,
        total_instances=total,
        health_percentage=round(percentage, 2),
        last_check=checked_at or datetime.now(timezone.utc),
    )
