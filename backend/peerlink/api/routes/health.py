"""Health Probe — the endpoint peers poll during health cycles.

Invariants:
    - GET /health returns 200 whenever the node is up; peers classify anything else as offline
    - Body summarizes the local view of the network (counts, percentage) and capabilities
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from peerlink.core.domain_types import HEALTH_PATH
from peerlink.services.runtime import FederationRuntime, get_runtime

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get(HEALTH_PATH, status_code=status.HTTP_200_OK)
async def health_check(rt: FederationRuntime = Depends(get_runtime)):
    """Liveness probe with a network summary."""
    stats = await rt.coordinator.get_network_stats()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": rt.settings.version,
        "network": {
            "total_instances": stats["total_instances"],
            "healthy_instances": stats["healthy_instances"],
            "health_percentage": stats["health_percentage"],
        },
        "capabilities": list(rt.settings.capabilities),
    }
