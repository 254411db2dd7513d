"""Network Dashboard API — read network state, trigger cycles, send activities, stream events.

Invariants:
    - Reads go through the coordinator (never the registry directly) so they see applied state
    - Trigger endpoints (discover, health-check, activities) answer 202 without waiting
    - POST /activities/direct waits for the single delivery and surfaces its failure (502)
    - The event stream unregisters its subscriber when the client disconnects

Design Decisions:
    - SSE over WebSocket: one-directional server push, plain HTTP, proxy friendly
    - Keepalive comments keep idle streams open through proxies
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from peerlink.schemas.network import (
    DirectSendRequest,
    DiscoverRequest,
    QueuedResponse,
    SendActivityRequest,
)
from peerlink.services.runtime import FederationRuntime, get_runtime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/network", tags=["network"])

# ADR: SSE headers prevent proxy/browser buffering of streamed events.
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

KEEPALIVE_SECONDS = 15.0


@router.get("/instances")
async def list_instances(rt: FederationRuntime = Depends(get_runtime)):
    """Known peers (local node excluded)."""
    peers = await rt.coordinator.get_known_instances()
    return {"instances": [p.to_dict() for p in peers], "count": len(peers)}


@router.get("/health")
async def network_health(rt: FederationRuntime = Depends(get_runtime)):
    health = await rt.coordinator.get_network_health()
    return health.to_dict()


@router.get("/topology")
async def network_topology(rt: FederationRuntime = Depends(get_runtime)):
    topology = await rt.coordinator.get_network_topology()
    return topology.to_dict()


@router.get("/stats")
async def network_stats(rt: FederationRuntime = Depends(get_runtime)):
    stats = await rt.coordinator.get_network_stats()
    return {**stats, "delivery": rt.federator.stats()}


@router.post("/discover", status_code=status.HTTP_202_ACCEPTED)
async def discover(body: DiscoverRequest, rt: FederationRuntime = Depends(get_runtime)):
    await rt.coordinator.discover_instance(body.domain)
    return {"status": "discovering", "domain": body.domain}


@router.post("/health-check", status_code=status.HTTP_202_ACCEPTED)
async def health_check(rt: FederationRuntime = Depends(get_runtime)):
    await rt.coordinator.force_health_check()
    return {"status": "checking"}


@router.post(
    "/activities",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=QueuedResponse,
)
async def send_activity(
    body: SendActivityRequest, rt: FederationRuntime = Depends(get_runtime),
):
    """Queue an activity for the given targets, or for every known peer."""
    queued = await rt.federator.federate(body.activity, body.targets)
    return QueuedResponse(queued=queued)


@router.post("/activities/direct")
async def send_activity_direct(
    body: DirectSendRequest, rt: FederationRuntime = Depends(get_runtime),
):
    """Deliver to one target now; DeliveryFailedError maps to 502."""
    result = await rt.federator.send_direct(body.target, body.activity)
    return {"status": "delivered", **result}


@router.get("/events")
async def stream_events(rt: FederationRuntime = Depends(get_runtime)):
    """SSE stream of network events."""

    async def event_generator():
        try:
            async with rt.events.subscribe() as queue:
                health = await rt.coordinator.get_network_health()
                yield _sse_line({"type": "health_update", "data": health.to_dict()})
                while True:
                    try:
                        event = await asyncio.wait_for(
                            queue.get(), timeout=KEEPALIVE_SECONDS,
                        )
                    except asyncio.TimeoutError:
                        yield ": keepalive\n\n"
                        continue
                    yield _sse_line(event)
        except asyncio.CancelledError:
            logger.info("Client disconnected from event stream")
            return

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


def _sse_line(event: dict) -> str:
    """Format event as SSE data line."""
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"
