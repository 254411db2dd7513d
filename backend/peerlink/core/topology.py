"""Topology — derived node/edge graph of the local node and its known peers.

Invariants:
    - Local node is always the first node; every known peer gets exactly one node
    - Edges run from the local domain to each known peer (star topology)
    - Pure function of (local, peers) — recomputed on every membership or status change

Design Decisions:
    - Deterministic circular layout hint instead of random coordinates: stable rendering
      across recomputes, testable without seeding (ADR: visualization owns final layout)
"""

import math
from dataclasses import dataclass, field

from peerlink.core.peer_instance import PeerInstance

_CENTER_X, _CENTER_Y, _RADIUS = 500, 400, 300


@dataclass(frozen=True)
class TopologyNode:
    id: str
    name: str
    status: str
    capabilities: tuple[str, ...]
    x: int
    y: int


@dataclass(frozen=True)
class TopologyEdge:
    source: str
    target: str
    status: str = "connected"


@dataclass(frozen=True)
class TopologyGraph:
    nodes: tuple[TopologyNode, ...] = field(default_factory=tuple)
    edges: tuple[TopologyEdge, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "nodes": [
                {
                    "id": n.id, "name": n.name, "status": n.status,
                    "capabilities": list(n.capabilities), "x": n.x, "y": n.y,
                }
                for n in self.nodes
            ],
            "edges": [
                {"from": e.source, "to": e.target, "status": e.status}
                for e in self.edges
            ],
        }


def _node(instance: PeerInstance, x: float, y: float) -> TopologyNode:
    return TopologyNode(
        id=instance.domain,
        name=instance.name,
        status=instance.status.value,
        capabilities=tuple(instance.capabilities),
        x=round(x),
        y=round(y),
    )


def build_topology(local: PeerInstance, peers: list[PeerInstance]) -> TopologyGraph:
    """Star graph: local node centered, peers on a circle sorted by domain."""
    ordered = sorted(
        (p for p in peers if p.domain != local.domain), key=lambda p: p.domain,
    )
    nodes = [_node(local, _CENTER_X, _CENTER_Y)]
    count = len(ordered)
    for i, peer in enumerate(ordered):
        angle = 2 * math.pi * i / count
        nodes.append(_node(
            peer,
            _CENTER_X + _RADIUS * math.cos(angle),
            _CENTER_Y + _RADIUS * math.sin(angle),
        ))
    edges = [TopologyEdge(source=local.domain, target=p.domain) for p in ordered]
    return TopologyGraph(nodes=tuple(nodes), edges=tuple(edges))
