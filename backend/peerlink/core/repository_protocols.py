"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection (runtime container)

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: boundary methods are async because implementations do IO
"""

from typing import Protocol

from peerlink.core.peer_instance import PeerInstance


class EventPublisher(Protocol):
    """Contract for fan-out of published events — implemented by EventBus."""
    def publish(self, event_type: str, data: dict) -> None: ...


class ActivityDeliverer(Protocol):
    """Contract for one delivery attempt — implemented by services/delivery.py."""
    async def deliver(self, target: str, activity: dict) -> dict: ...


class PeerExchangeStrategy(Protocol):
    """Contract for learning candidate peer domains from the known ones."""
    async def candidate_domains(self, known: list[PeerInstance]) -> list[str]: ...
