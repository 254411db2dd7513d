"""Instance Registry — concurrent-safe store of PeerInstance records keyed by domain.

Invariants:
    - domain uniquely identifies exactly one record
    - upsert always succeeds (insert or replace); records are never deleted
    - update_status on an absent domain raises InstanceNotFoundError and creates nothing (no lock either)
    - get/list hand out copies — a snapshot is never a live view
    - update_status publishes instance_status_changed after the write is applied

Design Decisions:
    - One asyncio.Lock per domain: writers to one domain are serialized, independent
      domains never block each other, readers take no lock (dict reads are atomic on the loop)
    - Injected object, not module state (ADR: test isolation — every test builds its own)
    - Last write wins for concurrent upserts of the same domain (idempotent snapshots)
    - list() defined last: the method name shadows the builtin inside the class body
"""

import asyncio
import logging
from collections import defaultdict

from peerlink.core.domain_types import EventType, InstanceStatus, normalize_domain
from peerlink.core.errors import InstanceNotFoundError
from peerlink.core.peer_instance import PeerInstance
from peerlink.core.repository_protocols import EventPublisher

logger = logging.getLogger(__name__)


class InstanceRegistry:
    """Single source of truth for PeerInstance records."""

    def __init__(self, events: EventPublisher | None = None):
        self._records: dict[str, PeerInstance] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._events = events

    async def upsert(self, record: PeerInstance) -> PeerInstance:
        """Insert or replace by domain key."""
        domain = normalize_domain(record.domain)
        async with self._locks[domain]:
            stored = record.copy()
            stored.domain = domain
            self._records[domain] = stored
        logger.debug("Registry upsert", extra={"domain": domain})
        return stored.copy()

    async def get(self, domain: str) -> PeerInstance:
        """Record for domain, or InstanceNotFoundError."""
        record = self._records.get(normalize_domain(domain))
        if record is None:
            raise InstanceNotFoundError(domain)
        return record.copy()

    def contains(self, domain: str) -> bool:
        return normalize_domain(domain) in self._records

    def domains(self) -> list[str]:
        return [d for d in self._records]

    async def update_status(
        self, domain: str, status: InstanceStatus,
    ) -> PeerInstance:
        """Set status + last_seen and publish instance_status_changed."""
        domain = normalize_domain(domain)
        if domain not in self._records:
            raise InstanceNotFoundError(domain)
        async with self._locks[domain]:
            current = self._records[domain]
            updated = current.with_status(status)
            self._records[domain] = updated
        if self._events is not None:
            self._events.publish(
                EventType.INSTANCE_STATUS_CHANGED.value, updated.to_dict(),
            )
        return updated.copy()

    async def list(self) -> list[PeerInstance]:
        """Point-in-time copy of all records."""
        return [r.copy() for r in tuple(self._records.values())]
