"""Inbox Processor — verify, classify and dispatch inbound federated activities.

Invariants:
    - Nothing is dispatched before the HTTP signature verifies against the signer's key
    - The signer must be the activity's actor domain when the actor is a URL
    - Every verified activity is accepted, including unknown types (logged, not rejected)
    - Dispatch is a closed match over the activity variants in core/activities.py
"""

import logging
from collections.abc import Mapping

from peerlink.core.activities import (
    Activity,
    ConnectRequest,
    HealthCheckPing,
    PresenceAnnounce,
    UnknownActivity,
    parse_activity,
)
from peerlink.core.domain_types import EventType, InstanceStatus
from peerlink.core.errors import InstanceNotFoundError, InvalidSignatureError
from peerlink.core.repository_protocols import EventPublisher
from peerlink.infrastructure.identity_store import IdentityStore
from peerlink.infrastructure.registry import InstanceRegistry
from peerlink.services.coordinator import NetworkCoordinator

logger = logging.getLogger(__name__)


class InboxProcessor:

    def __init__(
        self,
        identities: IdentityStore,
        registry: InstanceRegistry,
        coordinator: NetworkCoordinator,
        events: EventPublisher,
    ):
        self._identities = identities
        self._registry = registry
        self._coordinator = coordinator
        self._events = events

    async def receive(
        self,
        document: dict,
        signature_header: str | None,
        method: str,
        path: str,
        headers: Mapping[str, str],
    ) -> Activity:
        """Verify and dispatch one inbox POST; returns the parsed activity.

        Raises VerificationError subclasses when the request cannot be trusted.
        """
        signer = await self._identities.verify_request(
            signature_header, method, path, headers,
        )
        activity = parse_activity(document)
        if activity.actor_domain is not None and activity.actor_domain != signer:
            raise InvalidSignatureError(
                f"Signed by {signer} but actor is on {activity.actor_domain}",
            )

        await self._dispatch(activity, signer)
        self._coordinator.record_activity_received()
        self._events.publish(EventType.ACTIVITY_RECEIVED.value, {
            "activity_id": document.get("id"),
            "activity_type": document.get("type"),
            "actor": activity.actor,
            "from": signer,
        })
        return activity

    async def _dispatch(self, activity: Activity, signer: str) -> None:
        match activity:
            case PresenceAnnounce():
                logger.info("Peer announced presence", extra={"domain": signer})
                if not self._registry.contains(signer):
                    await self._coordinator.discover_instance(signer)
            case HealthCheckPing():
                logger.debug("Health ping received", extra={"domain": signer})
                await self._mark_online(signer)
            case ConnectRequest():
                logger.info("Connection request received", extra={"domain": signer})
                if not self._registry.contains(signer):
                    await self._coordinator.discover_instance(signer)
            case UnknownActivity(type_name=type_name):
                logger.info(
                    f"Accepted activity of unhandled type {type_name!r}",
                    extra={"domain": signer},
                )

    async def _mark_online(self, domain: str) -> None:
        try:
            record = await self._registry.get(domain)
        except InstanceNotFoundError:
            return
        if record.status != InstanceStatus.ONLINE:
            await self._registry.update_status(domain, InstanceStatus.ONLINE)
