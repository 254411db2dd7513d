"""Federator — admission control, non-blocking federate, retry arithmetic, drop on exhaustion.

Invariants tested:
    - Never more than max_workers deliveries in flight
    - federate() returns the queued count before any delivery completes
    - A delivery that always fails is attempted max_retry_attempts + 1 times, then dropped
    - send_direct bypasses the queue and surfaces the failure to its caller
"""

import asyncio
from collections import Counter

import pytest

from peerlink.core.errors import DeliveryFailedError
from peerlink.core.peer_instance import PeerInstance
from peerlink.infrastructure.event_bus import EventBus
from peerlink.infrastructure.registry import InstanceRegistry
from peerlink.services.federator import Federator

ACTIVITY = {"id": "https://local.test/activities/1", "type": "PeerAnnounce"}


class FakeDeliverer:
    """Records attempts; fails targets a configurable number of times."""

    def __init__(self, failures: dict[str, int] | None = None, gate: asyncio.Event | None = None):
        self.failures = dict(failures or {})
        self.gate = gate
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0

    async def deliver(self, target: str, activity: dict) -> dict:
        self.calls.append(target)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            remaining = self.failures.get(target, 0)
            if remaining != 0:
                self.failures[target] = remaining - 1
                raise DeliveryFailedError(target, "inbox returned HTTP 500", status_code=500)
            return {"target": target, "status_code": 202}
        finally:
            self.in_flight -= 1


async def _federator(deliverer, registry=None, **kwargs):
    federator = Federator(
        deliverer, registry or InstanceRegistry(), "local.test", **kwargs,
    )
    await federator.start()
    return federator


async def _settle(rounds: int = 50) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def test_admission_control_bounds_in_flight_deliveries():
    gate = asyncio.Event()
    deliverer = FakeDeliverer(gate=gate)
    federator = await _federator(deliverer, max_workers=2)

    queued = await federator.federate(ACTIVITY, [f"peer{i}.test" for i in range(10)])
    await _settle()

    assert queued == 10
    assert deliverer.in_flight == 2
    assert federator.stats()["queued"] == 8
    assert federator.stats()["workers"] == 2

    gate.set()
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert deliverer.peak == 2
    assert len(deliverer.calls) == 10
    assert federator.sent == 10
    await federator.stop()


async def test_federate_does_not_wait_for_delivery():
    gate = asyncio.Event()
    deliverer = FakeDeliverer(gate=gate)
    federator = await _federator(deliverer)
    assert await federator.federate(ACTIVITY, ["a.test"]) == 1
    assert federator.sent == 0
    gate.set()
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert federator.sent == 1
    await federator.stop()


async def test_always_failing_target_is_retried_then_dropped():
    deliverer = FakeDeliverer(failures={"down.test": -1})
    federator = await _federator(deliverer, max_retry_attempts=3)

    await federator.federate(ACTIVITY, ["down.test"])
    await asyncio.wait_for(federator.wait_idle(), timeout=2)

    assert deliverer.calls == ["down.test"] * 4
    assert federator.failed == 1
    assert federator.retried == 3
    assert federator.sent == 0
    await federator.stop()


async def test_transient_failure_recovers_within_budget():
    deliverer = FakeDeliverer(failures={"flaky.test": 2})
    federator = await _federator(deliverer, max_retry_attempts=3)
    await federator.federate(ACTIVITY, ["flaky.test", "ok.test"])
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert Counter(deliverer.calls) == {"flaky.test": 3, "ok.test": 1}
    assert federator.sent == 2
    assert federator.failed == 0
    await federator.stop()


async def test_zero_retry_budget_drops_after_first_attempt():
    deliverer = FakeDeliverer(failures={"down.test": -1})
    federator = await _federator(deliverer, max_retry_attempts=0)
    await federator.federate(ACTIVITY, ["down.test"])
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert deliverer.calls == ["down.test"]
    assert federator.failed == 1
    await federator.stop()


async def test_backoff_parks_retries_until_due():
    deliverer = FakeDeliverer(failures={"flaky.test": 1})
    federator = await _federator(
        deliverer, max_retry_attempts=3, retry_base_delay_ms=20, retry_max_delay_ms=50,
    )
    await federator.federate(ACTIVITY, ["flaky.test"])
    await _settle()
    assert deliverer.calls == ["flaky.test"]
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert deliverer.calls == ["flaky.test", "flaky.test"]
    assert federator.sent == 1
    await federator.stop()


async def test_none_targets_means_all_known_peers_except_self():
    registry = InstanceRegistry()
    for domain in ("local.test", "a.test", "b.test"):
        await registry.upsert(PeerInstance(domain=domain, actor_url=f"https://{domain}/actor"))
    deliverer = FakeDeliverer()
    federator = await _federator(deliverer, registry=registry)

    assert await federator.broadcast(ACTIVITY) == 2
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert sorted(deliverer.calls) == ["a.test", "b.test"]
    await federator.stop()


async def test_explicit_targets_are_normalized_and_skip_self():
    deliverer = FakeDeliverer()
    federator = await _federator(deliverer)
    queued = await federator.federate(ACTIVITY, ["A.test", "a.test", "LOCAL.test"])
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert queued == 1
    assert deliverer.calls == ["a.test"]
    await federator.stop()


async def test_empty_network_queues_nothing():
    federator = await _federator(FakeDeliverer())
    assert await federator.broadcast(ACTIVITY) == 0
    await asyncio.wait_for(federator.wait_idle(), timeout=1)
    await federator.stop()


async def test_success_publishes_activity_delivered():
    bus = EventBus()
    federator = Federator(FakeDeliverer(), InstanceRegistry(), "local.test", events=bus)
    await federator.start()
    async with bus.subscribe() as queue:
        await federator.federate(ACTIVITY, ["a.test"])
        await asyncio.wait_for(federator.wait_idle(), timeout=2)
        event = queue.get_nowait()
    assert event["type"] == "activity_delivered"
    assert event["data"]["target"] == "a.test"
    assert event["data"]["activity_id"] == ACTIVITY["id"]
    assert event["data"]["attempts"] == 1
    await federator.stop()


async def test_send_direct_returns_result():
    deliverer = FakeDeliverer()
    federator = await _federator(deliverer)
    result = await federator.send_direct("A.Test", ACTIVITY)
    assert result["target"] == "a.test"
    assert federator.stats()["queued"] == 0
    await federator.stop()


async def test_send_direct_surfaces_failure_without_retry():
    deliverer = FakeDeliverer(failures={"down.test": -1})
    federator = await _federator(deliverer, max_retry_attempts=3)
    with pytest.raises(DeliveryFailedError):
        await federator.send_direct("down.test", ACTIVITY)
    assert deliverer.calls == ["down.test"]
    await federator.stop()


async def test_slow_delivery_times_out_as_failure():
    deliverer = FakeDeliverer(gate=asyncio.Event())
    federator = await _federator(
        deliverer, max_retry_attempts=1, attempt_timeout_seconds=0.05,
    )
    await federator.federate(ACTIVITY, ["slow.test"])
    await asyncio.wait_for(federator.wait_idle(), timeout=2)
    assert deliverer.calls == ["slow.test", "slow.test"]
    assert federator.failed == 1
    await federator.stop()
