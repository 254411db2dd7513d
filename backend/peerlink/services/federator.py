"""Federator — FIFO delivery queue drained by a bounded pool of async delivery workers.

Invariants:
    - At most max_workers delivery attempts are in flight at any moment, regardless of queue size
    - federate()/broadcast() never wait for delivery — they enqueue and return the queued count
    - send_direct() bypasses the queue and returns (or raises) the outcome to its caller only
    - A failed delivery with attempts < max_retry_attempts is re-enqueued at the tail with
      attempts + 1; otherwise it is dropped and logged — failures never reach the enqueuer
    - All queue/worker state is mutated only by the mailbox loop; worker tasks report
      completion by posting a message, never by touching state

Design Decisions:
    - Mailbox actor (asyncio.Queue) over locks: serialization without manual mutexes
    - Retry is immediate by default (retry_base_delay_ms=0); opt-in exponential backoff parks
      the retry in a timer task that posts it back when due
    - targets=None means "all known peers", resolved against the registry at call time
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from peerlink.core.delivery_queue import Delivery, plan_retry, retry_delay_ms
from peerlink.core.domain_types import EventType, normalize_domain
from peerlink.core.errors import DeliveryFailedError, PeerLinkError
from peerlink.core.repository_protocols import ActivityDeliverer, EventPublisher
from peerlink.infrastructure.registry import InstanceRegistry

logger = logging.getLogger(__name__)


# ─── Mailbox Messages ────────────────────────────────────────────

@dataclass(frozen=True)
class _Enqueue:
    deliveries: tuple[Delivery, ...]
    from_backoff: bool = False


@dataclass(frozen=True)
class _Completed:
    delivery: Delivery
    result: dict | None = None
    error: str | None = None


class Federator:
    """Delivery engine: queue, bounded workers, retry, completion reporting."""

    def __init__(
        self,
        deliverer: ActivityDeliverer,
        registry: InstanceRegistry,
        local_domain: str,
        events: EventPublisher | None = None,
        max_workers: int = 10,
        max_retry_attempts: int = 3,
        retry_base_delay_ms: int = 0,
        retry_max_delay_ms: int = 60_000,
        attempt_timeout_seconds: float = 15.0,
    ):
        self._deliverer = deliverer
        self._registry = registry
        self._local_domain = normalize_domain(local_domain)
        self._events = events
        self.max_workers = max_workers
        self.max_retry_attempts = max_retry_attempts
        self.retry_base_delay_ms = retry_base_delay_ms
        self.retry_max_delay_ms = retry_max_delay_ms
        self.attempt_timeout_seconds = attempt_timeout_seconds

        self._queue: deque[Delivery] = deque()
        self._workers = 0
        self._pending_backoff = 0
        self._mailbox: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()

        self.sent = 0
        self.failed = 0
        self.retried = 0
        self.peak_workers = 0

    # ─── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._run(), name="federator")
            logger.info("Federator started", extra={"workers": self.max_workers})

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Federator stopped", extra={"queued": len(self._queue)})

    async def wait_idle(self) -> None:
        """Wait until queue, workers and parked retries are all empty."""
        await self._idle.wait()

    # ─── Public API ──────────────────────────────────────────────

    async def federate(self, activity: dict, targets: list[str] | None = None) -> int:
        """Queue one delivery per target (None = all known peers); returns queued count."""
        domains = await self._resolve_targets(targets)
        if not domains:
            return 0
        self._idle.clear()
        self._mailbox.put_nowait(_Enqueue(tuple(
            Delivery(activity=activity, target=d) for d in domains
        )))
        return len(domains)

    async def broadcast(self, activity: dict) -> int:
        return await self.federate(activity, None)

    async def send_direct(self, target: str, activity: dict) -> dict:
        """Deliver synchronously, bypassing the queue; raises DeliveryFailedError."""
        target = normalize_domain(target)
        try:
            return await asyncio.wait_for(
                self._deliverer.deliver(target, activity),
                timeout=self.attempt_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise DeliveryFailedError(target, "delivery timed out")

    def stats(self) -> dict:
        return {
            "queued": len(self._queue),
            "workers": self._workers,
            "max_workers": self.max_workers,
            "sent": self.sent,
            "failed": self.failed,
            "retried": self.retried,
            "peak_workers": self.peak_workers,
        }

    async def _resolve_targets(self, targets: list[str] | None) -> list[str]:
        if targets is None:
            return [
                p.domain for p in await self._registry.list()
                if p.domain != self._local_domain
            ]
        seen: list[str] = []
        for raw in targets:
            domain = normalize_domain(raw)
            if domain == self._local_domain:
                logger.warning("Skipping delivery to self", extra={"target": domain})
            elif domain and domain not in seen:
                seen.append(domain)
        return seen

    # ─── Mailbox Loop ────────────────────────────────────────────

    async def _run(self) -> None:
        while True:
            message = await self._mailbox.get()
            try:
                self._handle(message)
            except Exception as e:
                logger.error(f"Federator failed to handle {message!r}: {e}", exc_info=True)
            self._drain()
            self._update_idle()

    def _handle(self, message) -> None:
        match message:
            case _Enqueue(deliveries=deliveries, from_backoff=from_backoff):
                if from_backoff:
                    self._pending_backoff -= len(deliveries)
                self._queue.extend(deliveries)
            case _Completed(delivery=delivery, result=result, error=error):
                self._workers -= 1
                if error is None:
                    self._on_success(delivery, result or {})
                else:
                    self._on_failure(delivery, error)

    def _drain(self) -> None:
        while self._workers < self.max_workers and self._queue:
            delivery = self._queue.popleft()
            self._workers += 1
            self.peak_workers = max(self.peak_workers, self._workers)
            task = asyncio.create_task(self._attempt(delivery))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _update_idle(self) -> None:
        if (not self._queue and self._workers == 0
                and self._pending_backoff == 0 and self._mailbox.empty()):
            self._idle.set()
        else:
            self._idle.clear()

    async def _attempt(self, delivery: Delivery) -> None:
        """One delivery attempt; the outcome is always posted back to the mailbox."""
        try:
            result = await asyncio.wait_for(
                self._deliverer.deliver(delivery.target, delivery.activity),
                timeout=self.attempt_timeout_seconds,
            )
            outcome = _Completed(delivery, result=result)
        except asyncio.TimeoutError:
            outcome = _Completed(delivery, error="delivery timed out")
        except PeerLinkError as e:
            outcome = _Completed(delivery, error=e.message)
        except Exception as e:
            logger.error(
                f"Unexpected delivery error: {e}", exc_info=True,
                extra={"target": delivery.target},
            )
            outcome = _Completed(delivery, error=str(e) or type(e).__name__)
        self._mailbox.put_nowait(outcome)

    # ─── Outcomes ────────────────────────────────────────────────

    def _on_success(self, delivery: Delivery, result: dict) -> None:
        self.sent += 1
        if self._events is not None:
            self._events.publish(EventType.ACTIVITY_DELIVERED.value, {
                "target": delivery.target,
                "attempts": delivery.attempts + 1,
                "activity_id": delivery.activity.get("id"),
                "activity_type": delivery.activity.get("type"),
                "status_code": result.get("status_code"),
            })

    def _on_failure(self, delivery: Delivery, error: str) -> None:
        retry = plan_retry(delivery, self.max_retry_attempts)
        if retry is None:
            self.failed += 1
            logger.error(
                f"Delivery dropped after {delivery.attempts + 1} attempt(s): {error}",
                extra={"target": delivery.target, "attempt": delivery.attempts,
                       "error_code": "DELIVERY_DROPPED"},
            )
            return

        self.retried += 1
        delay = retry_delay_ms(
            retry.attempts, self.retry_base_delay_ms, self.retry_max_delay_ms,
        )
        logger.warning(
            f"Delivery failed, retrying (attempt {retry.attempts}): {error}",
            extra={"target": delivery.target, "attempt": retry.attempts},
        )
        if delay == 0:
            self._queue.append(retry)
            return
        self._pending_backoff += 1
        task = asyncio.create_task(self._requeue_after(retry, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _requeue_after(self, delivery: Delivery, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        self._mailbox.put_nowait(_Enqueue((delivery,), from_backoff=True))
