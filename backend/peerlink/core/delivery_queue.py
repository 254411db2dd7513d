"""Delivery Queue Rules — the transient work item and its pure retry/backoff arithmetic.

Invariants:
    - A Delivery starts with attempts == 0
    - A failed Delivery with attempts < max_retry_attempts is retried with attempts + 1
    - A failed Delivery with attempts >= max_retry_attempts is dropped (plan_retry → None)
    - retry_delay_ms is 0 when base_delay_ms is 0 (immediate re-enqueue)

Design Decisions:
    - Pure functions over federator methods: retry policy testable without an event loop
    - Backoff mirrors the exponential + ±25% jitter used for outbound API retries,
      capped at max_delay_ms
"""

import random
import time
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class Delivery:
    """One activity bound for one target domain."""
    activity: dict
    target: str
    attempts: int = 0
    queued_at: float = field(default_factory=time.time)


def plan_retry(delivery: Delivery, max_retry_attempts: int) -> Delivery | None:
    """Next attempt for a failed delivery, or None when the budget is exhausted."""
    if delivery.attempts < max_retry_attempts:
        return replace(delivery, attempts=delivery.attempts + 1)
    return None


def retry_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int) -> int:
    """Exponential backoff with ±25% jitter; 0 disables backoff."""
    if base_delay_ms <= 0:
        return 0
    delay = min(max_delay_ms, (2 ** max(0, attempt - 1)) * base_delay_ms)
    return int(delay * random.uniform(0.75, 1.25))  # nosec B311
