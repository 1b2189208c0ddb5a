"""Backoff between worker-side job retries."""

from __future__ import annotations

import asyncio
import random

MAX_DELAY = 60.0


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, max_delay: float = MAX_DELAY
) -> float:
    """Delay before retry ``attempt``: exponential, capped, plus jitter."""
    delay = min(base ** attempt, max_delay)
    return delay + random.uniform(0, jitter)


async def wait_before_retry(attempt: int, max_delay: float = MAX_DELAY) -> float:
    """Sleep for the backoff of ``attempt`` and return the delay used."""
    delay = compute_backoff(attempt, max_delay=max_delay)
    await asyncio.sleep(delay)
    return delay
