"""Bounded polling with exponential backoff, driven by tenacity."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Tuple

from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_exponential

Probe = Callable[[], Awaitable[Tuple[bool, Any]]]


def _not_done(outcome: Tuple[bool, Any]) -> bool:
    return not outcome[0]


async def wait_until(
    probe: Probe,
    *,
    timeout: float,
    initial_interval: float = 1.0,
    max_interval: float = 15.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> tuple[bool, Any]:
    """Call ``probe`` until it reports done or ``timeout`` seconds pass.

    ``probe`` returns ``(done, value)``. The result is ``(reached, last_value)``;
    running out of time is not an error, the caller decides what it means.
    The probe always runs at least once, and exceptions it raises propagate.
    """
    backoff = wait_exponential(multiplier=initial_interval, max=max_interval)

    def wait(retry_state) -> float:
        # Never sleep past the deadline.
        remaining = timeout - retry_state.seconds_since_start
        return max(0.0, min(backoff(retry_state), remaining))

    retrying = AsyncRetrying(
        sleep=sleep,
        retry=retry_if_result(_not_done),
        stop=stop_after_delay(timeout),
        wait=wait,
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    return await retrying(probe)
