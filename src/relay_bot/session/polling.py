"""
Cancellable polling.

poll_until() repeatedly fetches a value until a predicate accepts it. It is
unbounded by default, which is what waiting on an external action such as a
faucet needs. Cancelling the awaiting task interrupts the sleep and leaves
nothing scheduled behind.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(Exception):
    """Raised when a bounded poll runs out of attempts."""

    def __init__(self, attempts: int, last_value: object = None):
        self.attempts = attempts
        self.last_value = last_value
        super().__init__(f"Condition not met after {attempts} attempts (last value: {last_value})")


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    interval: float,
    max_attempts: Optional[int] = None,
    on_tick: Optional[Callable[[int, T], None]] = None,
) -> T:
    """
    Fetch until predicate(value) is true and return that value.

    Args:
        fetch: Coroutine function producing a fresh reading
        predicate: Acceptance test for a reading
        interval: Seconds to sleep between unaccepted readings
        max_attempts: Give up after this many fetches (None = never)
        on_tick: Called with (attempt, value) for every rejected reading

    Returns:
        The first accepted reading

    Raises:
        PollTimeoutError: If max_attempts readings were all rejected
        asyncio.CancelledError: If the awaiting task is cancelled
    """
    if interval < 0:
        raise ValueError(f"Invalid interval: {interval}")
    if max_attempts is not None and max_attempts < 1:
        raise ValueError(f"Invalid max_attempts: {max_attempts}")

    attempt = 0
    while True:
        attempt += 1
        value = await fetch()
        if predicate(value):
            return value

        if on_tick:
            on_tick(attempt, value)

        if max_attempts is not None and attempt >= max_attempts:
            raise PollTimeoutError(attempt, value)

        await asyncio.sleep(interval)
