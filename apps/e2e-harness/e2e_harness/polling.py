"""Bounded polling used by every wait in the harness."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from playwright.async_api import Error as PlaywrightError

T = TypeVar("T")


@dataclass
class PollOutcome(Generic[T]):
    """Result of a polling loop: whether the condition held and the last sample."""

    ok: bool
    value: Optional[T]
    attempts: int
    elapsed_ms: float
    last_error: Optional[str] = None


async def poll_until(
    sample: Callable[[], Awaitable[T]],
    accept: Callable[[T], bool],
    *,
    timeout_ms: int,
    interval_ms: int = 100,
) -> PollOutcome[T]:
    """
    Sample until ``accept`` holds or ``timeout_ms`` elapses.

    The first sample is always taken, even with a zero bound. Browser errors raised while
    sampling (detached nodes, in-flight navigations) count as "not yet".
    """
    if timeout_ms < 0:
        raise ValueError("timeout_ms must be >= 0")
    deadline = time.monotonic() + timeout_ms / 1000
    started = time.monotonic()
    attempts = 0
    value: Optional[T] = None
    last_error: Optional[str] = None

    while True:
        attempts += 1
        try:
            value = await sample()
            last_error = None
            if accept(value):
                return PollOutcome(True, value, attempts, _since(started))
        except PlaywrightError as exc:
            last_error = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return PollOutcome(False, value, attempts, _since(started), last_error)
        await asyncio.sleep(min(interval_ms / 1000, remaining))


def _since(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 3)
