"""Bounded-retry, bounded-wait resolution.

:func:`resolve_with_policy` races each attempt against a timeout. A timed-out
attempt is not cancelled; it keeps running in the background and its result
is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

# Attempts that outlived their timeout. Kept referenced until they finish.
_abandoned: set[asyncio.Future] = set()


def _forget(task: asyncio.Future) -> None:
    _abandoned.discard(task)
    if not task.cancelled() and task.exception() is not None:
        log.debug("Abandoned attempt failed late: %r", task.exception())


def _abandon(task: asyncio.Future) -> None:
    _abandoned.add(task)
    task.add_done_callback(_forget)


async def resolve_with_policy(
    attempt: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    timeout: float,
    delay: float,
    fallback: Callable[[], T],
) -> T:
    """Run *attempt* up to ``max_retries + 1`` times.

    Each attempt may take at most *timeout* seconds; failed or timed-out
    attempts are followed by a *delay* pause before the next one. Once all
    attempts are spent the result of *fallback* is returned, so the call
    never raises for attempt failures.
    """
    attempts = max_retries + 1
    for number in range(1, attempts + 1):
        task = asyncio.ensure_future(attempt())
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            log.warning("Attempt %d/%d timed out after %.1fs", number, attempts, timeout)
            _abandon(task)
        except asyncio.CancelledError:
            _abandon(task)
            raise
        except Exception as exc:
            log.warning("Attempt %d/%d failed: %s", number, attempts, exc)
        if number < attempts:
            await asyncio.sleep(delay)

    log.warning("All %d attempts failed, using fallback", attempts)
    return fallback()
