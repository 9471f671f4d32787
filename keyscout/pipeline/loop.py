"""
Periodic driver shared by the scraper and the verifier.

Runs one cycle, sleeps a fixed delay, repeats until the stop event is set.
A failing cycle is logged and retried after a shorter recovery delay; it
never ends the loop. The sleep waits on the stop event, so a stop request
is honoured immediately.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


async def sleep_or_stop(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``. Returns True if ``stop`` was set meanwhile."""
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


async def run_periodic(
    name: str,
    cycle: Callable[[], Awaitable[Any]],
    *,
    delay: float,
    stop: asyncio.Event,
    recovery_delay: float = 5.0,
    max_cycles: int | None = None,
) -> int:
    """Run ``cycle`` repeatedly until ``stop`` is set.

    Args:
        name: Label for log lines ("scraper", "verifier").
        cycle: Coroutine function running one unit of work.
        delay: Seconds between successful cycles.
        stop: Cooperative cancellation signal.
        recovery_delay: Seconds to wait after a failed cycle.
        max_cycles: Stop after N cycles. None = run forever (production).

    Returns:
        Number of cycles run (failed ones included).
    """
    cycles = 0
    logger.info("%s loop started", name)

    while not stop.is_set():
        failed = False
        try:
            await cycle()
        except Exception as e:
            failed = True
            logger.error("%s cycle failed: %s", name, e, exc_info=True)
        cycles += 1

        if max_cycles is not None and cycles >= max_cycles:
            break
        wait = recovery_delay if failed else delay
        logger.debug("%s: next cycle in %.1fs", name, wait)
        if await sleep_or_stop(stop, wait):
            break

    logger.info("%s loop stopped after %d cycle(s)", name, cycles)
    return cycles
