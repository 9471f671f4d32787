"""
Long-running entry point: the scraper and verifier loops side by side.

Both loops share one stop event. SIGINT/SIGTERM set it; each loop finishes
the unit it is working on and returns.

Usage:
    stop = asyncio.Event()
    install_signal_handlers(stop)
    await run_pipeline(get_config(), KeyStore(), stop=stop)
"""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import timedelta
from typing import TYPE_CHECKING

from keyscout.pipeline.discovery import DiscoveryCycle, resolve_token
from keyscout.pipeline.loop import run_periodic
from keyscout.pipeline.verification import KeyVerifier, PoolMaintainer
from keyscout.search.github import GitHubSearchProvider
from keyscout.validators.registry import ValidatorRegistry, default_registry

if TYPE_CHECKING:
    from keyscout.config import Config
    from keyscout.store import KeyStore

logger = logging.getLogger(__name__)


def install_signal_handlers(stop: asyncio.Event) -> None:
    """Route SIGINT/SIGTERM to ``stop`` on the running loop."""
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str) -> None:
        if not stop.is_set():
            logger.info("Received %s, stopping after the current unit of work", signame)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig.name)
        except NotImplementedError:  # Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


def build_maintainer(
    config: Config,
    store: KeyStore,
    registry: ValidatorRegistry,
    stop: asyncio.Event,
) -> PoolMaintainer:
    verifier = KeyVerifier(registry, error_threshold=config.pool.error_threshold)
    return PoolMaintainer(
        store,
        verifier,
        cap=config.pool.max_valid_keys,
        batch_size=config.pool.verification_batch_size,
        stop=stop,
    )


async def run_pipeline(
    config: Config,
    store: KeyStore,
    *,
    scrape: bool = True,
    verify: bool = True,
    once: bool = False,
    stop: asyncio.Event | None = None,
    registry: ValidatorRegistry | None = None,
    search_provider: GitHubSearchProvider | None = None,
) -> None:
    """Run the requested loops until ``stop`` is set (or one cycle each with ``once``).

    Raises:
        MissingTokenError: scraping was requested and no GitHub token is set.
    """
    stop = stop or asyncio.Event()
    registry = registry or default_registry(timeout=config.pool.validator_timeout)
    max_cycles = 1 if once else None
    logger.info("Validators: %s", ", ".join(registry.names))

    # Resolve before opening any client so a missing token fails fast.
    token = resolve_token(store, config) if scrape else ""
    provider = search_provider or GitHubSearchProvider(config.github)

    tasks: list[asyncio.Task[int]] = []
    try:
        if scrape:
            discovery = DiscoveryCycle(
                store,
                provider,
                registry,
                token,
                cooldown=timedelta(seconds=config.pool.query_cooldown),
                stop=stop,
            )
            tasks.append(
                asyncio.create_task(
                    run_periodic(
                        "scraper",
                        discovery.run_cycle,
                        delay=config.pool.search_delay,
                        stop=stop,
                        recovery_delay=config.pool.recovery_delay,
                        max_cycles=max_cycles,
                    ),
                    name="scraper",
                )
            )
        if verify:
            maintainer = build_maintainer(config, store, registry, stop)
            tasks.append(
                asyncio.create_task(
                    run_periodic(
                        "verifier",
                        maintainer.run_cycle,
                        delay=config.pool.verification_delay,
                        stop=stop,
                        recovery_delay=config.pool.recovery_delay,
                        max_cycles=max_cycles,
                    ),
                    name="verifier",
                )
            )

        for result in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(result, BaseException):
                logger.error("Loop ended with %s: %s", type(result).__name__, result)
    finally:
        if search_provider is None:
            await provider.close()
    logger.info("Pipeline stopped")
