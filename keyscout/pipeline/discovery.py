"""
Discovery cycle — one search query in, new unverified keys out.

Per cycle:
1. claim the longest-idle enabled query past its cooldown (stamped at once),
2. run it against the search provider,
3. fetch each hit's raw file and match every issuer's patterns,
4. record each candidate; the store's unique constraint decides new vs duplicate.

Usage:
    cycle = DiscoveryCycle(store, provider, registry, token, cooldown=timedelta(hours=1))
    summary = await cycle.run_cycle()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from keyscout.errors import MissingTokenError, SearchProviderError
from keyscout.matching import match_candidates
from keyscout.models import RepoHit, SearchProvider, SearchQuery, mask_secret, utcnow

if TYPE_CHECKING:
    from keyscout.config import Config
    from keyscout.search.github import GitHubSearchProvider
    from keyscout.store import KeyStore
    from keyscout.validators.registry import ValidatorRegistry

logger = logging.getLogger(__name__)


class DiscoveryOutcome(StrEnum):
    COMPLETED = "completed"
    NOTHING_DUE = "nothing_due"
    SEARCH_FAILED = "search_failed"
    CANCELLED = "cancelled"


@dataclass
class DiscoverySummary:
    """Counters for one discovery cycle. Updated live while the cycle runs."""

    query: str | None = None
    outcome: DiscoveryOutcome = DiscoveryOutcome.COMPLETED
    results: int = 0
    processed: int = 0
    new_keys: int = 0
    duplicates: int = 0
    fetch_failures: int = 0

    def format(self) -> str:
        if self.outcome == DiscoveryOutcome.NOTHING_DUE:
            return "Discovery: no queries due"
        return (
            f"Discovery [{self.outcome}] query={self.query!r} "
            f"results={self.results} processed={self.processed} "
            f"new={self.new_keys} duplicates={self.duplicates} "
            f"fetch_failures={self.fetch_failures}"
        )


def resolve_token(store: KeyStore, config: Config) -> str:
    """The GitHub token from the store, else from KEYSCOUT_GITHUB_TOKEN.

    Raises:
        MissingTokenError: neither is set.
    """
    stored = store.get_provider_token(SearchProvider.GITHUB)
    if stored and stored.token:
        return stored.token
    if config.github.token:
        return config.github.token
    raise MissingTokenError(
        "No GitHub token configured. Run 'keyscout token set <TOKEN>' "
        "or set KEYSCOUT_GITHUB_TOKEN."
    )


class DiscoveryCycle:
    """Runs discovery cycles against an injected store, provider and registry."""

    def __init__(
        self,
        store: KeyStore,
        search_provider: GitHubSearchProvider,
        registry: ValidatorRegistry,
        token: str,
        *,
        cooldown: timedelta = timedelta(hours=1),
        stop: asyncio.Event | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_progress: Callable[[DiscoverySummary], None] | None = None,
    ) -> None:
        self.store = store
        self.search_provider = search_provider
        self.registry = registry
        self.token = token
        self.cooldown = cooldown
        self.stop = stop or asyncio.Event()
        self.clock = clock
        self.on_progress = on_progress
        self._pairs = registry.pattern_pairs()

    async def run_cycle(self) -> DiscoverySummary:
        summary = DiscoverySummary()

        query = self.store.claim_due_query(self.clock(), self.cooldown)
        if query is None:
            summary.outcome = DiscoveryOutcome.NOTHING_DUE
            logger.info(summary.format())
            return summary
        summary.query = query.query
        logger.info("Searching: %s", query.query)

        try:
            hits = await self.search_provider.search(query.query, self.token)
        except SearchProviderError as e:
            summary.outcome = DiscoveryOutcome.SEARCH_FAILED
            logger.warning("Search failed for %r: %s", query.query, e)
            logger.info(summary.format())
            return summary

        summary.results = len(hits)
        for hit in hits:
            if self.stop.is_set():
                summary.outcome = DiscoveryOutcome.CANCELLED
                break
            await self._process_hit(hit, query, summary)
            summary.processed += 1
            if self.on_progress:
                self.on_progress(summary)

        logger.info(summary.format())
        return summary

    async def _process_hit(self, hit: RepoHit, query: SearchQuery, summary: DiscoverySummary) -> None:
        content = await self.search_provider.fetch_raw(hit, self.token)
        if not content:
            summary.fetch_failures += 1
            return

        candidates = match_candidates(content, self._pairs)
        if not candidates:
            return

        for issuer, secrets in candidates.items():
            for secret in secrets:
                now = self.clock()
                ref = hit.to_reference(query.id, now)
                try:
                    inserted = self.store.record_candidate(secret, issuer, ref, now)
                except Exception as e:
                    logger.warning(
                        "Error recording %s key %s from %s/%s:%s: %s",
                        issuer,
                        mask_secret(secret),
                        hit.owner,
                        hit.repo_name,
                        hit.file_path,
                        e,
                    )
                    continue
                if inserted:
                    summary.new_keys += 1
                    logger.info(
                        "New %s key %s in %s/%s:%s",
                        issuer,
                        mask_secret(secret),
                        hit.owner,
                        hit.repo_name,
                        hit.file_path,
                    )
                else:
                    summary.duplicates += 1
