"""
GitHub code search and raw file fetching.

Search results become ``RepoHit``s; raw content is read from
raw.githubusercontent.com, trying ``main`` and then ``master`` when the hit
did not name a ref.

Usage:
    async with GitHubSearchProvider(cfg.github) as gh:
        hits = await gh.search("sk-proj-", token)
        text = await gh.fetch_raw(hits[0], token)
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, unquote

import httpx

from keyscout.config import GitHubConfig
from keyscout.errors import SearchProviderError
from keyscout.models import RepoHit

logger = logging.getLogger(__name__)

PRIMARY_BRANCH = "main"
FALLBACK_BRANCH = "master"


def parse_search_item(item: dict[str, Any]) -> RepoHit | None:
    """Convert one ``/search/code`` item into a RepoHit. None if incomplete."""
    repo = item.get("repository") or {}
    owner = (repo.get("owner") or {}).get("login", "")
    name = repo.get("name", "")
    path = item.get("path", "")
    if not (owner and name and path):
        return None
    html_url = item.get("html_url", "")
    return RepoHit(
        owner=owner,
        repo_name=name,
        file_path=path,
        branch=ref_from_html_url(html_url, path),
        html_url=html_url,
    )


def ref_from_html_url(html_url: str, path: str) -> str | None:
    """Extract the ref from ``https://github.com/o/r/blob/<ref>/<path>``."""
    if "/blob/" not in html_url:
        return None
    tail = unquote(html_url.split("/blob/", 1)[1])
    suffix = "/" + path
    if not tail.endswith(suffix):
        return None
    return tail[: -len(suffix)] or None


class GitHubSearchProvider:
    """Async client for GitHub code search and raw content."""

    def __init__(
        self,
        config: GitHubConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
            headers={"User-Agent": config.user_agent},
        )

    async def __aenter__(self) -> GitHubSearchProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def search(self, query: str, token: str) -> list[RepoHit]:
        """Run a code search and return file hits in result order.

        Raises:
            SearchProviderError: transport failure or any non-200 response
                (rate limits included). The caller decides whether to retry.
        """
        hits: list[RepoHit] = []
        seen: set[tuple[str, str, str]] = set()
        per_page = self.config.per_page

        for page in range(1, self.config.max_pages + 1):
            try:
                resp = await self._client.get(
                    f"{self.config.api_url.rstrip('/')}/search/code",
                    params={"q": query, "per_page": per_page, "page": page},
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/vnd.github+json",
                        "X-GitHub-Api-Version": "2022-11-28",
                    },
                )
            except httpx.HTTPError as e:
                raise SearchProviderError(f"GitHub search request failed: {e}") from e

            if resp.status_code != 200:
                raise SearchProviderError(
                    f"GitHub search returned HTTP {resp.status_code}: {resp.text[:200]}",
                    status_code=resp.status_code,
                )

            try:
                items = resp.json().get("items", [])
            except ValueError as e:
                raise SearchProviderError(f"GitHub search returned invalid JSON: {e}") from e

            for item in items:
                hit = parse_search_item(item)
                if hit is None:
                    continue
                key = (hit.owner, hit.repo_name, hit.file_path)
                if key in seen:
                    continue
                seen.add(key)
                hits.append(hit)

            if len(items) < per_page:
                break

        logger.debug("Search %r returned %d hits", query, len(hits))
        return hits

    async def fetch_raw(self, hit: RepoHit, token: str) -> str | None:
        """Fetch a hit's file content. None on any failure (never raises for HTTP)."""
        content = await self._get_raw(hit, hit.branch or PRIMARY_BRANCH, token)
        if content is None and hit.branch is None:
            content = await self._get_raw(hit, FALLBACK_BRANCH, token)
        return content

    async def _get_raw(self, hit: RepoHit, branch: str, token: str) -> str | None:
        url = (
            f"{self.config.raw_url.rstrip('/')}/{hit.owner}/{hit.repo_name}/"
            f"{quote(branch)}/{quote(hit.file_path)}"
        )
        try:
            resp = await self._client.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.debug("Raw fetch failed for %s: %s", url, e)
            return None
        if not resp.is_success:
            logger.debug("Raw fetch %s -> HTTP %d", url, resp.status_code)
            return None
        if len(resp.content) > self.config.max_file_bytes:
            logger.debug("Skipping %s (%d bytes)", url, len(resp.content))
            return None
        return resp.text
