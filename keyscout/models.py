"""
Data models for keyscout.

All models are plain dataclasses with StrEnum tags, stored as TEXT columns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum


class KeyStatus(StrEnum):
    UNVERIFIED = "unverified"
    VALID = "valid"
    VALID_NO_CREDITS = "valid_no_credits"
    INVALID = "invalid"
    ERROR = "error"


class IssuerType(StrEnum):
    UNKNOWN = "unknown"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE_AI = "google_ai"


class SearchProvider(StrEnum):
    GITHUB = "github"


# Statuses that count toward the valid-key cap. Used by the cap check, the
# top-up early stop, the refresh selection and the status display alike.
POOL_STATUSES: tuple[KeyStatus, ...] = (KeyStatus.VALID, KeyStatus.VALID_NO_CREDITS)


@dataclass
class Credential:
    """A discovered secret and its verification state."""

    id: int
    api_key: str
    api_type: IssuerType = IssuerType.UNKNOWN
    status: KeyStatus = KeyStatus.UNVERIFIED
    search_provider: SearchProvider = SearchProvider.GITHUB
    first_found_at: datetime | None = None
    last_found_at: datetime | None = None
    last_checked_at: datetime | None = None
    error_count: int = 0

    @property
    def masked(self) -> str:
        return mask_secret(self.api_key)


@dataclass
class ProvenanceRef:
    """Where a credential was seen: repository, file, branch, query."""

    repo_owner: str
    repo_name: str
    file_path: str
    branch: str | None = None
    repo_url: str = ""
    file_url: str = ""
    search_query_id: int | None = None
    provider: SearchProvider = SearchProvider.GITHUB
    found_at: datetime | None = None


@dataclass
class SearchQuery:
    id: int
    query: str
    is_enabled: bool = True
    last_search_at: datetime | None = None


@dataclass
class ProviderToken:
    search_provider: SearchProvider
    token: str
    is_enabled: bool = True


@dataclass(frozen=True)
class RepoHit:
    """A file reference returned by the search provider."""

    owner: str
    repo_name: str
    file_path: str
    branch: str | None = None
    html_url: str = ""

    @property
    def repo_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo_name}"

    def to_reference(self, query_id: int | None, found_at: datetime) -> ProvenanceRef:
        return ProvenanceRef(
            repo_owner=self.owner,
            repo_name=self.repo_name,
            file_path=self.file_path,
            branch=self.branch,
            repo_url=self.repo_url,
            file_url=self.html_url,
            search_query_id=query_id,
            provider=SearchProvider.GITHUB,
            found_at=found_at,
        )


def mask_secret(secret: str, keep: int = 6) -> str:
    """Shorten a secret for logs: ``sk-pro…9xQz``."""
    if len(secret) <= keep + 4:
        return secret[:2] + "…"
    return f"{secret[:keep]}…{secret[-4:]}"


def utcnow() -> datetime:
    return datetime.now(UTC)
