"""
Centralized configuration for keyscout.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from keyscout.config import get_config
    cfg = get_config()
    print(cfg.db.name)               # "keyscout"
    print(cfg.pool.max_valid_keys)   # 50
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_QUERIES_FILE = Path(__file__).parent / "data" / "default_queries.yaml"


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters."""

    host: str = ""  # empty = Unix socket (peer auth); set to 127.0.0.1 for TCP
    port: int = 5432
    name: str = "keyscout"
    user: str = "keyscout"
    password: str = ""

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class GitHubConfig:
    """GitHub code search and raw content parameters."""

    token: str = ""
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    per_page: int = 100
    max_pages: int = 1
    max_file_bytes: int = 1_048_576
    timeout: float = 20.0
    user_agent: str = "keyscout/0.1"


@dataclass(frozen=True)
class PoolConfig:
    """Limits and pacing for the discovery and verification loops."""

    max_valid_keys: int = 50
    verification_batch_size: int = 10
    verification_delay: float = 1.0
    search_delay: float = 5.0
    recovery_delay: float = 5.0
    query_cooldown: float = 3600.0
    error_threshold: int = 3
    validator_timeout: float = 15.0


@dataclass(frozen=True)
class Config:
    """Top-level keyscout configuration."""

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)

    queries_file: Path = DEFAULT_QUERIES_FILE
    log_level: str = "INFO"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("KEYSCOUT_DB_HOST", ""),
        port=int(os.environ.get("KEYSCOUT_DB_PORT", "5432")),
        name=os.environ.get("KEYSCOUT_DB_NAME", "keyscout"),
        user=os.environ.get("KEYSCOUT_DB_USER", os.environ.get("USER", "keyscout")),
        password=os.environ.get("KEYSCOUT_DB_PASSWORD", ""),
    )

    github = GitHubConfig(
        token=os.environ.get("KEYSCOUT_GITHUB_TOKEN", ""),
        api_url=os.environ.get("KEYSCOUT_GITHUB_API_URL", "https://api.github.com"),
        raw_url=os.environ.get("KEYSCOUT_GITHUB_RAW_URL", "https://raw.githubusercontent.com"),
        max_pages=int(os.environ.get("KEYSCOUT_SEARCH_MAX_PAGES", "1")),
        max_file_bytes=int(os.environ.get("KEYSCOUT_MAX_FILE_BYTES", "1048576")),
        timeout=float(os.environ.get("KEYSCOUT_HTTP_TIMEOUT", "20")),
    )

    pool = PoolConfig(
        max_valid_keys=int(os.environ.get("KEYSCOUT_MAX_VALID_KEYS", "50")),
        verification_batch_size=int(os.environ.get("KEYSCOUT_VERIFY_BATCH_SIZE", "10")),
        verification_delay=float(os.environ.get("KEYSCOUT_VERIFY_DELAY", "1")),
        search_delay=float(os.environ.get("KEYSCOUT_SEARCH_DELAY", "5")),
        recovery_delay=float(os.environ.get("KEYSCOUT_RECOVERY_DELAY", "5")),
        query_cooldown=float(os.environ.get("KEYSCOUT_QUERY_COOLDOWN", "3600")),
        error_threshold=int(os.environ.get("KEYSCOUT_ERROR_THRESHOLD", "3")),
        validator_timeout=float(os.environ.get("KEYSCOUT_VALIDATOR_TIMEOUT", "15")),
    )

    return Config(
        db=db,
        github=github,
        pool=pool,
        queries_file=Path(os.environ.get("KEYSCOUT_QUERIES_FILE", DEFAULT_QUERIES_FILE)),
        log_level=os.environ.get("KEYSCOUT_LOG_LEVEL", "INFO").upper(),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None


def load_default_queries(path: Path | None = None) -> list[str]:
    """Read the seed query list (``queries:`` key) from a YAML file."""
    path = path or get_config().queries_file
    data = yaml.safe_load(path.read_text()) or {}
    queries = data.get("queries") or []
    return [str(q).strip() for q in queries if str(q).strip()]
