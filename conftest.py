"""
Root-level shared test fixtures.

Inherited by the unit suite in ``tests/`` and the database suite in
``tests/integration/``.
"""

from __future__ import annotations

import pytest

from keyscout.config import reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the config singleton around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove keyscout env vars that leak between tests."""
    for key in [
        "KEYSCOUT_DB_HOST",
        "KEYSCOUT_DB_PORT",
        "KEYSCOUT_DB_NAME",
        "KEYSCOUT_DB_USER",
        "KEYSCOUT_DB_PASSWORD",
        "KEYSCOUT_GITHUB_TOKEN",
        "KEYSCOUT_GITHUB_API_URL",
        "KEYSCOUT_GITHUB_RAW_URL",
        "KEYSCOUT_SEARCH_MAX_PAGES",
        "KEYSCOUT_MAX_FILE_BYTES",
        "KEYSCOUT_HTTP_TIMEOUT",
        "KEYSCOUT_MAX_VALID_KEYS",
        "KEYSCOUT_VERIFY_BATCH_SIZE",
        "KEYSCOUT_VERIFY_DELAY",
        "KEYSCOUT_SEARCH_DELAY",
        "KEYSCOUT_RECOVERY_DELAY",
        "KEYSCOUT_QUERY_COOLDOWN",
        "KEYSCOUT_ERROR_THRESHOLD",
        "KEYSCOUT_VALIDATOR_TIMEOUT",
        "KEYSCOUT_QUERIES_FILE",
        "KEYSCOUT_LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)
