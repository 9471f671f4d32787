"""
Fixtures for the PostgreSQL-backed suite.

Uses a dedicated test database (keyscout_test) to avoid touching real data.
Migrations run once per session; tables are truncated after each test. The
whole suite is skipped when the database is unreachable.
"""

from __future__ import annotations

import os

import pytest

# Point all DB connections to the test database BEFORE importing anything
os.environ["KEYSCOUT_DB_NAME"] = os.environ.get("KEYSCOUT_TEST_DB_NAME", "keyscout_test")

from keyscout.config import reset_config  # noqa: E402

reset_config()

from keyscout.db import migrate  # noqa: E402
from keyscout.db.connection import close_pool, get_connection  # noqa: E402
from keyscout.store import KeyStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def schema():
    """Apply migrations once per session, or skip if PostgreSQL is down."""
    try:
        migrate.apply()
    except ConnectionError as e:
        pytest.skip(f"PostgreSQL unavailable: {e}")
    yield
    close_pool()


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with get_connection() as conn, conn.cursor() as cur:
        cur.execute(
            "TRUNCATE repo_references, api_keys, search_queries, search_provider_tokens "
            "RESTART IDENTITY CASCADE"
        )


@pytest.fixture
def pg_store():
    return KeyStore()
