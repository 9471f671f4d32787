"""
Data access layer for discovered keys, provenance, queries and tokens.

Uses psycopg2 through the shared pool in ``keyscout.db.connection``. Every
method runs in its own short transaction: committed on return, rolled back on
exception. Reads return plain dataclasses from ``keyscout.models``.

Uniqueness of ``api_keys.api_key`` is enforced by the database; inserts use
ON CONFLICT so a lost race between two writers reads as a duplicate.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any

from psycopg2.extras import RealDictCursor

from keyscout.db.connection import get_connection
from keyscout.models import (
    Credential,
    IssuerType,
    KeyStatus,
    ProvenanceRef,
    ProviderToken,
    SearchProvider,
    SearchQuery,
)

logger = logging.getLogger(__name__)

_KEY_COLUMNS = (
    "id, api_key, api_type, status, search_provider, "
    "first_found_at, last_found_at, last_checked_at, error_count"
)

_ORDERINGS = {
    "last_checked": "last_checked_at ASC NULLS FIRST, id",
    "first_found": "first_found_at ASC, id",
}

# Seeded queries are backdated so the first scrape finds them due.
SEED_BACKDATE = timedelta(days=1)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _to_credential(row: dict[str, Any]) -> Credential:
    return Credential(
        id=row["id"],
        api_key=row["api_key"],
        api_type=IssuerType(row["api_type"]),
        status=KeyStatus(row["status"]),
        search_provider=SearchProvider(row["search_provider"]),
        first_found_at=row["first_found_at"],
        last_found_at=row["last_found_at"],
        last_checked_at=row["last_checked_at"],
        error_count=row["error_count"],
    )


def _to_query(row: dict[str, Any]) -> SearchQuery:
    return SearchQuery(
        id=row["id"],
        query=row["query"],
        is_enabled=row["is_enabled"],
        last_search_at=row["last_search_at"],
    )


def _to_reference(row: dict[str, Any]) -> ProvenanceRef:
    return ProvenanceRef(
        repo_owner=row["repo_owner"],
        repo_name=row["repo_name"],
        file_path=row["file_path"],
        branch=row["branch"],
        repo_url=row["repo_url"],
        file_url=row["file_url"],
        search_query_id=row["search_query_id"],
        provider=SearchProvider(row["provider"]),
        found_at=row["found_at"],
    )


def _values(statuses: Iterable[KeyStatus]) -> list[str]:
    return [str(s) for s in statuses]


class KeyStore:
    """PostgreSQL-backed store for the discovery and verification loops."""

    def ping(self) -> None:
        """Round-trip to the database. Raises ConnectionError when unreachable."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT 1")

    # -----------------------------------------------------------------------
    # Search queries
    # -----------------------------------------------------------------------

    def seed_queries(self, queries: Sequence[str], now: datetime) -> int:
        """Insert the default query set if the table is empty. Returns rows added."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT EXISTS (SELECT 1 FROM search_queries)")
            if cur.fetchone()[0]:
                return 0
            added = 0
            for text in queries:
                cur.execute(
                    "INSERT INTO search_queries (query, is_enabled, last_search_at) "
                    "VALUES (%s, TRUE, %s) ON CONFLICT (query) DO NOTHING",
                    (text, now - SEED_BACKDATE),
                )
                added += cur.rowcount
            return added

    def claim_due_query(self, now: datetime, cooldown: timedelta) -> SearchQuery | None:
        """Pick the longest-idle enabled query past its cooldown and stamp it.

        The select and the ``last_search_at`` update happen in one statement,
        so the stamp is durable before any search runs and concurrent
        scrapers never claim the same query.
        """
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                UPDATE search_queries SET last_search_at = %s
                WHERE id = (
                    SELECT id FROM search_queries
                    WHERE is_enabled AND last_search_at < %s
                    ORDER BY last_search_at, id
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id, query, is_enabled, last_search_at
                """,
                (now, now - cooldown),
            )
            row = cur.fetchone()
            return _to_query(row) if row else None

    def list_queries(self) -> list[SearchQuery]:
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("SELECT id, query, is_enabled, last_search_at FROM search_queries ORDER BY id")
            return [_to_query(r) for r in cur.fetchall()]

    def add_query(self, text: str, now: datetime) -> SearchQuery:
        """Add a query (due immediately). Re-adding an existing one re-enables it."""
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO search_queries (query, is_enabled, last_search_at)
                VALUES (%s, TRUE, %s)
                ON CONFLICT (query) DO UPDATE SET is_enabled = TRUE
                RETURNING id, query, is_enabled, last_search_at
                """,
                (text, now - SEED_BACKDATE),
            )
            return _to_query(cur.fetchone())

    def set_query_enabled(self, query_id: int, enabled: bool) -> bool:
        """Enable/disable a query. Returns False if no such query."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                "UPDATE search_queries SET is_enabled = %s WHERE id = %s",
                (enabled, query_id),
            )
            return cur.rowcount > 0

    # -----------------------------------------------------------------------
    # Provider tokens
    # -----------------------------------------------------------------------

    def get_provider_token(self, provider: SearchProvider) -> ProviderToken | None:
        """Return the enabled token for a provider, or None."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT token, is_enabled FROM search_provider_tokens "
                "WHERE search_provider = %s AND is_enabled",
                (str(provider),),
            )
            row = cur.fetchone()
            if not row:
                return None
            return ProviderToken(search_provider=provider, token=row[0], is_enabled=row[1])

    def save_provider_token(self, provider: SearchProvider, token: str) -> None:
        """Create or replace a provider's token (and enable it)."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO search_provider_tokens (search_provider, token, is_enabled, updated_at)
                VALUES (%s, %s, TRUE, NOW())
                ON CONFLICT (search_provider)
                DO UPDATE SET token = EXCLUDED.token, is_enabled = TRUE, updated_at = NOW()
                """,
                (str(provider), token),
            )

    # -----------------------------------------------------------------------
    # Credentials
    # -----------------------------------------------------------------------

    def record_candidate(
        self,
        secret: str,
        issuer: IssuerType,
        ref: ProvenanceRef,
        now: datetime,
    ) -> bool:
        """Insert a newly seen secret with its provenance.

        Returns True if a new credential row was created, False if the secret
        was already stored. A known secret gets ``last_found_at`` refreshed
        and the reference attached when it points at a new file.
        """
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO api_keys
                    (api_key, api_type, status, search_provider, first_found_at, last_found_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (api_key) DO UPDATE SET last_found_at = EXCLUDED.last_found_at
                RETURNING id, (xmax = 0) AS inserted
                """,
                (secret, str(issuer), str(KeyStatus.UNVERIFIED), str(ref.provider), now, now),
            )
            key_id, inserted = cur.fetchone()
            cur.execute(
                """
                INSERT INTO repo_references
                    (api_key_id, repo_owner, repo_name, file_path, branch, repo_url,
                     file_url, search_query_id, provider, found_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT ON CONSTRAINT uq_repo_references_location DO NOTHING
                """,
                (
                    key_id,
                    ref.repo_owner,
                    ref.repo_name,
                    ref.file_path,
                    ref.branch,
                    ref.repo_url,
                    ref.file_url,
                    ref.search_query_id,
                    str(ref.provider),
                    ref.found_at or now,
                ),
            )
            return bool(inserted)

    def count_by_status(self, statuses: Iterable[KeyStatus]) -> int:
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                "SELECT count(*) FROM api_keys WHERE status = ANY(%s)",
                (_values(statuses),),
            )
            count: int = cur.fetchone()[0]
            return count

    def keys_by_status(
        self,
        statuses: Iterable[KeyStatus],
        order: str,
        limit: int,
    ) -> list[Credential]:
        """Select keys for verification.

        Args:
            statuses: Status filter.
            order: ``"last_checked"`` (never-checked first) or ``"first_found"``.
            limit: Batch size.
        """
        order_by = _ORDERINGS[order]
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"SELECT {_KEY_COLUMNS} FROM api_keys WHERE status = ANY(%s) "
                f"ORDER BY {order_by} LIMIT %s",
                (_values(statuses), limit),
            )
            return [_to_credential(r) for r in cur.fetchall()]

    def save_verification(self, credential: Credential) -> None:
        """Persist the fields the verifier owns, in one atomic update."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE api_keys
                SET status = %s, api_type = %s, error_count = %s, last_checked_at = %s
                WHERE id = %s
                """,
                (
                    str(credential.status),
                    str(credential.api_type),
                    credential.error_count,
                    credential.last_checked_at,
                    credential.id,
                ),
            )

    # -----------------------------------------------------------------------
    # Reporting
    # -----------------------------------------------------------------------

    def statistics(self) -> dict[str, Any]:
        """Counts per status and per issuer: ``{"total", "by_status", "by_issuer"}``."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT status, count(*) FROM api_keys GROUP BY status")
            by_status = {row[0]: row[1] for row in cur.fetchall()}
            cur.execute("SELECT api_type, count(*) FROM api_keys GROUP BY api_type")
            by_issuer = {row[0]: row[1] for row in cur.fetchall()}
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_issuer": by_issuer,
        }

    def export_rows(
        self, statuses: Iterable[KeyStatus] | None = None
    ) -> list[tuple[Credential, list[ProvenanceRef]]]:
        """Credentials (optionally filtered by status) with their references."""
        with get_connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            if statuses is None:
                cur.execute(f"SELECT {_KEY_COLUMNS} FROM api_keys ORDER BY id")
            else:
                cur.execute(
                    f"SELECT {_KEY_COLUMNS} FROM api_keys WHERE status = ANY(%s) ORDER BY id",
                    (_values(statuses),),
                )
            credentials = [_to_credential(r) for r in cur.fetchall()]
            if not credentials:
                return []
            cur.execute(
                "SELECT * FROM repo_references WHERE api_key_id = ANY(%s) ORDER BY id",
                ([c.id for c in credentials],),
            )
            refs: dict[int, list[ProvenanceRef]] = {}
            for row in cur.fetchall():
                refs.setdefault(row["api_key_id"], []).append(_to_reference(row))
        return [(c, refs.get(c.id, [])) for c in credentials]

    def reset(self) -> None:
        """Delete everything. Schema is kept."""
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(
                "TRUNCATE repo_references, api_keys, search_queries, search_provider_tokens "
                "RESTART IDENTITY CASCADE"
            )
        logger.warning("Store reset: all keys, references, queries and tokens deleted")
