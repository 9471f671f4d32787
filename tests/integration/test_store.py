"""Tests for keyscout.store against PostgreSQL."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest

from keyscout.models import (
    IssuerType,
    KeyStatus,
    ProvenanceRef,
    SearchProvider,
)

pytestmark = pytest.mark.integration

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
KEY = "sk-proj-" + "aB3dE5fG7h" * 5
KEY_2 = "sk-proj-" + "Zy9Xw8Vu7T" * 5


def _ref(path="a.env", repo="demo", query_id=None):
    return ProvenanceRef(
        repo_owner="octo",
        repo_name=repo,
        file_path=path,
        branch="main",
        repo_url=f"https://github.com/octo/{repo}",
        file_url=f"https://github.com/octo/{repo}/blob/main/{path}",
        search_query_id=query_id,
        found_at=NOW,
    )


class TestQueries:
    def test_seed_only_when_empty(self, pg_store):
        assert pg_store.seed_queries(["a", "b", "a"], NOW) == 2
        assert pg_store.seed_queries(["c"], NOW) == 0
        queries = pg_store.list_queries()
        assert [q.query for q in queries] == ["a", "b"]
        assert all(q.last_search_at == NOW - timedelta(days=1) for q in queries)

    def test_claim_respects_cooldown(self, pg_store):
        pg_store.seed_queries(["a"], NOW)
        assert pg_store.claim_due_query(NOW, timedelta(hours=1)).query == "a"
        assert pg_store.claim_due_query(NOW + timedelta(minutes=10), timedelta(hours=1)) is None
        assert pg_store.claim_due_query(NOW + timedelta(hours=2), timedelta(hours=1)) is not None

    def test_claim_picks_longest_idle(self, pg_store):
        pg_store.seed_queries(["a", "b"], NOW)
        first = pg_store.claim_due_query(NOW, timedelta(hours=1))
        second = pg_store.claim_due_query(NOW + timedelta(seconds=1), timedelta(hours=1))
        assert {first.query, second.query} == {"a", "b"}
        assert first.last_search_at == NOW

    def test_concurrent_claims_never_share(self, pg_store):
        pg_store.seed_queries([f"q{i}" for i in range(5)], NOW)
        with ThreadPoolExecutor(max_workers=5) as pool:
            claimed = list(pool.map(lambda _: pg_store.claim_due_query(NOW, timedelta(hours=1)), range(5)))
        names = [q.query for q in claimed if q is not None]
        assert len(names) == len(set(names))

    def test_disabled_not_claimed(self, pg_store):
        q = pg_store.add_query("x", NOW)
        assert pg_store.set_query_enabled(q.id, False) is True
        assert pg_store.claim_due_query(NOW, timedelta(hours=1)) is None
        assert pg_store.set_query_enabled(9999, False) is False

    def test_add_existing_reenables(self, pg_store):
        q = pg_store.add_query("x", NOW)
        pg_store.set_query_enabled(q.id, False)
        again = pg_store.add_query("x", NOW)
        assert again.id == q.id
        assert again.is_enabled is True


class TestTokens:
    def test_save_and_replace(self, pg_store):
        assert pg_store.get_provider_token(SearchProvider.GITHUB) is None
        pg_store.save_provider_token(SearchProvider.GITHUB, "ghp_one")
        pg_store.save_provider_token(SearchProvider.GITHUB, "ghp_two")
        assert pg_store.get_provider_token(SearchProvider.GITHUB).token == "ghp_two"


class TestCandidates:
    def test_insert_then_duplicate(self, pg_store):
        assert pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW) is True
        assert pg_store.record_candidate(KEY, IssuerType.ANTHROPIC, _ref("b.env"), NOW) is False
        rows = pg_store.export_rows()
        assert len(rows) == 1
        cred, refs = rows[0]
        assert cred.api_type == IssuerType.OPENAI
        assert cred.status == KeyStatus.UNVERIFIED
        assert [r.file_path for r in refs] == ["a.env", "b.env"]

    def test_same_location_not_duplicated(self, pg_store):
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        assert len(pg_store.export_rows()[0][1]) == 1

    def test_concurrent_inserts_create_one_row(self, pg_store):
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(
                pool.map(
                    lambda i: pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(f"{i}.env"), NOW),
                    range(4),
                )
            )
        assert results.count(True) == 1
        assert pg_store.count_by_status([KeyStatus.UNVERIFIED]) == 1


class TestVerificationQueries:
    def test_keys_by_status_ordering(self, pg_store):
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        pg_store.record_candidate(KEY_2, IssuerType.OPENAI, _ref("b.env"), NOW + timedelta(seconds=1))
        keys = pg_store.keys_by_status([KeyStatus.UNVERIFIED], order="first_found", limit=10)
        assert [k.api_key for k in keys] == [KEY, KEY_2]

        first = keys[0]
        first.status = KeyStatus.VALID
        first.last_checked_at = NOW
        pg_store.save_verification(first)
        second = keys[1]
        second.status = KeyStatus.VALID_NO_CREDITS
        pg_store.save_verification(second)

        pool = pg_store.keys_by_status(
            [KeyStatus.VALID, KeyStatus.VALID_NO_CREDITS], order="last_checked", limit=10
        )
        assert [k.api_key for k in pool] == [KEY_2, KEY]

    def test_save_verification_round_trip(self, pg_store):
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        cred = pg_store.keys_by_status([KeyStatus.UNVERIFIED], order="first_found", limit=1)[0]
        cred.status = KeyStatus.ERROR
        cred.api_type = IssuerType.ANTHROPIC
        cred.error_count = 3
        cred.last_checked_at = NOW
        pg_store.save_verification(cred)

        stored = pg_store.export_rows([KeyStatus.ERROR])[0][0]
        assert stored.api_type == IssuerType.ANTHROPIC
        assert stored.error_count == 3
        assert stored.last_checked_at == NOW

    def test_statistics(self, pg_store):
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        pg_store.record_candidate(KEY_2, IssuerType.GOOGLE_AI, _ref("b.env"), NOW)
        stats = pg_store.statistics()
        assert stats["total"] == 2
        assert stats["by_status"] == {"unverified": 2}
        assert stats["by_issuer"] == {"openai": 1, "google_ai": 1}

    def test_reset(self, pg_store):
        pg_store.seed_queries(["a"], NOW)
        pg_store.record_candidate(KEY, IssuerType.OPENAI, _ref(), NOW)
        pg_store.reset()
        assert pg_store.export_rows() == []
        assert pg_store.list_queries() == []
