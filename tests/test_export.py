"""Tests for keyscout.export — status snapshot and key export files."""

from __future__ import annotations

import csv
import json

import pytest
from fakes import GOOGLE_KEY, NOW, OPENAI_KEY, OPENAI_KEY_2, hit

from keyscout.export import (
    CSV_HEADER,
    ExportRecord,
    StatsSnapshot,
    build_snapshot,
    export_keys,
    format_snapshot,
)
from keyscout.models import POOL_STATUSES, IssuerType, KeyStatus, SearchProvider


@pytest.fixture
def populated(store):
    valid = store.add_key(OPENAI_KEY, status=KeyStatus.VALID, last_checked_at=NOW)
    store.refs[valid.id].append(hit("a.env").to_reference(1, NOW))
    store.add_key(OPENAI_KEY_2, status=KeyStatus.INVALID)
    store.add_key(GOOGLE_KEY, IssuerType.GOOGLE_AI, KeyStatus.VALID_NO_CREDITS)
    return store


class TestSnapshot:
    def test_counts(self, populated):
        snap = build_snapshot(populated, cap=50)
        assert snap.total == 3
        assert snap.pool == 2
        assert snap.cap == 50
        assert snap.by_status["invalid"] == 1
        assert snap.by_issuer == {"openai": 2, "google_ai": 1}
        assert snap.has_github_token is False

    def test_token_from_store(self, populated):
        populated.save_provider_token(SearchProvider.GITHUB, "ghp_x")
        assert build_snapshot(populated, cap=50).has_github_token is True

    def test_token_from_env(self, populated):
        assert build_snapshot(populated, cap=50, token_configured=True).has_github_token is True

    def test_format_lists_every_status(self):
        text = format_snapshot(StatsSnapshot(total=1, by_status={"valid": 1}, pool=1, cap=50))
        assert "1/50" in text
        for status in KeyStatus:
            assert str(status) in text
        assert "MISSING" in text


class TestExportRecord:
    def test_from_row(self, populated):
        cred, refs = populated.export_rows()[0]
        record = ExportRecord.from_row(cred, refs)
        assert record.api_key == OPENAI_KEY
        assert record.status == "valid"
        assert record.sources[0].repo_url == "https://github.com/octo/demo"
        assert record.sources[0].file_path == "a.env"


class TestExportKeys:
    def test_json(self, populated, tmp_path):
        path = tmp_path / "out.json"
        count = export_keys(populated.export_rows(POOL_STATUSES), path, fmt="json")
        data = json.loads(path.read_text())
        assert count == 2
        assert [r["api_key"] for r in data] == [OPENAI_KEY, GOOGLE_KEY]
        assert data[0]["sources"][0]["branch"] == "main"
        assert data[1]["sources"] == []

    def test_json_empty(self, store, tmp_path):
        path = tmp_path / "out.json"
        assert export_keys([], path) == 0
        assert json.loads(path.read_text()) == []

    def test_csv(self, populated, tmp_path):
        path = tmp_path / "nested" / "out.csv"
        export_keys(populated.export_rows(), path, fmt="csv")
        with path.open() as f:
            rows = list(csv.reader(f))
        assert rows[0] == CSV_HEADER
        assert len(rows) == 4
        assert rows[1][1] == OPENAI_KEY
        assert rows[1][5] == "2026-03-01 12:00:00"
        assert rows[1][6] == "https://github.com/octo/demo"
        assert rows[2][5] == ""
        assert rows[2][6] == ""

    def test_unknown_format(self, tmp_path):
        with pytest.raises(ValueError):
            export_keys([], tmp_path / "x", fmt="xml")
