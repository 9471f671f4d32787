"""
Reporting views: status snapshot and key export.

Export files carry full secrets. They are written for the operator only.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, TypeAdapter

from keyscout.models import POOL_STATUSES, Credential, KeyStatus, ProvenanceRef, SearchProvider

if TYPE_CHECKING:
    from keyscout.store import KeyStore

logger = logging.getLogger(__name__)

CSV_HEADER = ["Id", "ApiKey", "Type", "Status", "FirstFoundUTC", "LastCheckedUTC", "RepoURL"]
EXPORT_FORMATS = ("json", "csv")


class StatsSnapshot(BaseModel):
    """Counts shown by ``keyscout status``."""

    total: int = 0
    by_status: dict[str, int] = {}
    by_issuer: dict[str, int] = {}
    pool: int = 0
    cap: int = 0
    has_github_token: bool = False


class ExportSource(BaseModel):
    repo_url: str
    file_path: str
    file_url: str = ""
    branch: str | None = None
    found_at: datetime | None = None


class ExportRecord(BaseModel):
    id: int
    api_key: str
    api_type: str
    status: str
    first_found_at: datetime | None = None
    last_found_at: datetime | None = None
    last_checked_at: datetime | None = None
    sources: list[ExportSource] = []

    @classmethod
    def from_row(cls, credential: Credential, refs: list[ProvenanceRef]) -> ExportRecord:
        return cls(
            id=credential.id,
            api_key=credential.api_key,
            api_type=str(credential.api_type),
            status=str(credential.status),
            first_found_at=credential.first_found_at,
            last_found_at=credential.last_found_at,
            last_checked_at=credential.last_checked_at,
            sources=[
                ExportSource(
                    repo_url=r.repo_url,
                    file_path=r.file_path,
                    file_url=r.file_url,
                    branch=r.branch,
                    found_at=r.found_at,
                )
                for r in refs
            ],
        )


_RECORDS = TypeAdapter(list[ExportRecord])


def build_snapshot(store: KeyStore, cap: int, token_configured: bool = False) -> StatsSnapshot:
    stats = store.statistics()
    by_status = {str(k): v for k, v in stats["by_status"].items()}
    has_token = token_configured or store.get_provider_token(SearchProvider.GITHUB) is not None
    return StatsSnapshot(
        total=stats["total"],
        by_status=by_status,
        by_issuer={str(k): v for k, v in stats["by_issuer"].items()},
        pool=sum(by_status.get(str(s), 0) for s in POOL_STATUSES),
        cap=cap,
        has_github_token=has_token,
    )


def format_snapshot(snapshot: StatsSnapshot) -> str:
    lines = [
        f"  Keys:          {snapshot.total}",
        f"  Pool:          {snapshot.pool}/{snapshot.cap}",
        f"  GitHub token:  {'configured' if snapshot.has_github_token else 'MISSING'}",
        "",
        "  By status:",
    ]
    for status in KeyStatus:
        lines.append(f"    {status:<18} {snapshot.by_status.get(str(status), 0)}")
    if snapshot.by_issuer:
        lines.append("")
        lines.append("  By issuer:")
        for issuer, count in sorted(snapshot.by_issuer.items()):
            lines.append(f"    {issuer:<18} {count}")
    return "\n".join(lines)


def _timestamp(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def export_keys(
    rows: list[tuple[Credential, list[ProvenanceRef]]],
    path: Path,
    fmt: str = "json",
) -> int:
    """Write ``rows`` to ``path`` as JSON (with sources) or CSV. Returns record count."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format: {fmt!r} (expected one of {EXPORT_FORMATS})")

    records = [ExportRecord.from_row(c, refs) for c, refs in rows]
    path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "json":
        path.write_bytes(_RECORDS.dump_json(records, indent=2))
    else:
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for r in records:
                writer.writerow(
                    [
                        r.id,
                        r.api_key,
                        r.api_type,
                        r.status,
                        _timestamp(r.first_found_at),
                        _timestamp(r.last_checked_at),
                        r.sources[0].repo_url if r.sources else "",
                    ]
                )

    logger.info("Exported %d keys to %s (%s)", len(records), path, fmt)
    return len(records)
