"""
Schema migrations for the key store.

SQL files live in ``keyscout/migrations`` and are named ``NNN_description.sql``.
Applied versions are recorded in ``schema_migrations`` with the SHA-256 of the
file; an applied file whose checksum no longer matches is reported as drift
and blocks further migrations until resolved by hand.

Usage:
    from keyscout.db.migrate import apply, status
    for m in status():
        print(m.version, m.state)
    apply()
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from keyscout.db.connection import get_connection
from keyscout.errors import KeyscoutError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_FILENAME_RE = re.compile(r"^(\d{3})_[\w-]+\.sql$")

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version     TEXT PRIMARY KEY,
    filename    TEXT NOT NULL,
    checksum    TEXT NOT NULL,
    applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class MigrationDriftError(KeyscoutError):
    """An applied migration file was edited after it ran."""


@dataclass
class Migration:
    version: str
    path: Path
    checksum: str
    state: str = "pending"  # pending | applied | drift
    applied_at: datetime | None = None

    @property
    def filename(self) -> str:
        return self.path.name


def discover(migrations_dir: Path | None = None) -> list[Migration]:
    """Migration files in version order. Files not matching NNN_name.sql are ignored."""
    found = []
    for path in sorted((migrations_dir or MIGRATIONS_DIR).glob("*.sql")):
        m = _FILENAME_RE.match(path.name)
        if m:
            checksum = hashlib.sha256(path.read_bytes()).hexdigest()
            found.append(Migration(m.group(1), path, checksum))
    return found


def _ledger(cur) -> dict[str, tuple[str, datetime]]:
    cur.execute(_LEDGER_DDL)
    cur.execute("SELECT version, checksum, applied_at FROM schema_migrations")
    return {version: (checksum, applied_at) for version, checksum, applied_at in cur.fetchall()}


def _annotate(migrations: list[Migration], ledger: dict[str, tuple[str, datetime]]) -> None:
    for m in migrations:
        if m.version not in ledger:
            continue
        checksum, m.applied_at = ledger[m.version]
        m.state = "applied" if checksum == m.checksum else "drift"


def status(migrations_dir: Path | None = None) -> list[Migration]:
    """Every migration file with its state against the database."""
    migrations = discover(migrations_dir)
    with get_connection() as conn, conn.cursor() as cur:
        _annotate(migrations, _ledger(cur))
    return migrations


def apply(dry_run: bool = False, migrations_dir: Path | None = None) -> list[str]:
    """Apply pending migrations, each in its own transaction.

    Returns:
        Versions applied (or, with ``dry_run``, the versions that would be).

    Raises:
        MigrationDriftError: an applied file changed since it ran.
    """
    migrations = discover(migrations_dir)
    with get_connection() as conn, conn.cursor() as cur:
        _annotate(migrations, _ledger(cur))

    drifted = [m.filename for m in migrations if m.state == "drift"]
    if drifted:
        raise MigrationDriftError(f"Applied migrations changed on disk: {', '.join(drifted)}")

    pending = [m for m in migrations if m.state == "pending"]
    if not pending:
        logger.info("Schema up to date (%d migrations)", len(migrations))
        return []
    if dry_run:
        for m in pending:
            logger.info("Would apply %s", m.filename)
        return [m.version for m in pending]

    applied: list[str] = []
    for m in pending:
        with get_connection() as conn, conn.cursor() as cur:
            cur.execute(m.path.read_text())
            cur.execute(
                "INSERT INTO schema_migrations (version, filename, checksum) VALUES (%s, %s, %s)",
                (m.version, m.filename, m.checksum),
            )
        logger.info("Applied migration %s", m.filename)
        applied.append(m.version)
    return applied
