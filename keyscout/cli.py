"""
keyscout CLI — entry point for all operations.

Usage:
    keyscout init                     # Apply migrations, seed default queries
    keyscout migrate [--dry-run]      # Apply pending migrations
    keyscout status                   # Key counts, pool fill, token state
    keyscout scrape [--once]          # Discovery loop
    keyscout verify [--once]          # Verification loop
    keyscout run                      # Both loops until Ctrl-C
    keyscout token set TOKEN          # Store the GitHub token
    keyscout queries list|add|enable|disable
    keyscout export [--format json|csv] [--all] [--output PATH]
    keyscout reset --yes              # Delete all data, reseed queries
    keyscout version
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from keyscout.errors import KeyscoutError

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

EDUCATIONAL_NOTICE = """\
keyscout is for security research and education. Keys it finds belong to
someone else: do not use them. Report exposures to the repository owner or
the issuing provider so the keys get revoked."""

TOKEN_PREFIXES = ("ghp_", "github_pat_")


def _configure_logging(verbose: bool) -> None:
    from keyscout.config import get_config

    level = logging.DEBUG if verbose else getattr(logging, get_config().log_level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="keyscout",
        description="keyscout — find leaked AI provider keys in public code and check which still work.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # init
    subparsers.add_parser("init", help="Apply migrations and seed default search queries")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Run database migrations")
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="List pending migrations without applying"
    )
    migrate_parser.add_argument("--status", action="store_true", help="Show applied vs pending")

    # status
    subparsers.add_parser("status", help="Show key counts and pool fill")

    # scrape / verify / run
    scrape_parser = subparsers.add_parser("scrape", help="Run the discovery loop")
    scrape_parser.add_argument("--once", action="store_true", help="Run a single cycle")
    verify_parser = subparsers.add_parser("verify", help="Run the verification loop")
    verify_parser.add_argument("--once", action="store_true", help="Run a single cycle")
    subparsers.add_parser("run", help="Run discovery and verification together")

    # token
    token_parser = subparsers.add_parser("token", help="Manage the GitHub search token")
    token_sub = token_parser.add_subparsers(dest="token_command")
    token_set = token_sub.add_parser("set", help="Store the GitHub token")
    token_set.add_argument("token", help="GitHub personal access token")
    token_set.add_argument("--force", action="store_true", help="Skip the format check")

    # queries
    queries_parser = subparsers.add_parser("queries", help="Manage search queries")
    queries_sub = queries_parser.add_subparsers(dest="queries_command")
    queries_sub.add_parser("list", help="List all queries")
    q_add = queries_sub.add_parser("add", help="Add a query (due immediately)")
    q_add.add_argument("text", help="Search query text")
    q_enable = queries_sub.add_parser("enable", help="Enable a query")
    q_enable.add_argument("id", type=int)
    q_disable = queries_sub.add_parser("disable", help="Disable a query")
    q_disable.add_argument("id", type=int)

    # export
    export_parser = subparsers.add_parser("export", help="Export keys to JSON or CSV")
    export_parser.add_argument("--format", choices=["json", "csv"], default="json")
    export_parser.add_argument(
        "--all", action="store_true", help="Every key, not just valid / no-credit ones"
    )
    export_parser.add_argument("--output", "-o", type=Path, help="Output file path")

    # reset
    reset_parser = subparsers.add_parser("reset", help="Delete all keys, queries and tokens")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from keyscout import __version__

        print(f"keyscout {__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    _configure_logging(args.verbose)

    handlers = {
        "init": _cmd_init,
        "migrate": _cmd_migrate,
        "status": _cmd_status,
        "scrape": _cmd_scrape,
        "verify": _cmd_verify,
        "run": _cmd_run,
        "token": _cmd_token,
        "queries": _cmd_queries,
        "export": _cmd_export,
        "reset": _cmd_reset,
    }
    try:
        return handlers[args.command](args)
    except (ConnectionError, KeyscoutError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _store():
    from keyscout.store import KeyStore

    return KeyStore()


def _seed(store) -> int:
    from keyscout.config import load_default_queries
    from keyscout.models import utcnow

    return store.seed_queries(load_default_queries(), utcnow())


def _cmd_init(args: argparse.Namespace) -> int:
    from keyscout.config import get_config
    from keyscout.db.migrate import apply

    cfg = get_config().db
    print(f"Connecting to {cfg.host or 'local socket'}:{cfg.port}/{cfg.name}...")
    applied = apply()
    print(f"Applied {len(applied)} migration(s).")

    added = _seed(_store())
    if added:
        print(f"Seeded {added} default search queries.")
    else:
        print("Search queries already present, nothing seeded.")
    print("\nNext: keyscout token set <GITHUB_TOKEN>")
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    from keyscout.db.migrate import apply, status

    if args.status:
        print(f"{'Version':<10} {'Filename':<40} {'State':<10} Applied at")
        print("-" * 80)
        for m in status():
            at = m.applied_at.strftime("%Y-%m-%d %H:%M:%S") if m.applied_at else ""
            print(f"{m.version:<10} {m.filename:<40} {m.state:<10} {at}")
        return 0

    versions = apply(dry_run=args.dry_run)
    if not versions:
        print("Schema up to date.")
    for v in versions:
        print(f"{'Would apply' if args.dry_run else 'Applied'} version {v}")
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    from keyscout import __version__
    from keyscout.config import get_config
    from keyscout.export import build_snapshot, format_snapshot

    cfg = get_config()
    print(f"keyscout v{__version__}")
    print(f"  PostgreSQL:    {cfg.db.host or 'local socket'}:{cfg.db.port}/{cfg.db.name}")
    snapshot = build_snapshot(
        _store(), cap=cfg.pool.max_valid_keys, token_configured=bool(cfg.github.token)
    )
    print(format_snapshot(snapshot))
    return 0


def _run_loops(*, scrape: bool, verify: bool, once: bool) -> int:
    from keyscout.config import get_config
    from keyscout.daemon import install_signal_handlers, run_pipeline

    print(EDUCATIONAL_NOTICE, file=sys.stderr)
    print(file=sys.stderr)

    store = _store()
    store.ping()

    async def _main() -> None:
        stop = asyncio.Event()
        install_signal_handlers(stop)
        await run_pipeline(get_config(), store, scrape=scrape, verify=verify, once=once, stop=stop)

    asyncio.run(_main())
    return 0


def _cmd_scrape(args: argparse.Namespace) -> int:
    return _run_loops(scrape=True, verify=False, once=args.once)


def _cmd_verify(args: argparse.Namespace) -> int:
    return _run_loops(scrape=False, verify=True, once=args.once)


def _cmd_run(args: argparse.Namespace) -> int:
    return _run_loops(scrape=True, verify=True, once=False)


def _cmd_token(args: argparse.Namespace) -> int:
    from keyscout.models import SearchProvider

    if args.token_command != "set":
        print("Usage: keyscout token set TOKEN [--force]")
        return 1

    token = args.token.strip()
    if not token:
        print("Error: token is empty", file=sys.stderr)
        return 1
    if not token.startswith(TOKEN_PREFIXES) and not args.force:
        print(
            "Warning: token does not look like a GitHub token "
            f"(expected prefix {' or '.join(TOKEN_PREFIXES)}). Re-run with --force to store it anyway.",
            file=sys.stderr,
        )
        return 1

    _store().save_provider_token(SearchProvider.GITHUB, token)
    print("GitHub token saved.")
    return 0


def _cmd_queries(args: argparse.Namespace) -> int:
    from keyscout.models import utcnow

    store = _store()
    if args.queries_command == "list":
        queries = store.list_queries()
        if not queries:
            print("No queries. Run 'keyscout init' to seed the defaults.")
            return 0
        print(f"{'ID':<5} {'On':<4} {'Last search (UTC)':<20} Query")
        for q in queries:
            last = q.last_search_at.strftime("%Y-%m-%d %H:%M:%S") if q.last_search_at else "never"
            print(f"{q.id:<5} {'yes' if q.is_enabled else 'no':<4} {last:<20} {q.query}")
        return 0

    if args.queries_command == "add":
        text = args.text.strip()
        if not text:
            print("Error: query is empty", file=sys.stderr)
            return 1
        query = store.add_query(text, utcnow())
        print(f"Query {query.id} enabled: {query.query}")
        return 0

    if args.queries_command in ("enable", "disable"):
        enabled = args.queries_command == "enable"
        if not store.set_query_enabled(args.id, enabled):
            print(f"Error: no query with id {args.id}", file=sys.stderr)
            return 1
        print(f"Query {args.id} {'enabled' if enabled else 'disabled'}.")
        return 0

    print("Usage: keyscout queries list|add TEXT|enable ID|disable ID")
    return 1


def _cmd_export(args: argparse.Namespace) -> int:
    from keyscout.export import export_keys
    from keyscout.models import POOL_STATUSES, utcnow

    output = args.output or Path(f"keyscout_export_{utcnow():%Y%m%d_%H%M%S}.{args.format}")
    rows = _store().export_rows(None if args.all else POOL_STATUSES)
    count = export_keys(rows, output, fmt=args.format)
    print(f"Exported {count} keys to {output}")
    return 0


def _cmd_reset(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to reset without --yes. This deletes every key, query and token.")
        return 1
    store = _store()
    store.reset()
    added = _seed(store)
    print(f"Store reset. Reseeded {added} default search queries.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
