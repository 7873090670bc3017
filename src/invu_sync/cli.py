"""Command-line entry point: ``invu-sync sync|sync-orders|serve``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Sequence

from invu_sync.branches import BranchRegistry
from invu_sync.config import SyncSettings
from invu_sync.dates import resolve_date
from invu_sync.exceptions import InvuSyncError
from invu_sync.sales.api import sync_sales
from invu_sync.sales.orders import sync_orders
from invu_sync.storage import SupabaseStore
from invu_sync.upstream.client import InvuClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="invu-sync", description="INVU POS to Supabase sales sync")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("sync", "Aggregate daily sales per branch and upsert them"),
        ("sync-orders", "Upsert individual orders per branch"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--desde", default=None, help="YYYY-MM-DD, today/hoy or yesterday/ayer")
        sp.add_argument("--hasta", default=None, help="Defaults to --desde")
        sp.add_argument("--branch", default=None, help="Single branch key (default: all)")

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", default=8000, type=int)
    return p


def run_sync(command: str, desde: str | None, hasta: str | None, branch: str | None) -> int:
    """Run one sync and print its JSON report. Returns the process exit code."""
    settings = SyncSettings.from_env()
    registry = BranchRegistry(settings.environ)
    client = InvuClient.from_settings(settings)
    store = SupabaseStore.from_settings(settings)

    start = resolve_date(desde)
    end = resolve_date(hasta, default=start)
    runner = sync_sales if command == "sync" else sync_orders
    report = runner(settings, client, store, registry, start, end, branch)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 0 if report.status_code == 200 else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Execute the command-line tool.

    Raises:
        SystemExit: Via argparse on invalid arguments.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("invu_sync.server:app", host=args.host, port=args.port)
        return 0

    try:
        return run_sync(args.command, args.desde, args.hasta, args.branch)
    except InvuSyncError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
