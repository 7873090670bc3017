"""Public API for the multi-branch sales sync.

This module orchestrates the sales pipeline:
1. Fans out over the selected branches (bounded thread pool)
2. Fetches each branch's orders for the requested range from INVU
3. Normalizes and aggregates them into one row per (fecha, sucursal)
4. Merges every branch's rows and upserts them on (fecha, sucursal_id)

Branch failures are isolated: each one is captured in its BranchSummary and
never raised past this module. Only storage failures abort the sync.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from invu_sync.dates import day_bounds, format_duration, iter_chunks, range_bounds
from invu_sync.exceptions import MissingCredentialError, UpstreamError, UpstreamFormatError
from invu_sync.sales.aggregate import BranchTotals, SalesRow, aggregate_by_day, merge_rows
from invu_sync.sales.transform import OrderMeasures, normalize_orders
from invu_sync.upstream.adapters import UpstreamAdapter, sales_adapter

if TYPE_CHECKING:
    from invu_sync.branches import BranchConfig, BranchRegistry
    from invu_sync.config import SyncSettings
    from invu_sync.storage import SalesStore
    from invu_sync.upstream.client import InvuClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

SALES_CONFLICT_KEY = ("fecha", "sucursal_id")

STATUS_OK = 200
STATUS_PARTIAL = 207
STATUS_FAILED = 502

# Raised by coercion or aggregation on a payload whose shape or values are unusable.
PAYLOAD_ERRORS = (TypeError, ValueError, OverflowError, AttributeError, KeyError)


@dataclass
class BranchSummary:
    """Per-branch outcome of a sync run. Reported, never persisted.

    state moves pending -> fetching -> normalized | failed.
    """

    branch: str
    sucursal_id: str
    ok: bool = False
    state: str = "pending"
    error: str | None = None
    error_kind: str | None = None
    dias: int = 0
    registros: int = 0
    raw_registros: int = 0
    total: float = 0.0
    cogs: float = 0.0
    tickets: int = 0
    lineas: int = 0
    skipped: int = 0
    source: str | None = None

    def fail(self, exc: UpstreamError) -> None:
        self.ok = False
        self.state = "failed"
        self.error = str(exc)
        self.error_kind = exc.kind
        if exc.source:
            self.source = exc.source

    def apply_totals(self, totals: BranchTotals, raw_count: int, skipped: int = 0) -> None:
        self.ok = True
        self.state = "normalized"
        self.dias = totals.dias
        self.registros = totals.dias
        self.raw_registros = raw_count
        self.skipped = skipped
        self.total = totals.total
        self.cogs = totals.cogs
        self.tickets = totals.tickets
        self.lineas = totals.lineas

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def overall_status(summaries: Sequence[BranchSummary]) -> int:
    """200 when no branch failed, 502 when all failed, 207 otherwise."""
    failed = sum(1 for s in summaries if not s.ok)
    if failed == 0:
        return STATUS_OK
    if failed == len(summaries):
        return STATUS_FAILED
    return STATUS_PARTIAL


@dataclass
class SyncReport:
    """Result of one sync run, shaped for the HTTP response."""

    desde: date
    hasta: date
    fini: int
    ffin: int
    branches: list[BranchSummary]
    rows: list[Any] = field(default_factory=list)
    inserted: int = 0
    fetched_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def failed(self) -> list[BranchSummary]:
        return [b for b in self.branches if not b.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def status_code(self) -> int:
        return overall_status(self.branches)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": self.ok,
            "inserted": self.inserted,
            "branches": [b.to_dict() for b in self.branches],
            "from": self.desde.isoformat(),
            "to": self.hasta.isoformat(),
            "fini": self.fini,
            "ffin": self.ffin,
            "fetched_at": self.fetched_at,
        }
        if self.failed:
            body["notes"] = "Some branches failed, check 'branches'."
        return body


def payload_error(source: str | None, exc: Exception) -> UpstreamFormatError:
    """Wrap a coercion or aggregation failure as a branch-level format error."""
    return UpstreamFormatError(
        f"Unusable INVU payload: {type(exc).__name__}", source=source, detail=str(exc)[:200]
    )


def fan_out(
    task: Callable[[BranchConfig], T],
    branches: Sequence[BranchConfig],
    max_workers: int = 5,
) -> list[T]:
    """Run task once per branch on a bounded pool, returning results in branch order.

    With one worker (or one branch) the tasks run sequentially in the caller's
    thread.
    """
    workers = max(1, min(max_workers, len(branches)))
    if workers == 1:
        return [task(cfg) for cfg in branches]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="invu-branch") as pool:
        return list(pool.map(task, branches))


def fetch_branch_sales(
    client: InvuClient,
    adapter: UpstreamAdapter,
    branch: BranchConfig,
    token: str | None,
    desde: date,
    hasta: date,
    chunk_days: int = 0,
) -> tuple[BranchSummary, list[SalesRow]]:
    """Fetch, normalize and aggregate one branch. Never raises UpstreamError.

    The requested range is tiled into chunks (a single chunk when chunk_days
    is 0), one upstream call per chunk, and every chunk's orders are
    aggregated together.
    """
    summary = BranchSummary(branch=branch.key, sucursal_id=branch.key)
    try:
        if token is None:
            raise MissingCredentialError(f"Secret {branch.token_env} not configured")

        summary.state = "fetching"
        measures: list[OrderMeasures] = []
        raw_count = 0
        for chunk_start, chunk_end in iter_chunks(desde, hasta, chunk_days):
            fini = day_bounds(chunk_start)[0]
            ffin = day_bounds(chunk_end)[1]
            response = client.fetch(adapter, token, fini, ffin)
            if summary.source is None:
                summary.source = response.source
            try:
                chunk_measures, chunk_raw = normalize_orders(response.payload, adapter.field_map)
            except PAYLOAD_ERRORS as e:
                raise payload_error(response.source, e) from e
            measures.extend(chunk_measures)
            raw_count += chunk_raw
        try:
            rows, totals = aggregate_by_day(measures, branch.key)
        except PAYLOAD_ERRORS as e:
            raise payload_error(summary.source, e) from e
    except UpstreamError as e:
        if summary.source is None and token is not None:
            summary.source = client.url_for(adapter, *range_bounds(desde, hasta))
        summary.fail(e)
        logger.warning("Branch %s failed (%s): %s", branch.key, e.kind, e)
        return summary, []

    summary.apply_totals(totals, raw_count, raw_count - len(measures))
    logger.info(
        "Branch %s: %d raw order(s) -> %d day row(s), total %.2f",
        branch.key,
        raw_count,
        len(rows),
        totals.total,
    )
    return summary, rows


def collect_sales(
    client: InvuClient,
    registry: BranchRegistry,
    desde: date,
    hasta: date,
    *,
    adapter: UpstreamAdapter,
    branch: str | None = None,
    max_workers: int = 5,
    chunk_days: int = 0,
) -> SyncReport:
    """Run the fetch/normalize/aggregate stage for every selected branch.

    Branch tasks share no mutable state; their results are merged only after
    all of them have completed.

    Raises:
        InvalidRangeError: If desde is after hasta.
        UnknownBranchError: If branch is given but not configured.
    """
    fini, ffin = range_bounds(desde, hasta)
    selected = registry.select(branch)

    def run(cfg: BranchConfig) -> tuple[BranchSummary, list[SalesRow]]:
        return fetch_branch_sales(
            client, adapter, cfg, registry.token_for(cfg.key), desde, hasta, chunk_days
        )

    results = fan_out(run, selected, max_workers)
    summaries = [summary for summary, _ in results]
    rows = merge_rows(branch_rows for _, branch_rows in results)
    return SyncReport(desde=desde, hasta=hasta, fini=fini, ffin=ffin, branches=summaries, rows=rows)


def write_sales(store: SalesStore, table: str, rows: Sequence[SalesRow]) -> int:
    """Upsert aggregated rows on (fecha, sucursal_id). Returns rows written.

    Raises:
        StorageWriteError: If the store rejects the batch.
    """
    if not rows:
        return 0
    return store.upsert(table, [row.to_record() for row in rows], SALES_CONFLICT_KEY)


def sync_sales(
    settings: SyncSettings,
    client: InvuClient,
    store: SalesStore,
    registry: BranchRegistry,
    desde: date,
    hasta: date,
    branch: str | None = None,
) -> SyncReport:
    """Sync aggregated daily sales for a date range into the sales table.

    Args:
        settings: Runtime settings (table names, fan-out, chunking, timeouts).
        client: Upstream client.
        store: Durable store.
        registry: Branch registry with credentials.
        desde: First business day (inclusive).
        hasta: Last business day (inclusive).
        branch: Optional single branch key.

    Returns:
        SyncReport with per-branch summaries and the number of rows written.

    Raises:
        InvalidRangeError: If desde is after hasta.
        UnknownBranchError: If branch is not configured.
        StorageWriteError: If the upsert fails. No partial count is reported.

    Examples:
        >>> report = sync_sales(settings, client, store, registry, date(2024, 4, 1), date(2024, 4, 1))
        >>> report.status_code
        200
    """
    started = time.perf_counter()
    logger.info(
        "Syncing sales for %s to %s (branch=%s, up to %.1fs per upstream call)",
        desde,
        hasta,
        branch or "all",
        settings.call_budget(),
    )

    report = collect_sales(
        client,
        registry,
        desde,
        hasta,
        adapter=sales_adapter(settings),
        branch=branch,
        max_workers=settings.max_workers,
        chunk_days=settings.chunk_days,
    )
    report.inserted = write_sales(store, settings.sales_table, report.rows)

    logger.info(
        "Sales sync finished in %s: %d row(s) written, %d/%d branch(es) failed",
        format_duration(time.perf_counter() - started),
        report.inserted,
        len(report.failed),
        len(report.branches),
    )
    return report
