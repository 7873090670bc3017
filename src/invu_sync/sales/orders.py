"""Per-order ingestion into the orders table.

Unlike the aggregated sales sync, this stores one row per upstream order,
keyed by (branch, invu_id), with the raw order kept alongside the extracted
amounts. Each branch is queried once per calendar day.

Orders without an id cannot be keyed and are skipped (and counted).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from invu_sync.coerce import first_present, normalize_date, to_number
from invu_sync.dates import DATE_RE, day_bounds, format_duration, iter_days, range_bounds
from invu_sync.exceptions import MissingCredentialError, UpstreamError
from invu_sync.sales.api import PAYLOAD_ERRORS, BranchSummary, SyncReport, fan_out, payload_error
from invu_sync.sales.transform import extract_orders, order_date, total_amount
from invu_sync.upstream.adapters import DEFAULT_FIELD_MAP, OrderFieldMap, UpstreamAdapter, sales_adapter

if TYPE_CHECKING:
    from invu_sync.branches import BranchConfig, BranchRegistry
    from invu_sync.config import SyncSettings
    from invu_sync.storage import SalesStore
    from invu_sync.upstream.client import InvuClient

logger = logging.getLogger(__name__)

ORDERS_CONFLICT_KEY = ("branch", "invu_id")
ORDER_ID_FIELDS = ("id", "invu_id", "id_orden")
CLOSE_DATE_FIELDS = ("fecha_cierre_date", "fecha_apertura_date")


@dataclass
class OrderRow:
    """One row of the orders table, keyed by (branch, invu_id)."""

    invu_id: str
    branch: str
    sucursal_id: str
    fecha: str | None
    subtotal: float
    itbms: float
    propina: float
    total: float
    num_items: float
    raw: dict[str, Any]

    def to_record(self) -> dict[str, Any]:
        return asdict(self)


def _date_only(value: Any) -> str | None:
    if isinstance(value, str) and DATE_RE.match(value[:10]):
        return value[:10]
    return normalize_date(value)


def _sum_key(items: Any, key: str) -> float:
    if not isinstance(items, list):
        return 0.0
    total = 0.0
    for item in items:
        if isinstance(item, Mapping):
            total += to_number(item.get(key)) or 0.0
    return total


def order_fecha(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> str | None:
    """Closing date, else opening date, else the generic date chain."""
    for name in CLOSE_DATE_FIELDS:
        fecha = _date_only(order.get(name))
        if fecha:
            return fecha
    return order_date(order, field_map)


def order_row(
    order: Any, branch: BranchConfig, field_map: OrderFieldMap = DEFAULT_FIELD_MAP
) -> OrderRow | None:
    """Build the stored row for one order. Returns None when the order has no id."""
    if not isinstance(order, Mapping):
        return None
    invu_id = first_present(order, ORDER_ID_FIELDS)
    if invu_id is None or str(invu_id).strip() == "":
        return None

    totales = order.get("totales")
    if not isinstance(totales, Mapping):
        totales = {}

    subtotal = to_number(totales.get("subtotal"))
    if subtotal is None:
        subtotal = to_number(first_present(order, field_map.subtotal)) or 0.0
    itbms = to_number(totales.get("tax"))
    if itbms is None:
        itbms = to_number(first_present(order, field_map.tax)) or 0.0
    total = to_number(totales.get("total"))
    if total is None:
        total = total_amount(order, field_map)

    return OrderRow(
        invu_id=str(invu_id),
        branch=branch.key,
        sucursal_id=branch.sucursal_uuid,
        fecha=order_fecha(order, field_map),
        subtotal=round(subtotal, 2),
        itbms=round(itbms, 2),
        propina=round(_sum_key(order.get("propinas"), "monto"), 2),
        total=round(total, 2),
        num_items=_sum_key(order.get("items"), "cantidad"),
        raw=dict(order),
    )


def order_rows(
    raw: Any, branch: BranchConfig, field_map: OrderFieldMap = DEFAULT_FIELD_MAP
) -> tuple[list[OrderRow], int]:
    """Build rows for a whole payload. Returns (rows, raw record count)."""
    orders = extract_orders(raw, field_map)
    rows = []
    for order in orders:
        row = order_row(order, branch, field_map)
        if row is not None:
            rows.append(row)
    skipped = len(orders) - len(rows)
    if skipped:
        logger.debug("Skipped %d of %d orders without an id for %s", skipped, len(orders), branch.key)
    return rows, len(orders)


def dedupe_orders(rows: Sequence[OrderRow]) -> list[OrderRow]:
    """Keep the last row per (branch, invu_id) so one batch never repeats a key."""
    by_key: dict[tuple[str, str], OrderRow] = {}
    for row in rows:
        by_key[(row.branch, row.invu_id)] = row
    return sorted(by_key.values(), key=lambda r: (r.fecha or "", r.branch, r.invu_id))


def fetch_branch_orders(
    client: InvuClient,
    adapter: UpstreamAdapter,
    branch: BranchConfig,
    token: str | None,
    desde: date,
    hasta: date,
) -> tuple[BranchSummary, list[OrderRow]]:
    """Fetch one branch day by day. A failing day fails the whole branch."""
    summary = BranchSummary(branch=branch.key, sucursal_id=branch.sucursal_uuid)
    rows: list[OrderRow] = []
    raw_count = 0
    days = 0
    try:
        if token is None:
            raise MissingCredentialError(f"Secret {branch.token_env} not configured")
        summary.state = "fetching"
        for day in iter_days(desde, hasta):
            fini, ffin = day_bounds(day)
            response = client.fetch(adapter, token, fini, ffin)
            summary.source = response.source
            try:
                day_rows, day_raw = order_rows(response.payload, branch, adapter.field_map)
            except PAYLOAD_ERRORS as e:
                raise payload_error(response.source, e) from e
            rows.extend(day_rows)
            raw_count += day_raw
            days += 1
    except UpstreamError as e:
        summary.fail(e)
        summary.dias = days
        logger.warning("Branch %s orders failed (%s): %s", branch.key, e.kind, e)
        return summary, []

    summary.ok = True
    summary.state = "normalized"
    summary.dias = days
    summary.registros = len(rows)
    summary.raw_registros = raw_count
    summary.skipped = raw_count - len(rows)
    summary.total = round(sum(r.total for r in rows), 2)
    summary.tickets = len(rows)
    summary.lineas = int(round(sum(r.num_items for r in rows)))
    logger.info("Branch %s: %d order(s) over %d day(s)", branch.key, len(rows), days)
    return summary, rows


def sync_orders(
    settings: SyncSettings,
    client: InvuClient,
    store: SalesStore,
    registry: BranchRegistry,
    desde: date,
    hasta: date,
    branch: str | None = None,
) -> SyncReport:
    """Sync individual orders for a date range into the orders table.

    Returns the same report shape and status tiers as sync_sales.

    Raises:
        InvalidRangeError: If desde is after hasta.
        UnknownBranchError: If branch is not configured.
        StorageWriteError: If the upsert fails.
    """
    started = time.perf_counter()
    fini, ffin = range_bounds(desde, hasta)
    selected = registry.select(branch)
    adapter = sales_adapter(settings)
    logger.info(
        "Syncing orders for %s to %s (branch=%s, up to %.1fs per upstream call)",
        desde,
        hasta,
        branch or "all",
        settings.call_budget(),
    )

    def run(cfg: BranchConfig) -> tuple[BranchSummary, list[OrderRow]]:
        return fetch_branch_orders(client, adapter, cfg, registry.token_for(cfg.key), desde, hasta)

    results = fan_out(run, selected, settings.max_workers)
    rows = dedupe_orders([row for _, branch_rows in results for row in branch_rows])
    report = SyncReport(
        desde=desde,
        hasta=hasta,
        fini=fini,
        ffin=ffin,
        branches=[summary for summary, _ in results],
        rows=rows,
    )
    if rows:
        report.inserted = store.upsert(
            settings.orders_table, [row.to_record() for row in rows], ORDERS_CONFLICT_KEY
        )

    logger.info(
        "Orders sync finished in %s: %d row(s) written, %d/%d branch(es) failed",
        format_duration(time.perf_counter() - started),
        report.inserted,
        len(report.failed),
        len(report.branches),
    )
    return report
