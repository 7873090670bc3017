"""Sales domain: aggregated daily sales, per-order ingestion and summaries.

Example:
    >>> from datetime import date
    >>> from invu_sync.sales import sync_sales
    >>>
    >>> report = sync_sales(settings, client, store, registry, date(2024, 4, 1), date(2024, 4, 7))
    >>> report.status_code
    200
"""

from invu_sync.sales.aggregate import BranchTotals, SalesRow, aggregate_by_day, merge_rows
from invu_sync.sales.api import (
    BranchSummary,
    SyncReport,
    collect_sales,
    fetch_branch_sales,
    overall_status,
    sync_sales,
    write_sales,
)
from invu_sync.sales.orders import OrderRow, order_row, sync_orders
from invu_sync.sales.summary import DailySummary, daily_summary
from invu_sync.sales.transform import OrderMeasures, extract_orders, normalize_order, normalize_orders

__all__ = [
    "BranchSummary",
    "BranchTotals",
    "DailySummary",
    "OrderMeasures",
    "OrderRow",
    "SalesRow",
    "SyncReport",
    "aggregate_by_day",
    "collect_sales",
    "daily_summary",
    "extract_orders",
    "fetch_branch_sales",
    "merge_rows",
    "normalize_order",
    "normalize_orders",
    "order_row",
    "overall_status",
    "sync_orders",
    "sync_sales",
    "write_sales",
]
