"""INVU Sync - POS sales normalization and idempotent ingestion.

This package fetches loosely-typed order and attendance records from the
INVU point-of-sale API for every restaurant branch, normalizes them into
canonical rows, aggregates them per branch and day, and upserts them into
Supabase so that repeated runs converge instead of duplicating.

Module Structure:
    invu_sync.sales: Sales sync (sales.api), per-order ingestion (sales.orders),
        daily summaries (sales.summary)
    invu_sync.attendance: Single-branch attendance queries
    invu_sync.upstream: POS HTTP client and endpoint adapters
    invu_sync.storage: Supabase store (idempotent upsert, range reads)
    invu_sync.branches: Branch registry and credential lookup
    invu_sync.config: SyncSettings configuration
    invu_sync.server: FastAPI application

Quick Start:
    >>> from datetime import date
    >>> from invu_sync import BranchRegistry, SyncSettings
    >>> from invu_sync.sales import sync_sales
    >>> from invu_sync.storage import SupabaseStore
    >>> from invu_sync.upstream import InvuClient
    >>>
    >>> settings = SyncSettings.from_env()
    >>> report = sync_sales(
    ...     settings,
    ...     InvuClient.from_settings(settings),
    ...     SupabaseStore.from_settings(settings),
    ...     BranchRegistry(settings.environ),
    ...     date(2024, 4, 1),
    ...     date(2024, 4, 7),
    ... )
    >>> report.status_code
    200

Status Reference:
    200: every branch synced
    207: some branches failed (see report["branches"])
    502: every branch failed
    500: the store rejected the write (nothing is claimed as inserted)
"""

__version__ = "0.3.0"

from invu_sync.branches import BranchConfig, BranchRegistry
from invu_sync.config import SyncSettings
from invu_sync.exceptions import (
    ConfigError,
    InvalidDateError,
    InvalidRangeError,
    InvalidRequestError,
    InvuSyncError,
    StorageWriteError,
    UpstreamError,
)

__all__ = [
    "BranchConfig",
    "BranchRegistry",
    "ConfigError",
    "InvalidDateError",
    "InvalidRangeError",
    "InvalidRequestError",
    "InvuSyncError",
    "StorageWriteError",
    "SyncSettings",
    "UpstreamError",
    "__version__",
]
