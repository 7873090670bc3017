"""HTTP surface for the sync pipeline (FastAPI).

Routes:
    POST /sync            aggregated daily sales for all or one branch
    POST /sync-orders     per-order ingestion for all or one branch
    GET  /orders          single-branch proxy, normalized orders
    GET  /attendance      single-branch proxy, raw or flattened attendance records
    GET  /daily-summary   KPIs read back from the sales table
    GET  /health          liveness

Run with ``invu-sync serve`` or ``uvicorn invu_sync.server:app``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from typing import Any, Optional

import requests
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from invu_sync import __version__
from invu_sync.attendance.api import fetch_attendance, resolve_window
from invu_sync.branches import BranchRegistry
from invu_sync.config import SyncSettings
from invu_sync.dates import range_bounds, resolve_date
from invu_sync.exceptions import (
    ConfigError,
    InvalidRequestError,
    MissingCredentialError,
    StorageError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamTimeoutError,
)
from invu_sync.sales.api import sync_sales
from invu_sync.sales.orders import sync_orders
from invu_sync.sales.summary import daily_summary
from invu_sync.sales.transform import normalize_orders
from invu_sync.storage import SalesStore, SupabaseStore
from invu_sync.upstream.adapters import sales_adapter
from invu_sync.upstream.client import InvuClient

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "OPTIONS"]
CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
FLAG_TRUE = ("1", "true")


class Services:
    """Collaborators shared by the routes, built on first use unless injected.

    Routes run in the server threadpool, so construction is serialized by a
    reentrant lock (client and store read settings while holding it).
    """

    def __init__(
        self,
        settings: SyncSettings | None = None,
        store: SalesStore | None = None,
        session: requests.Session | None = None,
        registry: BranchRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._session = session
        self._registry = registry
        self._client: InvuClient | None = None
        self._lock = threading.RLock()

    @property
    def settings(self) -> SyncSettings:
        with self._lock:
            if self._settings is None:
                self._settings = SyncSettings.from_env()
        return self._settings

    @property
    def registry(self) -> BranchRegistry:
        with self._lock:
            if self._registry is None:
                self._registry = BranchRegistry(self.settings.environ)
        return self._registry

    @property
    def client(self) -> InvuClient:
        with self._lock:
            if self._client is None:
                self._client = InvuClient.from_settings(self.settings, self._session)
        return self._client

    @property
    def store(self) -> SalesStore:
        with self._lock:
            if self._store is None:
                self._store = SupabaseStore.from_settings(self.settings)
        return self._store


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message, **extra}, status_code=status)


def upstream_status(exc: UpstreamError) -> int:
    """HTTP status for an upstream failure surfaced by a single-branch proxy."""
    if isinstance(exc, MissingCredentialError):
        return 500
    if isinstance(exc, UpstreamTimeoutError):
        return 504
    if isinstance(exc, UpstreamAuthError) and exc.status:
        return exc.status
    if exc.status and exc.status >= 400:
        return exc.status
    return 502


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return _error(exc.status_code, str(exc))

    @app.exception_handler(StorageError)
    async def storage_failed(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return _error(500, str(exc))

    @app.exception_handler(ConfigError)
    async def misconfigured(request: Request, exc: ConfigError) -> JSONResponse:
        logger.error("Configuration error on %s: %s", request.url.path, exc)
        return _error(500, str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_failed(request: Request, exc: UpstreamError) -> JSONResponse:
        return _error(
            upstream_status(exc),
            str(exc),
            kind=exc.kind,
            inv_url=exc.source,
            sample=exc.detail,
        )


def create_app(
    settings: SyncSettings | None = None,
    store: SalesStore | None = None,
    session: requests.Session | None = None,
    registry: BranchRegistry | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Runtime settings. Read from the environment on first use if None.
        store: Durable store. A SupabaseStore is built on first use if None.
        session: requests Session for upstream calls. A retrying one is built if None.
        registry: Branch registry. Built from the settings' environment if None.

    Returns:
        Configured FastAPI app with CORS and error handlers.
    """
    app = FastAPI(title="INVU Sync", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )
    services = Services(settings, store, session, registry)
    app.state.services = services
    _register_error_handlers(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "version": __version__}

    @app.post("/sync")
    def sync(
        desde: Optional[str] = None,
        hasta: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> JSONResponse:
        """Aggregate and upsert daily sales.

        A client disconnect does not stop branch fetches already running. Each
        upstream call is capped at settings.call_budget() seconds; a branch makes
        one call per chunk in sequence and branches run max_workers at a time.
        """
        start = resolve_date(desde)
        end = resolve_date(hasta, default=start)
        report = sync_sales(
            services.settings, services.client, services.store, services.registry, start, end, branch
        )
        return JSONResponse(report.to_dict(), status_code=report.status_code)

    @app.post("/sync-orders")
    def sync_orders_route(
        desde: Optional[str] = None,
        hasta: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> JSONResponse:
        """Upsert individual orders, one upstream call per branch per day (same call cap as /sync)."""
        start = resolve_date(desde)
        end = resolve_date(hasta, default=start)
        report = sync_orders(
            services.settings, services.client, services.store, services.registry, start, end, branch
        )
        return JSONResponse(report.to_dict(), status_code=report.status_code)

    @app.get("/orders")
    def orders(
        branch: str = "",
        from_: Optional[str] = Query(default=None, alias="from"),
        to: Optional[str] = None,
    ) -> dict[str, Any]:
        cfg = services.registry.get(branch)
        start = resolve_date(from_)
        end = resolve_date(to, default=start)
        fini, ffin = range_bounds(start, end)
        token = services.registry.token_for(cfg.key)
        if token is None:
            raise MissingCredentialError(f"No token configured ({cfg.token_env}).")
        adapter = sales_adapter(services.settings)
        response = services.client.fetch(adapter, token, fini, ffin)
        measures, raw_count = normalize_orders(response.payload, adapter.field_map)
        return {
            "ok": True,
            "branch": cfg.key,
            "from": start.isoformat(),
            "to": end.isoformat(),
            "fini": fini,
            "ffin": ffin,
            "inv_url": response.source,
            "raw_count": raw_count,
            "count": len(measures),
            "data": [asdict(m) for m in measures],
        }

    @app.get("/attendance")
    def attendance(
        branch: str = "",
        date: Optional[str] = None,
        fini: Optional[str] = None,
        ffin: Optional[str] = None,
        flat: Optional[str] = None,
    ) -> dict[str, Any]:
        services.registry.get(branch)
        start, end = resolve_window(date, fini, ffin)
        result = fetch_attendance(
            services.settings,
            services.client,
            services.registry,
            branch,
            start,
            end,
            flat=flat in FLAG_TRUE,
        )
        return result.to_dict()

    @app.get("/daily-summary")
    def summary(
        desde: Optional[str] = None,
        hasta: Optional[str] = None,
        sucursal_id: Optional[str] = None,
    ) -> dict[str, Any]:
        start = resolve_date(desde)
        end = resolve_date(hasta, default=start)
        result = daily_summary(services.store, services.settings.sales_table, start, end, sucursal_id)
        return result.to_dict()

    return app


app = create_app()
