"""Unified configuration for INVU Sync.

This module provides a single configuration class used across all domains
(sales, orders, attendance, storage). Values come from environment
variables; every key has a default except the secrets.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from invu_sync.exceptions import ConfigError

DEFAULT_INVU_BASE = "https://api6.invupos.com/invuApiPos"
DEFAULT_SALES_PATH = "index.php?r=citas/ordenesAllAdv/fini/{F_INI}/ffin/{F_FIN}/tipo/all"
DEFAULT_ATTENDANCE_PATH = "index.php?r=empleados/movimientos/fini/{F_INI}/ffin/{F_FIN}"


def _env_int(env: Mapping[str, str], names: tuple[str, ...], default: int) -> int:
    for name in names:
        raw = env.get(name)
        if raw is None or not raw.strip():
            continue
        try:
            return int(float(raw))
        except ValueError as e:
            raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_str(env: Mapping[str, str], names: tuple[str, ...], default: str = "") -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return default


@dataclass
class SyncSettings:
    """Runtime settings for the sync pipeline and HTTP service.

    Attributes:
        supabase_url: Storage base URL (PostgREST lives under /rest/v1).
        service_key: Storage service credential. Hidden from repr.
        invu_base_url: Upstream base URL, without trailing slash.
        sales_path: Orders path template with {F_INI}/{F_FIN} placeholders.
        attendance_path: Attendance path template with the same placeholders.
        auth_header: Header carrying the raw branch token.
        timeout: Per-call timeout in seconds for order queries.
        attendance_timeout: Per-call timeout in seconds for attendance queries.
        max_attempts: Total attempts per upstream call (1 means no retry).
        retry_backoff: Linear backoff step in seconds between attempts.
        max_workers: Bounded fan-out over branches (1 means sequential).
        chunk_days: 0 requests the whole range at once; N tiles it in N-day chunks.
        sales_table: Aggregated table keyed by (fecha, sucursal_id).
        orders_table: Per-order table keyed by (branch, invu_id).
        environ: Snapshot of the environment, used for token lookup.
    """

    supabase_url: str = ""
    service_key: str = field(default="", repr=False)
    invu_base_url: str = DEFAULT_INVU_BASE
    sales_path: str = DEFAULT_SALES_PATH
    attendance_path: str = DEFAULT_ATTENDANCE_PATH
    auth_header: str = "Authorization"
    timeout: float = 20.0
    attendance_timeout: float = 15.0
    max_attempts: int = 2
    retry_backoff: float = 0.25
    max_workers: int = 5
    chunk_days: int = 0
    sales_table: str = "invu_ventas_detalle"
    orders_table: str = "invu_ventas"
    environ: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SyncSettings:
        """Create SyncSettings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            SyncSettings instance.

        Raises:
            ConfigError: If a numeric setting cannot be parsed or is out of range.

        Examples:
            >>> settings = SyncSettings.from_env({"INVU_TIMEOUT_MS": "15000"})
            >>> settings.timeout
            15.0
        """
        env = dict(os.environ if environ is None else environ)

        settings = cls(
            supabase_url=_env_str(env, ("SUPABASE_URL",)).rstrip("/"),
            service_key=_env_str(env, ("SUPABASE_SERVICE_ROLE_KEY", "SERVICE_ROLE_KEY")),
            invu_base_url=_env_str(env, ("INVU_BASE_URL",), DEFAULT_INVU_BASE).rstrip("/"),
            sales_path=_env_str(env, ("INVU_SALES_PATH",), DEFAULT_SALES_PATH),
            attendance_path=_env_str(env, ("INVU_ATTENDANCE_PATH",), DEFAULT_ATTENDANCE_PATH),
            auth_header=_env_str(env, ("INVU_AUTH_HEADER",), "Authorization"),
            timeout=_env_int(env, ("INVU_TIMEOUT_MS", "INVU_SALES_TIMEOUT_MS"), 20000) / 1000.0,
            attendance_timeout=_env_int(env, ("INVU_ATTENDANCE_TIMEOUT_MS",), 15000) / 1000.0,
            max_attempts=_env_int(env, ("INVU_MAX_ATTEMPTS",), 2),
            retry_backoff=_env_float(env, "INVU_RETRY_BACKOFF", 0.25),
            max_workers=_env_int(env, ("SYNC_MAX_WORKERS",), 5),
            chunk_days=_env_int(env, ("SYNC_CHUNK_DAYS",), 0),
            sales_table=_env_str(env, ("SALES_TABLE",), "invu_ventas_detalle"),
            orders_table=_env_str(env, ("ORDERS_TABLE",), "invu_ventas"),
            environ=env,
        )
        settings.validate()
        return settings

    def call_budget(self, timeout: float | None = None) -> float:
        """Worst-case seconds one upstream call can take, retries and backoff included.

        Examples:
            >>> SyncSettings(timeout=20.0, max_attempts=2, retry_backoff=0.25).call_budget()
            40.25
        """
        per_attempt = self.timeout if timeout is None else timeout
        attempts = max(self.max_attempts, 1)
        return attempts * per_attempt + self.retry_backoff * sum(range(attempts))

    def validate(self) -> None:
        """Check value ranges. Raises ConfigError on the first bad value."""
        if self.timeout <= 0 or self.attendance_timeout <= 0:
            raise ConfigError("Upstream timeouts must be positive")
        if self.max_attempts < 1:
            raise ConfigError("INVU_MAX_ATTEMPTS must be at least 1")
        if self.retry_backoff < 0:
            raise ConfigError("INVU_RETRY_BACKOFF cannot be negative")
        if self.max_workers < 1:
            raise ConfigError("SYNC_MAX_WORKERS must be at least 1")
        if self.chunk_days < 0:
            raise ConfigError("SYNC_CHUNK_DAYS cannot be negative")

    @property
    def storage_configured(self) -> bool:
        return bool(self.supabase_url and self.service_key)
