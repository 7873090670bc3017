"""Relational store access (Supabase PostgREST).

Writes are idempotent upserts keyed by a natural composite key: a repeated
batch overwrites the conflicting rows wholesale instead of adding to them.
One batch is sent as a single request, so the store applies it in a single
transaction.

The store is passed explicitly to the pipeline; tests substitute any object
implementing the SalesStore protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

import requests

from invu_sync.exceptions import ConfigError, StorageReadError, StorageWriteError

if TYPE_CHECKING:
    from invu_sync.config import SyncSettings

logger = logging.getLogger(__name__)

STORAGE_TIMEOUT = 30.0


class SalesStore(Protocol):
    """Minimal interface the pipeline needs from the durable store."""

    def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: Sequence[str]
    ) -> int:
        """Insert or overwrite rows keyed by on_conflict. Returns rows written."""
        ...

    def select_range(
        self,
        table: str,
        column: str,
        start: str,
        end: str,
        *,
        equals: Mapping[str, str] | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Return rows whose column lies in [start, end], optionally filtered by equality."""
        ...


class SupabaseStore:
    """SalesStore backed by the Supabase REST interface (PostgREST)."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        session: requests.Session | None = None,
        timeout: float = STORAGE_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, session: requests.Session | None = None
    ) -> SupabaseStore:
        """Create a store from settings.

        Raises:
            ConfigError: If SUPABASE_URL or the service key is missing.
        """
        if not settings.storage_configured:
            raise ConfigError("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY not configured.")
        return cls(settings.supabase_url, settings.service_key, session=session)

    def __repr__(self) -> str:
        return f"SupabaseStore(base_url={self.base_url!r})"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-client-info": "invu-sync",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: Sequence[str]
    ) -> int:
        """Upsert a batch, overwriting rows that collide on on_conflict.

        Raises:
            StorageWriteError: On transport failure or a non-2xx response.
        """
        if not rows:
            return 0
        conflict = ",".join(on_conflict)
        try:
            resp = self.session.post(
                self._table_url(table),
                params={"on_conflict": conflict},
                json=list(rows),
                headers=self._headers("resolution=merge-duplicates,return=representation"),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageWriteError(f"Error saving {table}: {e}") from e

        if not (200 <= resp.status_code < 300):
            raise StorageWriteError(
                f"Error saving {table}: HTTP {resp.status_code} {(resp.text or '')[:200]}"
            )
        try:
            written = resp.json()
        except ValueError:
            written = None
        count = len(written) if isinstance(written, list) else len(rows)
        logger.info("Upserted %d row(s) into %s (on_conflict=%s)", count, table, conflict)
        return count

    def select_range(
        self,
        table: str,
        column: str,
        start: str,
        end: str,
        *,
        equals: Mapping[str, str] | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Read rows with start <= column <= end.

        Raises:
            StorageReadError: On transport failure, a non-2xx response or a non-list body.
        """
        params: list[tuple[str, str]] = [
            ("select", columns),
            (column, f"gte.{start}"),
            (column, f"lte.{end}"),
        ]
        for key, value in (equals or {}).items():
            params.append((key, f"eq.{value}"))
        try:
            resp = self.session.get(
                self._table_url(table),
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageReadError(f"Error reading {table}: {e}") from e
        if not (200 <= resp.status_code < 300):
            raise StorageReadError(
                f"Error reading {table}: HTTP {resp.status_code} {(resp.text or '')[:200]}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise StorageReadError(f"Error reading {table}: response is not JSON") from e
        if not isinstance(data, list):
            raise StorageReadError(f"Error reading {table}: expected a list of rows")
        return data
