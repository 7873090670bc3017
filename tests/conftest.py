"""Shared fixtures: fake upstream sessions and an in-memory store."""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Sequence

import pytest

from invu_sync.branches import BranchRegistry
from invu_sync.config import SyncSettings
from invu_sync.upstream.client import InvuClient

ALL_TOKENS = {
    "SF_TOKEN": "tok-sf",
    "CANGREJO_TOKEN": "tok-cangrejo",
    "COSTA_TOKEN": "tok-costa",
    "MUSEO_TOKEN": "tok-museo",
    "CENTRAL_TOKEN": "tok-central",
}


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        if text is not None:
            self.text = text
        elif body is None:
            self.text = ""
        else:
            self.text = json.dumps(body)

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Stand-in for requests.Session that answers by the token in the auth header.

    Each route is a FakeResponse, an exception to raise, or a callable taking
    the URL. Unrouted tokens get an empty 200.
    """

    def __init__(self, routes: Mapping[str, Any] | None = None, auth_header: str = "Authorization") -> None:
        self.routes = dict(routes or {})
        self.auth_header = auth_header
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, headers: Mapping[str, str] | None = None, timeout: float | None = None, **kwargs: Any) -> FakeResponse:
        headers = dict(headers or {})
        token = headers.get(self.auth_header, "")
        self.calls.append({"url": url, "token": token, "timeout": timeout, "headers": headers})
        route = self.routes.get(token, FakeResponse(200, text=""))
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url)
        return route


class InMemoryStore:
    """SalesStore keeping rows in dicts keyed by their conflict columns."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.tables: dict[str, dict[tuple, dict[str, Any]]] = {}
        self.batches: list[tuple[str, list[dict[str, Any]], tuple[str, ...]]] = []
        self.fail_with = fail_with

    def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: Sequence[str]) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        conflict = tuple(on_conflict)
        self.batches.append((table, [dict(r) for r in rows], conflict))
        data = self.tables.setdefault(table, {})
        for row in rows:
            data[tuple(row[c] for c in conflict)] = dict(row)
        return len(rows)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

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
        out = []
        for row in self.rows(table):
            if not (start <= str(row[column]) <= end):
                continue
            if any(str(row.get(k)) != v for k, v in (equals or {}).items()):
                continue
            out.append(row)
        return out


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings.from_env(
        {
            "INVU_BASE_URL": "https://pos.test/api",
            "INVU_MAX_ATTEMPTS": "1",
            "SYNC_MAX_WORKERS": "5",
            **ALL_TOKENS,
        }
    )


@pytest.fixture
def registry(settings: SyncSettings) -> BranchRegistry:
    return BranchRegistry(settings.environ)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_client(settings: SyncSettings) -> Callable[[FakeSession], InvuClient]:
    def factory(session: FakeSession) -> InvuClient:
        return InvuClient(session, settings.invu_base_url, settings.auth_header)

    return factory
