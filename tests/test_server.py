"""Tests for the HTTP surface (FastAPI TestClient)."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import ALL_TOKENS, FakeResponse, FakeSession, InMemoryStore
from fastapi.testclient import TestClient

from invu_sync import __version__, server
from invu_sync.branches import BranchRegistry
from invu_sync.config import SyncSettings
from invu_sync.exceptions import StorageWriteError
from invu_sync.server import Services, create_app

SF_ORDERS = FakeResponse(
    200,
    {"data": [{"total": 100, "fecha": "2024-04-01"}, {"total": 50, "fecha": "2024-04-01"}]},
)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession({"tok-sf": SF_ORDERS})


@pytest.fixture
def client(settings, store, session, registry) -> TestClient:
    return TestClient(create_app(settings=settings, store=store, session=session, registry=registry))


def test_health(client) -> None:
    assert client.get("/health").json() == {"ok": True, "version": __version__}


def test_sync_single_branch(client, store) -> None:
    resp = client.post("/sync", params={"desde": "2024-04-01", "hasta": "2024-04-01", "branch": "sf"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["inserted"] == 1
    assert body["from"] == "2024-04-01"
    assert body["branches"][0]["total"] == 150.0
    assert store.rows("invu_ventas_detalle")[0]["tickets"] == 2


def test_sync_partial_failure_status(client, session) -> None:
    session.routes["tok-costa"] = FakeResponse(403, text="no")
    resp = client.post("/sync", params={"desde": "2024-04-01"})
    assert resp.status_code == 207
    assert len(resp.json()["branches"]) == 5


@pytest.mark.parametrize(
    "params",
    [
        {"desde": "2024-02-30"},
        {"desde": "not-a-date"},
        {"desde": "2024-04-02", "hasta": "2024-04-01"},
        {"desde": "2024-04-01", "branch": "paris"},
    ],
)
def test_sync_bad_input_is_400(client, params) -> None:
    resp = client.post("/sync", params=params)
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


def test_storage_failure_is_500(settings, registry, session) -> None:
    store = InMemoryStore(fail_with=StorageWriteError("Error saving invu_ventas_detalle: HTTP 500"))
    client = TestClient(create_app(settings=settings, store=store, session=session, registry=registry))
    resp = client.post("/sync", params={"desde": "2024-04-01", "branch": "sf"})
    assert resp.status_code == 500
    assert "inserted" not in resp.json()


def test_missing_storage_config_is_500(session) -> None:
    settings = SyncSettings.from_env(dict(ALL_TOKENS))
    client = TestClient(create_app(settings=settings, session=session))
    resp = client.post("/sync", params={"desde": "2024-04-01", "branch": "sf"})
    assert resp.status_code == 500
    assert "SUPABASE_URL" in resp.json()["error"]


def test_sync_orders(client, session, store) -> None:
    session.routes["tok-sf"] = FakeResponse(200, {"data": [{"id": 7, "fecha": "2024-04-01", "total": 5}]})
    resp = client.post("/sync-orders", params={"desde": "2024-04-01", "branch": "sf"})
    assert resp.status_code == 200
    assert store.rows("invu_ventas")[0]["invu_id"] == "7"


def test_cors_preflight(client) -> None:
    resp = client.options(
        "/sync",
        headers={
            "Origin": "https://dashboard.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]


def test_orders_proxy(client) -> None:
    resp = client.get("/orders", params={"branch": "sf", "from": "2024-04-01", "to": "2024-04-01"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    assert body["data"][0]["fecha"] == "2024-04-01"


def test_orders_proxy_passes_upstream_status(client, session) -> None:
    session.routes["tok-sf"] = FakeResponse(403, text="expired")
    resp = client.get("/orders", params={"branch": "sf", "from": "2024-04-01"})
    assert resp.status_code == 403
    assert resp.json()["kind"] == "auth"


def test_attendance(client, session) -> None:
    session.routes["tok-museo"] = FakeResponse(200, [{"empleado": 1}, {"empleado": 2}])
    resp = client.get("/attendance", params={"branch": "museo", "fini": "100", "ffin": "200"})
    assert resp.status_code == 200
    assert resp.json()["count"] == 2
    assert resp.json()["fini"] == 100


def test_attendance_errors(settings, store, session) -> None:
    client = TestClient(create_app(settings=settings, store=store, session=session, registry=BranchRegistry({})))
    assert client.get("/attendance", params={"branch": "nowhere"}).status_code == 400
    assert client.get("/attendance", params={"branch": "sf", "fini": "5"}).status_code == 400
    assert client.get("/attendance", params={"branch": "sf", "date": "2024-04-01"}).status_code == 500


def test_daily_summary(client, store) -> None:
    client.post("/sync", params={"desde": "2024-04-01", "branch": "sf"})
    resp = client.get("/daily-summary", params={"desde": "2024-04-01", "hasta": "2024-04-01"})
    assert resp.status_code == 200
    assert resp.json()["totals"]["ventas"] == 150.0


@pytest.mark.parametrize(("flag", "count"), [("1", 2), ("true", 2), ("0", 1)])
def test_attendance_flat_flag(client, session, flag, count) -> None:
    session.routes["tok-museo"] = FakeResponse(
        200, {"employees": [{"id": 1, "movimientos": [{"code": "in"}, {"code": "out"}]}]}
    )
    resp = client.get("/attendance", params={"branch": "museo", "date": "2024-04-01", "flat": flag})
    assert resp.status_code == 200
    assert resp.json()["count"] == count


def test_services_built_once_under_concurrency(settings, session, monkeypatch) -> None:
    built = []

    def build(settings, session=None):
        built.append(session)
        return object()

    monkeypatch.setattr(server.InvuClient, "from_settings", build)
    services = Services(settings=settings, session=session)
    with ThreadPoolExecutor(max_workers=8) as pool:
        clients = list(pool.map(lambda _: services.client, range(32)))

    assert len(built) == 1
    assert all(c is clients[0] for c in clients)
