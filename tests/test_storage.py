"""Tests for the Supabase REST store and the daily summary read-back."""

from datetime import date

import pytest
import requests
from conftest import FakeResponse, InMemoryStore

from invu_sync.config import SyncSettings
from invu_sync.exceptions import ConfigError, InvalidRangeError, StorageReadError, StorageWriteError
from invu_sync.sales.summary import daily_summary
from invu_sync.storage import SupabaseStore


class RecordingSession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response or FakeResponse(201, [{"id": 1}])
        self.error = error
        self.calls = []

    def _answer(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def post(self, url, **kwargs):
        return self._answer("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._answer("GET", url, **kwargs)


ROWS = [{"fecha": "2024-04-01", "sucursal_id": "sf", "total": 1.0}]


def test_upsert_request_shape() -> None:
    session = RecordingSession(FakeResponse(201, ROWS))
    store = SupabaseStore("https://db.test/", "secret", session=session)
    assert store.upsert("invu_ventas_detalle", ROWS, ("fecha", "sucursal_id")) == 1

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://db.test/rest/v1/invu_ventas_detalle"
    assert kwargs["params"] == {"on_conflict": "fecha,sucursal_id"}
    assert kwargs["json"] == ROWS
    assert kwargs["headers"]["Prefer"] == "resolution=merge-duplicates,return=representation"
    assert kwargs["headers"]["apikey"] == "secret"
    assert "secret" not in repr(store)


def test_upsert_empty_batch_sends_nothing() -> None:
    session = RecordingSession()
    assert SupabaseStore("https://db.test", "k", session=session).upsert("t", [], ("a",)) == 0
    assert session.calls == []


@pytest.mark.parametrize(
    "session",
    [
        RecordingSession(FakeResponse(409, text="conflict")),
        RecordingSession(error=requests.ConnectionError("down")),
    ],
)
def test_upsert_failures(session) -> None:
    store = SupabaseStore("https://db.test", "k", session=session)
    with pytest.raises(StorageWriteError):
        store.upsert("t", ROWS, ("fecha", "sucursal_id"))


def test_select_range_filters() -> None:
    session = RecordingSession(FakeResponse(200, ROWS))
    store = SupabaseStore("https://db.test", "k", session=session)
    assert store.select_range("t", "fecha", "2024-04-01", "2024-04-02", equals={"sucursal_id": "sf"}) == ROWS
    params = session.calls[0][2]["params"]
    assert ("fecha", "gte.2024-04-01") in params
    assert ("fecha", "lte.2024-04-02") in params
    assert ("sucursal_id", "eq.sf") in params


def test_select_range_rejects_non_list() -> None:
    store = SupabaseStore("https://db.test", "k", session=RecordingSession(FakeResponse(200, {"message": "x"})))
    with pytest.raises(StorageReadError):
        store.select_range("t", "fecha", "a", "b")


def test_from_settings_requires_credentials() -> None:
    with pytest.raises(ConfigError):
        SupabaseStore.from_settings(SyncSettings.from_env({}))
    store = SupabaseStore.from_settings(
        SyncSettings.from_env({"SUPABASE_URL": "https://db.test", "SERVICE_ROLE_KEY": "k"})
    )
    assert store.base_url == "https://db.test"


class TestDailySummary:
    @pytest.fixture
    def filled(self) -> InMemoryStore:
        store = InMemoryStore()
        store.upsert(
            "invu_ventas_detalle",
            [
                {"fecha": "2024-04-01", "sucursal_id": "sf", "total": 100.0, "cogs": 30.0},
                {"fecha": "2024-04-02", "sucursal_id": "sf", "total": 50.0, "cogs": 20.0},
                {"fecha": "2024-04-01", "sucursal_id": "museo", "total": 0.0, "cogs": 5.0},
                {"fecha": "2024-04-09", "sucursal_id": "sf", "total": 999.0, "cogs": 0.0},
            ],
            ("fecha", "sucursal_id"),
        )
        return store

    def test_per_sucursal_and_totals(self, filled) -> None:
        result = daily_summary(filled, "invu_ventas_detalle", date(2024, 4, 1), date(2024, 4, 2)).to_dict()
        by_suc = {r["sucursal_id"]: r for r in result["results"]}
        assert by_suc["sf"] == {
            "sucursal_id": "sf",
            "ventas": 150.0,
            "cogs": 50.0,
            "margen_bruto": 100.0,
            "margen_pct": 66.67,
        }
        assert by_suc["museo"]["margen_pct"] == 0.0
        assert result["totals"]["ventas"] == 150.0
        assert result["totals"]["margen_bruto"] == 95.0

    def test_filter_by_sucursal(self, filled) -> None:
        result = daily_summary(filled, "invu_ventas_detalle", date(2024, 4, 1), date(2024, 4, 30), "museo")
        assert [r["sucursal_id"] for r in result.por_sucursal] == ["museo"]

    def test_empty_range(self, filled) -> None:
        result = daily_summary(filled, "invu_ventas_detalle", date(2023, 1, 1), date(2023, 1, 2))
        assert result.por_sucursal == []
        assert result.totales["ventas"] == 0.0

    def test_inverted_range(self, filled) -> None:
        with pytest.raises(InvalidRangeError):
            daily_summary(filled, "invu_ventas_detalle", date(2024, 4, 2), date(2024, 4, 1))
