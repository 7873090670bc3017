"""Tests for attendance window resolution and fetching."""

from datetime import datetime, timezone

import pytest
from conftest import FakeResponse, FakeSession

from invu_sync.attendance.api import extract_records, fetch_attendance, flatten_movements, resolve_window
from invu_sync.branches import BranchRegistry
from invu_sync.dates import day_bounds
from invu_sync.exceptions import InvalidRangeError, MissingCredentialError

NOW = datetime(2024, 4, 2, 3, 0, tzinfo=timezone.utc)


def test_window_from_date() -> None:
    assert resolve_window("2024-04-01") == day_bounds("2024-04-01")


def test_window_from_epoch_pair() -> None:
    assert resolve_window(None, "100", "200") == (100, 200)
    with pytest.raises(InvalidRangeError):
        resolve_window(None, "100", None)


def test_window_defaults_to_business_today() -> None:
    assert resolve_window(now=NOW) == day_bounds("2024-04-01")


def test_extract_records() -> None:
    assert extract_records([1, 2]) == [1, 2]
    assert extract_records({"data": [3]}) == [3]
    assert extract_records({"employees": [4]}) == [4]
    assert extract_records({"data": [5], "employees": [6]}) == [5]
    assert extract_records({"data": "x"}) == []
    assert extract_records(None) == []


def test_fetch_uses_attendance_endpoint(settings, registry, make_client) -> None:
    session = FakeSession({"tok-museo": FakeResponse(200, {"data": [{"empleado": "a"}]})})
    result = fetch_attendance(settings, make_client(session), registry, "museo", 100, 200)

    assert result.to_dict()["count"] == 1
    assert result.to_dict()["mode"] == "raw"
    assert "empleados/movimientos/fini/100/ffin/200" in result.source
    assert session.calls[0]["timeout"] == settings.attendance_timeout


def test_fetch_missing_token(settings, make_client) -> None:
    with pytest.raises(MissingCredentialError):
        fetch_attendance(settings, make_client(FakeSession()), BranchRegistry({}), "sf", 1, 2)


def test_flatten_movements() -> None:
    employees = [
        {"id": 7, "movimientos": [{"fecha": "2024-04-01", "code": "in"}, {"total": 12.5, "centro": "bar"}]},
        {"id": 8, "movimientos": "none"},
        "not-an-employee",
        {"movimientos": [{"empleado_id": 9, "sucursal_id": "u-1", "qty": 2, "monto": 3}]},
    ]
    assert flatten_movements(employees, "sf") == [
        {"empleado_id": 7, "sucursal_id": None, "centro": "sf", "code": "in", "qty": 1, "monto": 0, "fecha": "2024-04-01"},
        {"empleado_id": 7, "sucursal_id": None, "centro": "bar", "code": "attendance", "qty": 1, "monto": 12.5, "fecha": None},
        {"empleado_id": 9, "sucursal_id": "u-1", "centro": "sf", "code": "attendance", "qty": 2, "monto": 3, "fecha": None},
    ]


def test_fetch_flat_reads_employees_key(settings, registry, make_client) -> None:
    payload = {"employees": [{"id": 1, "movimientos": [{"fecha": "2024-04-01"}, {"fecha": "2024-04-01"}]}]}
    session = FakeSession({"tok-museo": FakeResponse(200, payload)})
    result = fetch_attendance(settings, make_client(session), registry, "museo", 100, 200, flat=True)

    body = result.to_dict()
    assert body["mode"] == "flat"
    assert body["count"] == 2
    assert body["data"][0]["centro"] == "museo"
