"""Tests for value coercion and the order normalizer's fallback chains."""

import pytest

from invu_sync.coerce import normalize_date, to_number
from invu_sync.sales.transform import (
    OrderMeasures,
    extract_orders,
    line_count,
    normalize_order,
    normalize_orders,
    ticket_count,
    total_amount,
)


class TestCoercion:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(12, 12.0), ("12.50", 12.5), (" 3 ", 3.0), ("", 0.0), (True, 1.0), ("abc", None), (None, None), ([], None)],
    )
    def test_to_number(self, value, expected) -> None:
        assert to_number(value) == expected

    def test_to_number_rejects_non_finite(self) -> None:
        assert to_number(float("nan")) is None
        assert to_number("inf") is None

    def test_huge_integers_are_unusable(self) -> None:
        assert to_number(10**400) is None
        assert normalize_date(10**400) is None
        assert normalize_date("1" + "0" * 400) is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2024-04-01", "2024-04-01"),
            (1712016000, "2024-04-02"),
            (1712016000000, "2024-04-02"),
            ("1712016000", "2024-04-02"),
            ("2024-04-01T10:30:00Z", "2024-04-01"),
            ("garbage", None),
            (None, None),
            (True, None),
        ],
    )
    def test_normalize_date(self, value, expected) -> None:
        assert normalize_date(value) == expected


class TestExtractOrders:
    def test_top_level_array(self) -> None:
        assert extract_orders([{"a": 1}]) == [{"a": 1}]

    def test_probes_keys_in_order(self) -> None:
        payload = {"ventas": [{"v": 1}], "ordenes": [{"o": 1}]}
        assert extract_orders(payload) == [{"o": 1}]

    def test_skips_non_array_candidates(self) -> None:
        assert extract_orders({"data": {"x": 1}, "result": [{"r": 1}]}) == [{"r": 1}]

    @pytest.mark.parametrize("payload", [None, "text", 5, {"foo": []}])
    def test_no_array(self, payload) -> None:
        assert extract_orders(payload) == []


class TestFieldChains:
    def test_date_chain_order(self) -> None:
        order = {"dia": "2024-04-03", "fecha_fin": "2024-04-09", "total": 1}
        assert normalize_order(order).fecha == "2024-04-03"

    def test_unparseable_date_falls_through(self) -> None:
        order = {"fecha": "??", "created_at": "2024-04-05T12:00:00Z", "total": 1}
        assert normalize_order(order).fecha == "2024-04-05"

    def test_total_chain_order(self) -> None:
        assert total_amount({"total_bruto": 5, "importe": 9}) == 5.0

    def test_non_numeric_total_falls_through(self) -> None:
        assert total_amount({"total": "n/a", "monto_total": "7.5"}) == 7.5

    def test_total_falls_back_to_subtotal_plus_tax(self) -> None:
        assert total_amount({"subtotal": 10, "iva": 0.7}) == pytest.approx(10.7)
        assert total_amount({"subtotal": 10}) == 10.0
        assert total_amount({}) == 0.0

    def test_cogs_defaults_to_zero(self) -> None:
        assert normalize_order({"fecha": "2024-04-01"}).cogs == 0.0
        assert normalize_order({"fecha": "2024-04-01", "costo_total": "4"}).cogs == 4.0

    def test_tickets(self) -> None:
        assert ticket_count({}) == 1.0
        assert ticket_count({"tickets": 0}) == 1.0
        assert ticket_count({"transacciones": 3}) == 3.0

    def test_line_count(self) -> None:
        assert line_count({"detalle": [1, 2, 3]}) == 3.0
        assert line_count({"items": [], "lineas": 4}) == 0.0
        assert line_count({"lineas": 4}) == 4.0
        assert line_count({"num_items": "2"}) == 2.0
        assert line_count({}) == 0.0


def test_order_without_date_is_dropped() -> None:
    payload = {"data": [{"total": 10}, {"total": 5, "fecha": "2024-04-01"}, "junk"]}
    measures, raw_count = normalize_orders(payload)
    assert raw_count == 3
    assert measures == [OrderMeasures("2024-04-01", 5.0, 0.0, 1.0, 0.0)]


def test_normalizing_a_normalized_row_is_stable() -> None:
    row = {"fecha": "2024-04-01", "sucursal_id": "sf", "total": 150.0, "cogs": 20.0, "tickets": 2, "lineas": 5}
    measures = normalize_order(row)
    assert measures == OrderMeasures("2024-04-01", 150.0, 20.0, 2.0, 5.0)


def test_empty_payload_is_zero_records() -> None:
    assert normalize_orders(None) == ([], 0)
