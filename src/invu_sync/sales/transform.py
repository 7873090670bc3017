"""Row normalizer: upstream order payloads into per-order measures.

The upstream payload has no fixed schema. The order array may be the
top-level value or nested under one of several keys, and each measure may
live under any of several historical field names. This module locates the
array and reads each order through the ordered fallback lists of an
OrderFieldMap.

Orders without a resolvable date are dropped silently; they never fail the
batch.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from invu_sync.coerce import first_present, to_number
from invu_sync.upstream.adapters import DEFAULT_FIELD_MAP, FieldRule, OrderFieldMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderMeasures:
    """Measures read from one order, before any aggregation or rounding."""

    fecha: str
    total: float
    cogs: float
    tickets: float
    lineas: float


def extract_orders(raw: Any, field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> list[Any]:
    """Locate the order array in an arbitrarily shaped payload.

    Examples:
        >>> extract_orders([{"total": 1}])
        [{'total': 1}]
        >>> extract_orders({"meta": {}, "ordenes": [{"total": 1}]})
        [{'total': 1}]
        >>> extract_orders({"data": "nope"})
        []
    """
    if isinstance(raw, list):
        return raw
    if isinstance(raw, Mapping):
        for key in field_map.list_keys:
            value = raw.get(key)
            if isinstance(value, list):
                return value
    return []


def first_match(order: Mapping[str, Any], chain: tuple[FieldRule, ...]) -> Any:
    """Evaluate (field, coercion) pairs in order and return the first success."""
    for rule in chain:
        value = order.get(rule.name)
        if value is None:
            continue
        coerced = rule.coerce(value)
        if coerced is not None:
            return coerced
    return None


def order_date(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> str | None:
    return first_match(order, field_map.date)


def total_amount(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> float:
    """Total from the first numeric total field, else subtotal + tax (missing parts are 0)."""
    total = first_match(order, field_map.total)
    if total is not None:
        return total
    subtotal = to_number(first_present(order, field_map.subtotal)) or 0.0
    tax = to_number(first_present(order, field_map.tax)) or 0.0
    return subtotal + tax


def cogs_amount(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> float:
    cogs = first_match(order, field_map.cogs)
    return cogs if cogs is not None else 0.0


def ticket_count(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> float:
    """A declared positive count, else 1 (one order is one ticket)."""
    declared = to_number(first_present(order, field_map.tickets))
    if declared is not None and declared > 0:
        return declared
    return 1.0


def line_count(order: Mapping[str, Any], field_map: OrderFieldMap = DEFAULT_FIELD_MAP) -> float:
    """Length of the first array-valued line field, else a declared count, else 0."""
    for name in field_map.line_arrays:
        value = order.get(name)
        if isinstance(value, list):
            return float(len(value))
    declared = to_number(first_present(order, field_map.line_counts))
    return declared if declared is not None else 0.0


def normalize_order(
    order: Any, field_map: OrderFieldMap = DEFAULT_FIELD_MAP
) -> OrderMeasures | None:
    """Read one order. Returns None when the order has no resolvable date."""
    if not isinstance(order, Mapping):
        return None
    fecha = order_date(order, field_map)
    if fecha is None:
        return None
    return OrderMeasures(
        fecha=fecha,
        total=total_amount(order, field_map),
        cogs=cogs_amount(order, field_map),
        tickets=ticket_count(order, field_map),
        lineas=line_count(order, field_map),
    )


def normalize_orders(
    raw: Any, field_map: OrderFieldMap = DEFAULT_FIELD_MAP
) -> tuple[list[OrderMeasures], int]:
    """Normalize a whole payload.

    Args:
        raw: Parsed JSON payload (any shape), or None for an empty body.
        field_map: Field fallbacks to apply.

    Returns:
        Tuple of (normalized orders, raw record count). The raw count
        includes orders dropped for lack of a date.
    """
    orders = extract_orders(raw, field_map)
    measures: list[OrderMeasures] = []
    dropped = 0
    for order in orders:
        normalized = normalize_order(order, field_map)
        if normalized is None:
            dropped += 1
            continue
        measures.append(normalized)
    if dropped:
        logger.debug("Dropped %d of %d orders without a resolvable date", dropped, len(orders))
    return measures, len(orders)
