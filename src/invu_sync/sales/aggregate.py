"""Aggregator: per-order measures into one sales row per (fecha, sucursal).

Measures are accumulated in floating point and rounded only once, on the
final per-day and per-branch sums: money to cents, counts to integers.
Output rows are sorted by date ascending.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

import pandas as pd

from invu_sync.sales.transform import OrderMeasures

logger = logging.getLogger(__name__)

MONEY_COLUMNS = ["total", "cogs"]
COUNT_COLUMNS = ["tickets", "lineas"]
MEASURE_COLUMNS = MONEY_COLUMNS + COUNT_COLUMNS


@dataclass
class SalesRow:
    """One aggregated row of the sales table, keyed by (fecha, sucursal_id)."""

    fecha: str
    sucursal_id: str
    total: float
    cogs: float
    tickets: int
    lineas: int

    def to_record(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BranchTotals:
    """Branch-level sums over every day in the range."""

    dias: int = 0
    total: float = 0.0
    cogs: float = 0.0
    tickets: int = 0
    lineas: int = 0


def _round_money(value: float) -> float:
    return round(float(value), 2)


def _round_count(value: float) -> int:
    return int(round(float(value)))


def aggregate_by_day(
    measures: Sequence[OrderMeasures],
    sucursal_id: str,
) -> tuple[list[SalesRow], BranchTotals]:
    """Group one branch's orders by date and sum every measure.

    Args:
        measures: Normalized orders for one branch, in any order.
        sucursal_id: Branch key stamped on every output row.

    Returns:
        Tuple of (rows sorted by fecha, branch totals).

    Examples:
        >>> rows, totals = aggregate_by_day(
        ...     [OrderMeasures("2024-04-01", 100, 0, 1, 0), OrderMeasures("2024-04-01", 50, 0, 1, 0)],
        ...     "sf",
        ... )
        >>> rows[0].total, rows[0].tickets
        (150.0, 2)
    """
    if not measures:
        return [], BranchTotals()

    df = pd.DataFrame([asdict(m) for m in measures], columns=["fecha", *MEASURE_COLUMNS])
    daily = df.groupby("fecha", sort=True)[MEASURE_COLUMNS].sum()
    branch_sums = daily.sum()

    rows = [
        SalesRow(
            fecha=str(fecha),
            sucursal_id=sucursal_id,
            total=_round_money(values["total"]),
            cogs=_round_money(values["cogs"]),
            tickets=_round_count(values["tickets"]),
            lineas=_round_count(values["lineas"]),
        )
        for fecha, values in daily.iterrows()
    ]
    totals = BranchTotals(
        dias=len(rows),
        total=_round_money(branch_sums["total"]),
        cogs=_round_money(branch_sums["cogs"]),
        tickets=_round_count(branch_sums["tickets"]),
        lineas=_round_count(branch_sums["lineas"]),
    )
    logger.debug("Aggregated %d orders into %d day(s) for %s", len(measures), len(rows), sucursal_id)
    return rows, totals


def merge_rows(batches: Iterable[Sequence[SalesRow]]) -> list[SalesRow]:
    """Merge per-branch rows into one batch sorted by (fecha, sucursal_id)."""
    merged = [row for batch in batches for row in batch]
    merged.sort(key=lambda r: (r.fecha, r.sucursal_id))
    return merged
