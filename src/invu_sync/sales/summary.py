"""Daily KPI summary read back from the aggregated sales table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

import pandas as pd

from invu_sync.dates import range_bounds

if TYPE_CHECKING:
    from invu_sync.storage import SalesStore

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = "fecha,sucursal_id,total,cogs"


def _kpis(ventas: float, cogs: float) -> dict[str, float]:
    margen = ventas - cogs
    return {
        "ventas": round(ventas, 2),
        "cogs": round(cogs, 2),
        "margen_bruto": round(margen, 2),
        "margen_pct": round(margen * 100 / ventas, 2) if ventas > 0 else 0.0,
    }


@dataclass
class DailySummary:
    desde: date
    hasta: date
    por_sucursal: list[dict[str, Any]] = field(default_factory=list)
    totales: dict[str, float] = field(default_factory=lambda: _kpis(0.0, 0.0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "range": {"desde": self.desde.isoformat(), "hasta": self.hasta.isoformat()},
            "results": self.por_sucursal,
            "totals": self.totales,
        }


def daily_summary(
    store: SalesStore,
    table: str,
    desde: date,
    hasta: date,
    sucursal_id: str | None = None,
) -> DailySummary:
    """Summarize stored sales per sucursal over [desde, hasta].

    Margin is total minus cogs; margen_pct is 0 when there are no sales.

    Raises:
        InvalidRangeError: If desde is after hasta.
        StorageReadError: If the store cannot be read.
    """
    range_bounds(desde, hasta)
    equals = {"sucursal_id": sucursal_id} if sucursal_id else None
    records = store.select_range(
        table, "fecha", desde.isoformat(), hasta.isoformat(), equals=equals, columns=SUMMARY_COLUMNS
    )
    summary = DailySummary(desde=desde, hasta=hasta)
    if not records:
        return summary

    df = pd.DataFrame.from_records(records, columns=["fecha", "sucursal_id", "total", "cogs"])
    for col in ("total", "cogs"):
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)

    grouped = df.groupby("sucursal_id", sort=True)[["total", "cogs"]].sum()
    summary.por_sucursal = [
        {"sucursal_id": str(suc), **_kpis(float(v["total"]), float(v["cogs"]))}
        for suc, v in grouped.iterrows()
    ]
    summary.totales = _kpis(float(df["total"].sum()), float(df["cogs"].sum()))
    logger.info("Summarized %d row(s) for %d sucursal(es)", len(df), len(grouped))
    return summary
