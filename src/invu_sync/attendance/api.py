"""Public API for attendance queries.

A single-branch proxy over the provider's attendance endpoint. The window is
given as a business date, as an explicit fini/ffin epoch pair, or not at all
(today in the business timezone).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from invu_sync.dates import day_bounds, parse_epoch_pair, resolve_date
from invu_sync.exceptions import MissingCredentialError
from invu_sync.upstream.adapters import attendance_adapter

if TYPE_CHECKING:
    from invu_sync.branches import BranchRegistry
    from invu_sync.config import SyncSettings
    from invu_sync.upstream.client import InvuClient

logger = logging.getLogger(__name__)


@dataclass
class AttendanceResult:
    branch: str
    fini: int
    ffin: int
    source: str
    data: list[Any] = field(default_factory=list)
    flat: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "branch": self.branch,
            "fini": self.fini,
            "ffin": self.ffin,
            "inv_url": self.source,
            "mode": "flat" if self.flat else "raw",
            "count": len(self.data),
            "data": self.data,
        }


def resolve_window(
    day: str | None = None,
    fini: str | None = None,
    ffin: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[int, int]:
    """Resolve the query window. A date wins over an epoch pair.

    Raises:
        InvalidDateError: If day is given but invalid.
        InvalidRangeError: If only one of fini/ffin is given, or they are invalid.
    """
    if day:
        return day_bounds(resolve_date(day, now=now))
    if fini or ffin:
        return parse_epoch_pair(fini, ffin)
    return day_bounds(resolve_date(None, now=now))


def extract_records(payload: Any) -> list[Any]:
    """The data array, else the employees array, else a top-level array, else empty."""
    if isinstance(payload, dict):
        for key in ("data", "employees"):
            if isinstance(payload.get(key), list):
                return payload[key]
        return []
    if isinstance(payload, list):
        return payload
    return []


def flatten_movements(employees: list[Any], branch: str) -> list[dict[str, Any]]:
    """One record per entry of each employee's movimientos list.

    Missing fields fall back to: centro = branch, code = "attendance",
    qty = 1, monto = the movement total or 0.

    Examples:
        >>> flatten_movements([{"id": 7, "movimientos": [{"fecha": "2024-04-01"}]}], "sf")[0]["code"]
        'attendance'
    """
    out = []
    for emp in employees:
        if not isinstance(emp, dict):
            continue
        movements = emp.get("movimientos")
        if not isinstance(movements, list):
            continue
        for mov in movements:
            if not isinstance(mov, dict):
                mov = {}
            out.append(
                {
                    "empleado_id": _first(emp.get("id"), mov.get("empleado_id")),
                    "sucursal_id": mov.get("sucursal_id"),
                    "centro": _first(mov.get("centro"), branch),
                    "code": _first(mov.get("code"), "attendance"),
                    "qty": _first(mov.get("qty"), 1),
                    "monto": _first(mov.get("monto"), mov.get("total"), 0),
                    "fecha": mov.get("fecha"),
                }
            )
    return out


def _first(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


def fetch_attendance(
    settings: SyncSettings,
    client: InvuClient,
    registry: BranchRegistry,
    branch: str,
    fini: int,
    ffin: int,
    flat: bool = False,
) -> AttendanceResult:
    """Fetch attendance records for one branch and window.

    With flat, employees are expanded into one record per movement.

    Raises:
        UnknownBranchError: If branch is not configured.
        MissingCredentialError: If the branch has no token.
        UpstreamError: If the provider call fails.
    """
    cfg = registry.get(branch)
    token = registry.token_for(cfg.key)
    if token is None:
        raise MissingCredentialError(f"No token configured ({cfg.token_env}).")
    response = client.fetch(attendance_adapter(settings), token, fini, ffin)
    records = extract_records(response.payload)
    if flat:
        records = flatten_movements(records, cfg.key)
    logger.info("Attendance %s [%d, %d]: %d record(s)", cfg.key, fini, ffin, len(records))
    return AttendanceResult(
        branch=cfg.key, fini=fini, ffin=ffin, source=response.source, data=records, flat=flat
    )
