"""Upstream adapters: endpoint templates and field-mapping tables.

An adapter bundles what differs between upstream endpoints and API
versions: the path template, the per-call timeout, and, for order
endpoints, the ordered field fallback lists used to read each measure.

The fallback order is fixed. The provider has renamed fields across API
versions without notice and historical data depends on the first match
winning in exactly this order.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from invu_sync.coerce import normalize_date, to_number

if TYPE_CHECKING:
    from invu_sync.config import SyncSettings


@dataclass(frozen=True)
class FieldRule:
    """One candidate field and the coercion applied to it."""

    name: str
    coerce: Callable[[Any], Any]


def rules(names: tuple[str, ...], coerce: Callable[[Any], Any]) -> tuple[FieldRule, ...]:
    return tuple(FieldRule(name, coerce) for name in names)


@dataclass(frozen=True)
class OrderFieldMap:
    """Ordered field fallbacks for reading an order-like record.

    Attributes:
        list_keys: Properties probed, in order, for the order array.
        date: Date candidates; the first that normalizes wins.
        total: Total candidates; the first numeric one wins.
        subtotal: Fallback subtotal fields (first present is used).
        tax: Fallback tax fields (first present is used).
        cogs: Cost candidates; 0 when none is numeric.
        tickets: Declared ticket-count fields (first present is used).
        line_arrays: Array-valued fields whose length is the line count.
        line_counts: Declared line-count fields (first present is used).
    """

    list_keys: tuple[str, ...] = ("data", "ordenes", "orders", "ventas", "items", "result")
    date: tuple[FieldRule, ...] = rules(
        (
            "fecha",
            "dia",
            "fecha_creacion",
            "created_at",
            "fecha_registro",
            "fecha_orden",
            "fecha_ticket",
            "fecha_inicio",
            "start_date",
            "fecha_fin",
        ),
        normalize_date,
    )
    total: tuple[FieldRule, ...] = rules(
        (
            "total",
            "total_bruto",
            "total_bruto_general",
            "grand_total",
            "monto_total",
            "venta_total",
            "importe",
        ),
        to_number,
    )
    subtotal: tuple[str, ...] = ("subtotal", "monto", "total_neto")
    tax: tuple[str, ...] = ("itbms", "iva", "impuesto", "total_impuestos")
    cogs: tuple[FieldRule, ...] = rules(
        ("cogs", "costo", "total_costo", "costo_total", "costo_bruto"),
        to_number,
    )
    tickets: tuple[str, ...] = ("tickets", "transacciones", "ticket_count", "numero_ticket")
    line_arrays: tuple[str, ...] = ("detalle", "items", "lineas")
    line_counts: tuple[str, ...] = ("lineas", "num_items", "items_count", "line_count")


DEFAULT_FIELD_MAP = OrderFieldMap()


@dataclass(frozen=True)
class UpstreamAdapter:
    """Description of one upstream query endpoint.

    Attributes:
        name: Short label used in logs ("orders", "attendance").
        path_template: Path relative to the base URL with {F_INI}/{F_FIN}.
        timeout: Per-call timeout in seconds.
        field_map: Field fallbacks for order endpoints.
    """

    name: str
    path_template: str
    timeout: float = 20.0
    field_map: OrderFieldMap = field(default=DEFAULT_FIELD_MAP)


def sales_adapter(settings: SyncSettings) -> UpstreamAdapter:
    """Adapter for the orders query (citas/ordenesAllAdv)."""
    return UpstreamAdapter(name="orders", path_template=settings.sales_path, timeout=settings.timeout)


def attendance_adapter(settings: SyncSettings) -> UpstreamAdapter:
    """Adapter for the attendance query (empleados/movimientos)."""
    return UpstreamAdapter(
        name="attendance",
        path_template=settings.attendance_path,
        timeout=settings.attendance_timeout,
    )
