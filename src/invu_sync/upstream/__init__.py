"""Upstream module: POS provider client and endpoint adapters.

Example:
    >>> from invu_sync.config import SyncSettings
    >>> from invu_sync.upstream import InvuClient, make_session, sales_adapter
    >>>
    >>> settings = SyncSettings.from_env()
    >>> client = InvuClient(make_session(settings.max_attempts), settings.invu_base_url)
    >>> response = client.fetch(sales_adapter(settings), token, 1711947600, 1712033999)
"""

from invu_sync.upstream.adapters import (
    DEFAULT_FIELD_MAP,
    FieldRule,
    OrderFieldMap,
    UpstreamAdapter,
    attendance_adapter,
    sales_adapter,
)
from invu_sync.upstream.client import InvuClient, UpstreamResponse, build_url, make_session

__all__ = [
    "DEFAULT_FIELD_MAP",
    "FieldRule",
    "InvuClient",
    "OrderFieldMap",
    "UpstreamAdapter",
    "UpstreamResponse",
    "attendance_adapter",
    "build_url",
    "make_session",
    "sales_adapter",
]
