"""Upstream layer: INVU POS HTTP client.

This module issues the GET queries against the POS provider for one branch
and one inclusive epoch range, and turns transport and status failures into
the branch-level exceptions in invu_sync.exceptions.

HTTP resiliency follows one rule set:
- Every request carries a per-call timeout.
- 5xx responses and transport failures are retried up to a small fixed
  number of attempts with linear backoff (backoff, 2*backoff, ...).
- 4xx responses are terminal; 401/403 become UpstreamAuthError.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from itertools import takewhile
from typing import TYPE_CHECKING, Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from invu_sync.exceptions import (
    UpstreamAuthError,
    UpstreamFormatError,
    UpstreamHTTPError,
    UpstreamTimeoutError,
)
from invu_sync.upstream.adapters import UpstreamAdapter

if TYPE_CHECKING:
    from invu_sync.config import SyncSettings

logger = logging.getLogger(__name__)

RETRY_STATUSES = (500, 502, 503, 504)
DETAIL_CHARS = 200


class LinearRetry(Retry):
    """urllib3 Retry whose sleep grows linearly with consecutive failures."""

    def get_backoff_time(self) -> float:
        consecutive = len(
            list(takewhile(lambda x: x.redirect_location is None, reversed(self.history)))
        )
        if consecutive == 0:
            return 0.0
        return self.backoff_factor * consecutive


def make_session(attempts: int = 2, backoff: float = 0.25) -> requests.Session:
    """Create a requests Session with bounded retry.

    Configures the session with:
    - Accept: application/json
    - LinearRetry adapter for HTTP/HTTPS on GET only
    - Retries on 500, 502, 503, 504 and on connect/read failures
    - The final 5xx response is returned, not raised, once retries run out
    - Retry-After is ignored, so 413/429 stay terminal and 503 waits the linear step

    Args:
        attempts: Total attempts per request, including the first one.
        backoff: Linear backoff step in seconds.

    Returns:
        Configured requests.Session object.
    """
    retries = max(attempts - 1, 0)
    s = requests.Session()
    s.headers.update({"Accept": "application/json"})
    retry = LinearRetry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
        respect_retry_after_header=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    return s


@dataclass
class UpstreamResponse:
    """Parsed result of one upstream query.

    Attributes:
        source: Requested URL.
        status: HTTP status code.
        payload: Parsed JSON, or None when the body was empty.
    """

    source: str
    status: int
    payload: Any


def build_url(base_url: str, path_template: str, fini: int, ffin: int) -> str:
    """Fill the {F_INI}/{F_FIN} placeholders and join with the base URL.

    Examples:
        >>> build_url("https://pos.test/api/", "/q/fini/{F_INI}/ffin/{F_FIN}", 1, 2)
        'https://pos.test/api/q/fini/1/ffin/2'
    """
    path = path_template.replace("{F_INI}", str(int(fini))).replace("{F_FIN}", str(int(ffin)))
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class InvuClient:
    """Thin client for the POS provider query endpoints.

    The session is injected so tests can substitute a fake, and so one
    session (and its connection pool) is shared across branch fetches.
    """

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        auth_header: str = "Authorization",
    ) -> None:
        self.session = session
        self.base_url = base_url
        self.auth_header = auth_header

    @classmethod
    def from_settings(
        cls, settings: SyncSettings, session: requests.Session | None = None
    ) -> InvuClient:
        """Build a client from settings, creating a retrying session if none is given."""
        if session is None:
            session = make_session(settings.max_attempts, settings.retry_backoff)
        return cls(session, settings.invu_base_url, settings.auth_header)

    def url_for(self, adapter: UpstreamAdapter, fini: int, ffin: int) -> str:
        return build_url(self.base_url, adapter.path_template, fini, ffin)

    def fetch(self, adapter: UpstreamAdapter, token: str, fini: int, ffin: int) -> UpstreamResponse:
        """Run one query for one branch and range.

        Args:
            adapter: Endpoint description (path template and timeout).
            token: Branch token, sent raw in the auth header.
            fini: Inclusive start, Unix seconds.
            ffin: Inclusive end, Unix seconds.

        Returns:
            UpstreamResponse with the parsed JSON payload (None for an empty body).

        Raises:
            UpstreamAuthError: On 401/403.
            UpstreamHTTPError: On any other non-2xx status.
            UpstreamTimeoutError: On timeout or connection failure after retries.
            UpstreamFormatError: On a non-empty body that is not JSON.
        """
        url = self.url_for(adapter, fini, ffin)
        logger.debug("GET %s (%s)", url, adapter.name)
        try:
            resp = self.session.get(
                url,
                headers={self.auth_header: token, "Accept": "application/json"},
                timeout=adapter.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise UpstreamTimeoutError(
                f"Timeout or connection failure after {adapter.timeout:g}s querying INVU",
                source=url,
                detail=str(e)[:DETAIL_CHARS],
            ) from e
        except requests.RequestException as e:
            raise UpstreamHTTPError(
                f"Error querying INVU: {e}", source=url, detail=str(e)[:DETAIL_CHARS]
            ) from e

        text = resp.text or ""
        detail = text[:DETAIL_CHARS]
        if resp.status_code in (401, 403):
            raise UpstreamAuthError(
                f"INVU rejected the token ({resp.status_code})",
                source=url,
                status=resp.status_code,
                detail=detail,
            )
        if not (200 <= resp.status_code < 300):
            raise UpstreamHTTPError(
                f"INVU {resp.status_code}: {detail or 'empty response'}",
                source=url,
                status=resp.status_code,
                detail=detail,
            )
        if not text.strip():
            return UpstreamResponse(source=url, status=resp.status_code, payload=None)
        try:
            payload = json.loads(text)
        except ValueError as e:
            raise UpstreamFormatError(
                "INVU response is not JSON",
                source=url,
                status=resp.status_code,
                detail=detail,
            ) from e
        return UpstreamResponse(source=url, status=resp.status_code, payload=payload)
