"""Branch registry for resolving branch keys and credentials.

This module provides the fixed set of restaurant branches (sucursales) the
sync pipeline knows about, the secret each branch authenticates with, and
the stable sucursal identifier each branch maps to in the store.

Tokens are looked up from INVU_TOKENS_JSON first (a JSON object mapping
branch key to token), then from the per-branch environment variable.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

from invu_sync.exceptions import UnknownBranchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BranchConfig:
    """Static configuration of one branch.

    Attributes:
        key: Short branch key used in requests and as sucursal_id in the sales table.
        token_env: Environment variable holding the branch token.
        sucursal_uuid: Stable location id used as foreign key in the orders table.
    """

    key: str
    token_env: str
    sucursal_uuid: str


DEFAULT_BRANCHES: tuple[BranchConfig, ...] = (
    BranchConfig("sf", "SF_TOKEN", "1918f8f7-9b5d-4f6a-9b53-a953f82b71ad"),
    BranchConfig("cangrejo", "CANGREJO_TOKEN", "716863d5-7b75-430d-835b-95ec7f3de1eb"),
    BranchConfig("costa", "COSTA_TOKEN", "d654870f-c6f5-4887-822c-fdfe8072ad92"),
    BranchConfig("museo", "MUSEO_TOKEN", "c68cf4cf-1811-4279-9fe6-4563e11eb5e5"),
    BranchConfig("central", "CENTRAL_TOKEN", "b882cb07-4ca7-41ec-9b02-3d1139cb66a3"),
)


def load_token_overrides(raw: str | None) -> dict[str, str]:
    """Parse INVU_TOKENS_JSON into a {branch_key: token} mapping.

    An invalid document is logged and ignored so the per-branch variables
    still apply.

    Examples:
        >>> load_token_overrides('{"sf": "abc"}')
        {'sf': 'abc'}
        >>> load_token_overrides(None)
        {}
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring INVU_TOKENS_JSON: not valid JSON (%s)", e.msg)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("Ignoring INVU_TOKENS_JSON: expected an object, got %s", type(parsed).__name__)
        return {}
    return {str(k).lower(): str(v) for k, v in parsed.items() if v}


class BranchRegistry:
    """Registry of configured branches and their credentials.

    Example:
        >>> registry = BranchRegistry({"SF_TOKEN": "t-sf"})
        >>> registry.list_branches()
        ['sf', 'cangrejo', 'costa', 'museo', 'central']
        >>> registry.token_for("sf")
        't-sf'
        >>> registry.token_for("museo") is None
        True
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        branches: tuple[BranchConfig, ...] = DEFAULT_BRANCHES,
    ) -> None:
        self._environ = dict(environ or {})
        self._branches = {b.key: b for b in branches}
        self._overrides = load_token_overrides(self._environ.get("INVU_TOKENS_JSON"))

    def list_branches(self) -> list[str]:
        """List branch keys in configuration order."""
        return list(self._branches)

    def get(self, key: str) -> BranchConfig:
        """Return the BranchConfig for a key (case-insensitive).

        Raises:
            UnknownBranchError: If the key is not configured.
        """
        normalized = (key or "").strip().lower()
        if normalized not in self._branches:
            raise UnknownBranchError(
                f"Unknown branch '{key}'. Use one of: {' | '.join(self._branches)}"
            )
        return self._branches[normalized]

    def select(self, key: str | None = None) -> list[BranchConfig]:
        """Return all branches, or only the one named by key."""
        if key is None or not key.strip():
            return list(self._branches.values())
        return [self.get(key)]

    def token_for(self, key: str) -> str | None:
        """Return the token for a branch, or None when no secret is configured."""
        branch = self.get(key)
        token = self._overrides.get(branch.key) or self._environ.get(branch.token_env)
        token = (token or "").strip()
        return token or None
