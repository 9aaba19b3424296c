"""Default workspace resolution.

Most tools accept an optional workspace slug. When it is omitted the
resolver falls back to ``BITBUCKET_DEFAULT_WORKSPACE`` and then to the first
workspace the authenticated user belongs to. Both lookups are memoized in a
``WorkspaceCache`` that lives as long as the process (or until ``reset``).
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from .services.bitbucket import BitbucketService
from .services.exceptions import AtlassianValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only the first page of memberships is looked at
WORKSPACE_LOOKUP_PAGELEN = 10


class WorkspaceCache:
    """Two-slot memo: the default workspace slug and the workspace list.

    Not locked. The host runtime is a single asyncio loop and the
    read-check-write in ``get_or_compute`` never awaits between the check
    and the write.
    """

    DEFAULT_WORKSPACE = "default_workspace"
    WORKSPACES = "workspaces"

    _KEYS = (DEFAULT_WORKSPACE, WORKSPACES)

    def __init__(self):
        self._slots: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        self._check_key(key)
        return self._slots.get(key)

    async def get_or_compute(self, key: str, compute: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key``, computing it on first use.

        A computed ``None`` is returned but not cached.
        """
        self._check_key(key)
        if key in self._slots:
            return self._slots[key]

        value = await compute()
        if value is not None:
            self._slots[key] = value
        return value

    def reset(self):
        self._slots.clear()

    def _check_key(self, key: str):
        if key not in self._KEYS:
            raise KeyError(f"Unknown workspace cache slot: {key}")


class WorkspaceResolver:
    """Resolves explicit or default workspace slugs."""

    def __init__(
        self,
        service: BitbucketService,
        cache: WorkspaceCache,
        default_workspace: Optional[str] = None,
    ):
        self.service = service
        self.cache = cache
        self.default_workspace = default_workspace

    async def get_workspaces(self) -> List[Dict[str, Any]]:
        """Workspace memberships of the authenticated user (first page)."""

        async def _fetch() -> List[Dict[str, Any]]:
            data = await self.service.list_workspaces(pagelen=WORKSPACE_LOOKUP_PAGELEN)
            values = data.get("values") or []
            logger.debug("Cached %d workspaces", len(values))
            return values

        return await self.cache.get_or_compute(WorkspaceCache.WORKSPACES, _fetch)

    async def get_default_workspace(self) -> Optional[str]:
        """Configured default workspace, else the first one in the account."""

        async def _compute() -> Optional[str]:
            if self.default_workspace:
                logger.debug("Using default workspace from configuration: %s", self.default_workspace)
                return self.default_workspace

            logger.debug("No default workspace configured, fetching from API")
            workspaces = await self.get_workspaces()
            if not workspaces:
                logger.warning("No workspaces found in the account")
                return None

            slug = (workspaces[0].get("workspace") or {}).get("slug")
            logger.debug("Using first workspace from API as default: %s", slug)
            return slug

        return await self.cache.get_or_compute(WorkspaceCache.DEFAULT_WORKSPACE, _compute)

    async def resolve(self, workspace_slug: Optional[str]) -> str:
        """Return ``workspace_slug`` or the default workspace.

        Raises:
            AtlassianValidationError: No slug given and no default available.
        """
        if workspace_slug:
            return workspace_slug

        default = await self.get_default_workspace()
        if not default:
            raise AtlassianValidationError(
                "Invalid request: no workspace provided and no default workspace could be "
                "determined. Pass a workspace slug or set BITBUCKET_DEFAULT_WORKSPACE."
            )
        return default
