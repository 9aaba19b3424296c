"""Tests for default workspace resolution and its cache."""

from unittest.mock import AsyncMock, Mock

import pytest

from bitbucket_mcp.services.exceptions import ApiError, AtlassianValidationError
from bitbucket_mcp.workspace import WorkspaceCache, WorkspaceResolver

pytestmark = pytest.mark.asyncio


def _memberships(*slugs):
    return {"values": [{"workspace": {"slug": slug, "name": slug.title()}} for slug in slugs]}


def _resolver(default_workspace=None, response=None, side_effect=None):
    service = Mock()
    service.list_workspaces = AsyncMock(return_value=response, side_effect=side_effect)
    return WorkspaceResolver(service, WorkspaceCache(), default_workspace=default_workspace), service


class TestWorkspaceCache:

    async def test_computes_once(self):
        cache = WorkspaceCache()
        compute = AsyncMock(return_value="acme")

        assert await cache.get_or_compute(WorkspaceCache.DEFAULT_WORKSPACE, compute) == "acme"
        assert await cache.get_or_compute(WorkspaceCache.DEFAULT_WORKSPACE, compute) == "acme"

        assert compute.await_count == 1
        assert cache.get(WorkspaceCache.DEFAULT_WORKSPACE) == "acme"

    async def test_none_is_not_cached(self):
        cache = WorkspaceCache()
        compute = AsyncMock(side_effect=[None, "acme"])

        assert await cache.get_or_compute(WorkspaceCache.DEFAULT_WORKSPACE, compute) is None
        assert await cache.get_or_compute(WorkspaceCache.DEFAULT_WORKSPACE, compute) == "acme"

    async def test_failed_compute_is_not_cached(self):
        cache = WorkspaceCache()
        compute = AsyncMock(side_effect=[ApiError("down", status_code=503), ["ws"]])

        with pytest.raises(ApiError):
            await cache.get_or_compute(WorkspaceCache.WORKSPACES, compute)

        assert await cache.get_or_compute(WorkspaceCache.WORKSPACES, compute) == ["ws"]

    async def test_reset(self):
        cache = WorkspaceCache()
        await cache.get_or_compute(WorkspaceCache.WORKSPACES, AsyncMock(return_value=["ws"]))

        cache.reset()

        assert cache.get(WorkspaceCache.WORKSPACES) is None

    def test_unknown_slot(self):
        with pytest.raises(KeyError):
            WorkspaceCache().get("repositories")


class TestWorkspaceResolver:

    async def test_explicit_slug_wins(self):
        resolver, service = _resolver(default_workspace="configured")

        assert await resolver.resolve("explicit") == "explicit"
        service.list_workspaces.assert_not_awaited()

    async def test_configured_default(self):
        resolver, service = _resolver(default_workspace="configured")

        assert await resolver.resolve(None) == "configured"
        service.list_workspaces.assert_not_awaited()

    async def test_first_workspace_from_api(self):
        resolver, service = _resolver(response=_memberships("first", "second"))

        assert await resolver.resolve(None) == "first"
        assert await resolver.resolve("") == "first"

        service.list_workspaces.assert_awaited_once_with(pagelen=10)

    async def test_get_workspaces_is_cached(self):
        resolver, service = _resolver(response=_memberships("first", "second"))

        first = await resolver.get_workspaces()
        second = await resolver.get_workspaces()

        assert [m["workspace"]["slug"] for m in first] == ["first", "second"]
        assert second is first
        assert service.list_workspaces.await_count == 1

    async def test_no_workspaces_raises_validation_error(self):
        resolver, _ = _resolver(response={"values": []})

        assert await resolver.get_default_workspace() is None
        with pytest.raises(AtlassianValidationError, match="no default workspace"):
            await resolver.resolve(None)

    async def test_upstream_error_propagates(self):
        resolver, service = _resolver(
            side_effect=[ApiError("API error: HTTP 503", status_code=503), _memberships("later")]
        )

        with pytest.raises(ApiError):
            await resolver.resolve(None)

        assert await resolver.resolve(None) == "later"
        assert service.list_workspaces.await_count == 2
