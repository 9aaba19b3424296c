"""Tests for tool argument models, toolsets and the toolset registry."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from bitbucket_mcp.controllers import ControllerResponse
from bitbucket_mcp.errors import ErrorEnvelope, ErrorKind
from bitbucket_mcp.services.exceptions import AtlassianValidationError
from bitbucket_mcp.tools import BitbucketToolset, JiraToolset, ToolsetRegistry, toolset_registry
from bitbucket_mcp.tools.args import (
    AddPrCommentArgs,
    ListRepositoriesArgs,
    SearchArgs,
    parse_arguments,
    tool_input_schema,
)


def _context(settings):
    """An app context whose controllers are all mocks."""
    names = ("workspaces", "repositories", "pullrequests", "diff", "search", "issues")
    return SimpleNamespace(settings=settings, **{name: Mock() for name in names})


class TestArgs:

    def test_schema_has_no_title(self):
        schema = tool_input_schema(ListRepositoriesArgs)

        assert "title" not in schema
        assert schema["type"] == "object"
        assert "workspace_slug" in schema["properties"]

    def test_required_fields_in_schema(self):
        assert tool_input_schema(SearchArgs)["required"] == ["query"]

    def test_integer_cursor_is_stringified(self):
        args = parse_arguments(ListRepositoriesArgs, {"cursor": 3, "limit": 10})

        assert args.cursor == "3"
        assert args.limit == 10

    def test_unknown_fields_are_ignored(self):
        args = parse_arguments(SearchArgs, {"query": "  login  ", "bogus": True})

        assert args.query == "login"
        assert args.scope == "all"

    def test_invalid_arguments(self):
        with pytest.raises(AtlassianValidationError) as exc_info:
            parse_arguments(AddPrCommentArgs, {"repo_slug": "widgets", "pr_id": 0})

        message = str(exc_info.value)
        assert message.startswith("Invalid arguments: ")
        assert "pr_id" in message
        assert "content" in message

    def test_limit_bounds(self):
        with pytest.raises(AtlassianValidationError, match="limit"):
            parse_arguments(ListRepositoriesArgs, {"limit": 500})


class TestToolsets:

    def test_bitbucket_tools_are_prefixed(self, settings):
        toolset = BitbucketToolset(_context(settings))

        names = [tool.name for tool in toolset.get_tools()]

        assert "bitbucket_list_repositories" in names
        assert "bitbucket_get_pull_request" in names
        assert "bitbucket_diff_branches" in names
        assert all(name.startswith("bitbucket_") for name in names)
        assert len(names) == len(set(names))

    def test_jira_enabled_only_with_standard_credentials(self, settings, bitbucket_only_settings):
        assert JiraToolset.is_enabled(settings) is True
        assert JiraToolset.is_enabled(bitbucket_only_settings) is False

    @pytest.mark.asyncio
    async def test_execute_tool_calls_controller(self, settings):
        context = _context(settings)
        context.repositories.get_repository = AsyncMock(return_value=ControllerResponse("# Repository: widgets"))
        toolset = BitbucketToolset(context)

        result = await toolset.execute_tool("get_repository", {"repo_slug": "widgets"})

        assert result == "# Repository: widgets"
        context.repositories.get_repository.assert_awaited_once_with(workspace_slug=None, repo_slug="widgets")

    @pytest.mark.asyncio
    async def test_execute_tool_invalid_arguments(self, settings):
        context = _context(settings)
        toolset = BitbucketToolset(context)

        with pytest.raises(ErrorEnvelope) as exc_info:
            await toolset.execute_tool("get_pull_request", {"repo_slug": "widgets", "pr_id": "abc"})

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
        assert exc_info.value.source == "tools/bitbucket@get_pull_request"
        context.pullrequests.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_execute_unknown_tool(self, settings):
        toolset = BitbucketToolset(_context(settings))

        with pytest.raises(KeyError):
            await toolset.execute_tool("delete_everything", {})


class TestToolsetRegistry:

    def test_builtin_toolsets_registered(self):
        assert set(toolset_registry.list_toolsets()) >= {"bitbucket", "jira"}
        assert toolset_registry.get_toolset_class("jira") is JiraToolset

    def test_create_toolsets_skips_disabled(self, bitbucket_only_settings):
        toolsets = toolset_registry.create_toolsets(_context(bitbucket_only_settings))

        assert [t.name for t in toolsets] == ["bitbucket"]

    def test_conflicting_registration(self):
        registry = ToolsetRegistry()
        registry.register("bitbucket", BitbucketToolset)
        registry.register("bitbucket", BitbucketToolset)

        with pytest.raises(ValueError):
            registry.register("bitbucket", JiraToolset)
