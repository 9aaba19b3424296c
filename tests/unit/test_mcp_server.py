"""Unit tests for MCPServer tool listing, routing and error reporting."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from bitbucket_mcp.controllers import ControllerResponse
from bitbucket_mcp.errors import ErrorContext, build_error_envelope
from bitbucket_mcp.mcp.server import MCPServer, create_http_app, format_error_for_mcp_tool
from bitbucket_mcp.services.exceptions import ApiError


def _context(settings):
    names = ("workspaces", "repositories", "pullrequests", "diff", "search", "issues")
    return SimpleNamespace(settings=settings, **{name: Mock() for name in names})


@pytest.fixture
def server(settings):
    return MCPServer(_context(settings))


def test_resolve_tool_target_by_prefix(server):
    toolset, action = server._resolve_tool_target("jira_get_issue")

    assert toolset.name == "jira"
    assert action == "get_issue"


def test_resolve_tool_target_unknown_action(server):
    assert server._resolve_tool_target("bitbucket_delete_repository") == (None, None)
    assert server._resolve_tool_target("list_repositories") == (None, None)


def test_jira_toolset_absent_without_credentials(bitbucket_only_settings):
    server = MCPServer(_context(bitbucket_only_settings))

    assert [t.name for t in server.toolsets] == ["bitbucket"]
    assert server._resolve_tool_target("jira_get_issue") == (None, None)


def test_format_error_for_mcp_tool():
    envelope = build_error_envelope(
        ApiError("Resource not found: HTTP 404", status_code=404),
        ErrorContext("repository", "retrieve", "controllers/repositories@get_repository", "widgets"),
    )

    assert format_error_for_mcp_tool(envelope).startswith(
        "Error: Failed to retrieve repository: repository widgets not found."
    )
    assert format_error_for_mcp_tool(RuntimeError("boom")) == "Error: boom"


@pytest.mark.asyncio
async def test_list_tools(server):
    tools = await server.list_tools()
    names = {tool.name for tool in tools}

    assert "bitbucket_list_workspaces" in names
    assert "jira_list_issues" in names


@pytest.mark.asyncio
async def test_call_tool_success(server):
    server.context.issues.get_issue = AsyncMock(return_value=ControllerResponse("# Jira Issue: ACME-1"))

    result = await server.call_tool("jira_get_issue", {"issue_id_or_key": "ACME-1"})

    assert len(result) == 1
    assert result[0].type == "text"
    assert result[0].text == "# Jira Issue: ACME-1"


@pytest.mark.asyncio
async def test_call_tool_unknown(server):
    result = await server.call_tool("bitbucket_nope", {})

    assert result[0].text == "Error: Unknown tool: bitbucket_nope"


@pytest.mark.asyncio
async def test_call_tool_envelope_becomes_error_text(server):
    envelope = build_error_envelope(
        ApiError("Rate limited: HTTP 429", status_code=429),
        ErrorContext("repositories", "list", "controllers/repositories@list_repositories"),
    )
    server.context.repositories.list_repositories = AsyncMock(side_effect=envelope)

    result = await server.call_tool("bitbucket_list_repositories", None)

    assert result[0].text == f"Error: {envelope.message}"


@pytest.mark.asyncio
async def test_call_tool_invalid_arguments(server):
    result = await server.call_tool("bitbucket_get_pull_request", {"repo_slug": "widgets"})

    assert result[0].text.startswith("Error: Failed to validate tool arguments: Invalid arguments: pr_id")


@pytest.mark.asyncio
async def test_call_tool_unexpected_exception(server):
    server.context.search.search = AsyncMock(side_effect=RuntimeError("boom"))

    result = await server.call_tool("bitbucket_search", {"query": "login"})

    assert result[0].text == "Error: boom"


def test_health_endpoint(server):
    client = TestClient(create_http_app(server))

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["toolsets"] == ["bitbucket", "jira"]
