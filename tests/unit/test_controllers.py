"""Tests for the Bitbucket controllers.

Services are mocked; controllers are checked for the parameters they send,
the Markdown they produce and the error envelopes they raise.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from bitbucket_mcp.controllers import (
    DiffController,
    PullRequestsController,
    RepositoriesController,
    SearchController,
    WorkspacesController,
    apply_defaults,
)
from bitbucket_mcp.controllers.base import format_bitbucket_query, page_from_cursor
from bitbucket_mcp.controllers.search import build_code_search_query
from bitbucket_mcp.errors import ErrorEnvelope, ErrorKind
from bitbucket_mcp.services.exceptions import ApiError, AuthInvalidError
from bitbucket_mcp.workspace import WorkspaceCache, WorkspaceResolver

pytestmark = pytest.mark.asyncio


def _service(**methods):
    service = Mock()
    for name, value in methods.items():
        if isinstance(value, BaseException) or (isinstance(value, list) and value and isinstance(value[0], BaseException)):
            setattr(service, name, AsyncMock(side_effect=value))
        else:
            setattr(service, name, AsyncMock(return_value=value))
    return service


def _resolver(service, default_workspace="acme"):
    return WorkspaceResolver(service, WorkspaceCache(), default_workspace=default_workspace)


def _page(values, page=1, pagelen=25, size=None):
    data = {"values": values, "page": page, "pagelen": pagelen}
    if size is not None:
        data["size"] = size
    return data


REPO = {
    "name": "widgets",
    "full_name": "acme/widgets",
    "uuid": "{1234}",
    "description": "Widget factory",
    "is_private": True,
    "language": "python",
    "mainbranch": {"name": "develop"},
    "project": {"key": "CORE", "name": "Core"},
    "updated_on": "2024-03-05T10:15:30.000000+00:00",
    "links": {"html": {"href": "https://bitbucket.org/acme/widgets"}},
}

PR = {
    "id": 7,
    "title": "Add login",
    "state": "OPEN",
    "author": {"display_name": "Sam"},
    "source": {"branch": {"name": "feature/login"}},
    "destination": {"branch": {"name": "main"}},
    "created_on": "2024-03-01T09:00:00.000000+00:00",
    "updated_on": "2024-03-02T09:00:00.000000+00:00",
    "summary": {"raw": "Adds a login form"},
    "links": {"html": {"href": "https://bitbucket.org/acme/widgets/pull-requests/7"}},
}


class TestHelpers:

    def test_apply_defaults_none_is_unset(self):
        merged = apply_defaults({"limit": None, "sort": "name", "cursor": None}, {"limit": 25, "sort": "-updated_on"})

        assert merged == {"limit": 25, "sort": "name", "cursor": None}

    def test_page_from_cursor(self):
        assert page_from_cursor(None) is None
        assert page_from_cursor("3") == 3
        assert page_from_cursor("0") == 1
        assert page_from_cursor("abc") is None

    def test_format_bitbucket_query(self):
        assert format_bitbucket_query("api") == 'name ~ "api"'
        assert format_bitbucket_query("login", "title", "description") == (
            '(title ~ "login" OR description ~ "login")'
        )
        assert format_bitbucket_query('name = "exact"') == 'name = "exact"'
        assert format_bitbucket_query(None) is None

    def test_build_code_search_query(self):
        assert build_code_search_query("TODO", "widgets", "TypeScript", ".tsx") == (
            "TODO repo:widgets lang:ts ext:tsx"
        )
        assert build_code_search_query("TODO") == "TODO"


class TestWorkspacesController:

    async def test_list_workspaces(self):
        memberships = [
            {"workspace": {"slug": "acme", "name": "Acme"}, "permission": "owner"},
            {"workspace": {"slug": "other", "name": "Other"}, "permission": "member"},
        ]
        service = _service(list_workspaces=_page(memberships, pagelen=2, size=5))
        controller = WorkspacesController(service, _resolver(service))

        response = await controller.list_workspaces(limit=2)

        service.list_workspaces.assert_awaited_once_with(pagelen=2, page=None)
        assert "## 1. Acme" in response.content
        assert "- **Permission**: owner" in response.content
        assert response.pagination.next_cursor == "2"
        assert response.content.endswith('To see more results, use --cursor "2"')

    async def test_get_workspace_not_found(self):
        error = ApiError("Resource not found: HTTP 404", status_code=404)
        service = _service(get_workspace=error)
        controller = WorkspacesController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.get_workspace("nope")

        envelope = exc_info.value
        assert envelope.kind is ErrorKind.NOT_FOUND
        assert envelope.message.startswith("Failed to retrieve workspace: workspace nope not found.")
        assert envelope.source == "controllers/workspaces@get_workspace"


class TestRepositoriesController:

    async def test_list_repositories_defaults(self):
        service = _service(list_repositories=_page([REPO]))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.list_repositories(query="widg")

        service.list_repositories.assert_awaited_once_with(
            "acme", q='name ~ "widg"', role=None, sort="-updated_on", pagelen=25, page=None
        )
        assert "## 1. widgets" in response.content
        assert "- **Private**: Yes" in response.content

    async def test_list_repositories_project_filter(self):
        other = dict(REPO, name="other", project={"key": "OPS"})
        service = _service(list_repositories=_page([REPO, other]))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.list_repositories("acme", project_key="CORE", cursor="2")

        kwargs = service.list_repositories.await_args.kwargs
        assert kwargs["q"] == 'project.key = "CORE"'
        assert kwargs["page"] == 2
        assert "widgets" in response.content
        assert "other" not in response.content
        assert response.pagination.count == 1

    async def test_project_filter_keeps_upstream_page_for_has_more(self):
        others = [dict(REPO, slug=f"other-{i}", project={"key": "MISC"}) for i in range(5)]
        service = _service(list_repositories=_page([REPO] * 5 + others, pagelen=10))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.list_repositories("acme", project_key="CORE", limit=10)

        assert response.pagination.has_more is True
        assert response.pagination.next_cursor == "2"
        assert response.pagination.count == 5

    async def test_get_repository_with_recent_pull_requests(self):
        service = _service(get_repository=REPO, list_pull_requests=_page([PR]))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.get_repository(None, "widgets")

        service.list_pull_requests.assert_awaited_once_with(
            "acme", "widgets", state="OPEN", sort="-updated_on", pagelen=5
        )
        assert "# Repository: widgets" in response.content
        assert "**#7** Add login by Sam" in response.content

    async def test_get_repository_survives_pull_request_failure(self):
        service = _service(
            get_repository=REPO,
            list_pull_requests=ApiError("API error: HTTP 500", status_code=500),
        )
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.get_repository("acme", "widgets")

        assert "*Could not retrieve pull requests.*" in response.content

    async def test_get_repository_requires_slug(self):
        service = _service()
        controller = RepositoriesController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.get_repository("acme", "")

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
        assert "repo_slug is required" in exc_info.value.message

    async def test_get_file_defaults_to_main_branch(self):
        service = _service(get_repository=REPO, get_file_content="def main():\n    pass\n")
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.get_file_content("acme", "widgets", "src/app.py")

        service.get_file_content.assert_awaited_once_with("acme", "widgets", "develop", "src/app.py")
        assert "```python\ndef main():\n    pass\n```" in response.content

    async def test_create_branch(self):
        service = _service(create_branch={"name": "feature/x", "target": {"hash": "abcdef1234567890"}})
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.create_branch(None, "widgets", "feature/x", "main")

        service.create_branch.assert_awaited_once_with("acme", "widgets", "feature/x", "main")
        assert "Successfully created branch `feature/x`" in response.content
        assert "`abcdef123456`" in response.content

    async def test_list_branches_sorted_by_name(self):
        branches = [{"name": "main", "target": {"hash": "a" * 40, "date": "2024-03-05T10:15:30+00:00"}}]
        service = _service(list_branches=_page(branches))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.list_branches("acme", "widgets", query="ma")

        kwargs = service.list_branches.await_args.kwargs
        assert kwargs["sort"] == "name"
        assert kwargs["q"] == 'name ~ "ma"'
        assert "**main**" in response.content

    async def test_commit_history(self):
        commits = [{
            "hash": "0123456789abcdef",
            "message": "Fix login\n\nDetails",
            "date": "2024-03-05T10:15:30+00:00",
            "author": {"raw": "Sam <sam@acme.test>", "user": {"display_name": "Sam"}},
        }]
        service = _service(list_commits=_page(commits))
        controller = RepositoriesController(service, _resolver(service))

        response = await controller.get_commit_history("acme", "widgets", path="src/app.py")

        assert "# Commit History: widgets (src/app.py)" in response.content
        assert "`0123456789ab` Fix login" in response.content


class TestPullRequestsController:

    async def test_list_rejects_unknown_state(self):
        service = _service()
        controller = PullRequestsController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.list("acme", "widgets", state="CLOSED")

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
        service.list_pull_requests.assert_not_called()

    async def test_list(self):
        service = _service(list_pull_requests=_page([PR], size=1))
        controller = PullRequestsController(service, _resolver(service))

        response = await controller.list("acme", "widgets", state="open", query="login")

        kwargs = service.list_pull_requests.await_args.kwargs
        assert kwargs["state"] == "OPEN"
        assert kwargs["q"] == '(title ~ "login" OR description ~ "login")'
        assert "Add login" in response.content
        assert response.pagination.has_more is False

    async def test_get_with_diff_and_comments(self):
        diff = "diff --git a/app.py b/app.py\n--- a/app.py\n+++ b/app.py\n@@ -1 +1 @@\n-a\n+b\n"
        comments = _page([{"id": 1, "content": {"raw": "LGTM"}, "user": {"display_name": "Alex"}}])
        service = _service(get_pull_request=PR, get_pull_request_diff=diff, list_pull_request_comments=comments)
        controller = PullRequestsController(service, _resolver(service))

        response = await controller.get("acme", "widgets", 7, include_full_diff=True, include_comments=True)

        assert "Add login" in response.content
        assert "```diff" in response.content
        assert "LGTM" in response.content

    async def test_get_access_denied(self):
        service = _service(get_pull_request=AuthInvalidError("Authentication failed: HTTP 403", status_code=403))
        controller = PullRequestsController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.get("acme", "widgets", 7)

        assert exc_info.value.kind is ErrorKind.ACCESS_DENIED
        assert exc_info.value.http_status == 403

    async def test_inline_comment_needs_line(self):
        service = _service()
        controller = PullRequestsController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.add_comment("acme", "widgets", 7, "Nit", path="app.py")

        assert "both path and line_number" in exc_info.value.message

    async def test_add_inline_comment(self):
        service = _service(add_pull_request_comment={"id": 42, "links": {}})
        controller = PullRequestsController(service, _resolver(service))

        await controller.add_comment("acme", "widgets", 7, "Nit", path="app.py", line_number=3)

        service.add_pull_request_comment.assert_awaited_once_with(
            "acme", "widgets", 7, "Nit", inline_path="app.py", inline_line=3
        )

    async def test_update_needs_a_field(self):
        service = _service()
        controller = PullRequestsController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.update("acme", "widgets", 7)

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR

    async def test_approve(self):
        service = _service(approve_pull_request={"approved": True, "user": {"display_name": "Sam"}})
        controller = PullRequestsController(service, _resolver(service))

        response = await controller.approve(None, "widgets", 7)

        service.approve_pull_request.assert_awaited_once_with("acme", "widgets", 7)
        assert "approved" in response.content


class TestDiffController:

    async def test_branch_diff_defaults_to_main(self):
        diffstat = _page([
            {"status": "modified", "lines_added": 3, "lines_removed": 1, "new": {"path": "app.py"}},
            {"status": "added", "lines_added": 10, "lines_removed": 0, "new": {"path": "README.md"}},
        ])
        service = _service(get_diffstat=diffstat)
        controller = DiffController(service, _resolver(service))

        response = await controller.branch_diff("acme", "widgets", "feature/login")

        service.get_diffstat.assert_awaited_once_with(
            "acme", "widgets", "main..feature/login", pagelen=25, page=None, topic=False
        )
        service.get_raw_diff.assert_not_called()
        assert "# Diff: main..feature/login" in response.content
        assert "**Files changed:** 2 (+13 / -1)" in response.content

    async def test_commit_diff_with_full_diff(self):
        service = _service(get_diffstat=_page([]), get_raw_diff="diff --git a/x b/x\n+y\n")
        controller = DiffController(service, _resolver(service))

        response = await controller.commit_diff("acme", "widgets", "abc", "def", include_full_diff=True)

        service.get_raw_diff.assert_awaited_once_with("acme", "widgets", "abc..def")
        assert "*No changes detected.*" in response.content
        assert "## Code Changes" in response.content

    async def test_missing_ref_is_not_found(self):
        service = _service(get_diffstat=ApiError("Resource not found: HTTP 404", status_code=404))
        controller = DiffController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.branch_diff("acme", "widgets", "nope", "main")

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.entity_type == "branch diff"


class TestSearchController:

    async def test_pull_request_scope_requires_repo(self):
        service = _service()
        controller = SearchController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.search("acme", "login", scope="pullrequests")

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
        assert "repo_slug is required" in exc_info.value.message

    async def test_invalid_scope(self):
        service = _service()
        controller = SearchController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.search("acme", "login", scope="wiki")

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR

    async def test_all_prefers_repositories(self):
        service = _service(list_repositories=_page([REPO]))
        controller = SearchController(service, _resolver(service))

        response = await controller.search("acme", "widgets")

        assert "# Repository Search Results" in response.content
        service.search_code.assert_not_called()

    async def test_all_falls_back_to_code(self):
        code = {
            "values": [{
                "content_match_count": 1,
                "file": {"path": "src/app.py"},
                "content_matches": [
                    {"lines": [{"line": 3, "segments": [{"text": "def "}, {"text": "login", "match": True}]}]}
                ],
            }],
            "size": 1,
            "page": 1,
            "pagelen": 25,
        }
        service = _service(list_pull_requests=_page([]), list_commits=_page([]), search_code=code)
        service.search_commits = AsyncMock(return_value=_page([]))
        controller = SearchController(service, _resolver(service))

        response = await controller.search("acme", "login", repo_slug="widgets", language="python")

        service.search_code.assert_awaited_once_with(
            "acme", "login repo:widgets lang:py", pagelen=25, page=None
        )
        assert "3: def **login**" in response.content

    async def test_code_search_error_is_enveloped(self):
        service = _service(search_code=ApiError("Rate limited: HTTP 429", status_code=429))
        controller = SearchController(service, _resolver(service))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.search("acme", "login", scope="code")

        assert exc_info.value.kind is ErrorKind.RATE_LIMIT_ERROR

    async def test_no_default_workspace(self):
        service = _service(list_workspaces={"values": []})
        controller = SearchController(service, _resolver(service, default_workspace=None))

        with pytest.raises(ErrorEnvelope) as exc_info:
            await controller.search(None, "login", scope="code")

        assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
        assert "no default workspace" in exc_info.value.message
