"""Bitbucket Cloud REST API v2.0 service.

Workspace model: workspace > project > repository.
API base: https://api.bitbucket.org/2.0/

Methods return the decoded JSON payload unchanged; shaping the data is the
controllers' job.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from .transport import AtlassianTransport

logger = logging.getLogger(__name__)

API_PATH = "/2.0"


def _page_params(pagelen: Optional[int], page: Optional[Any]) -> Dict[str, Any]:
    return {"pagelen": pagelen, "page": page}


class BitbucketService:
    """Thin wrapper around the Bitbucket Cloud endpoints used by the tools."""

    def __init__(self, transport: AtlassianTransport):
        self.transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.transport.request("bitbucket", "GET", f"{API_PATH}{path}", params=params, **kwargs)

    async def _post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.transport.request("bitbucket", "POST", f"{API_PATH}{path}", json=body)

    async def _put(self, path: str, body: Dict[str, Any]) -> Any:
        return await self.transport.request("bitbucket", "PUT", f"{API_PATH}{path}", json=body)

    # ── Workspaces ───────────────────────────────────────────────────

    async def list_workspaces(self, pagelen: Optional[int] = None, page: Optional[Any] = None) -> Dict[str, Any]:
        """List workspace memberships of the authenticated user.

        The /user/permissions/workspaces endpoint does not support sorting.
        """
        return await self._get("/user/permissions/workspaces", _page_params(pagelen, page))

    async def get_workspace(self, workspace: str) -> Dict[str, Any]:
        return await self._get(f"/workspaces/{workspace}")

    async def list_workspace_projects(self, workspace: str, pagelen: Optional[int] = None) -> Dict[str, Any]:
        return await self._get(f"/workspaces/{workspace}/projects", {"pagelen": pagelen})

    # ── Repositories ─────────────────────────────────────────────────

    async def list_repositories(
        self,
        workspace: str,
        q: Optional[str] = None,
        role: Optional[str] = None,
        sort: Optional[str] = None,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        params = {"q": q, "role": role, "sort": sort, **_page_params(pagelen, page)}
        return await self._get(f"/repositories/{workspace}", params)

    async def get_repository(self, workspace: str, repo_slug: str) -> Dict[str, Any]:
        return await self._get(f"/repositories/{workspace}/{repo_slug}")

    async def list_commits(
        self,
        workspace: str,
        repo_slug: str,
        revision: Optional[str] = None,
        path: Optional[str] = None,
        q: Optional[str] = None,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        endpoint = f"/repositories/{workspace}/{repo_slug}/commits"
        if revision:
            endpoint += f"/{quote(revision, safe='')}"
        params = {"path": path, "q": q, **_page_params(pagelen, page)}
        return await self._get(endpoint, params)

    async def list_branches(
        self,
        workspace: str,
        repo_slug: str,
        q: Optional[str] = None,
        sort: Optional[str] = None,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        params = {"q": q, "sort": sort, **_page_params(pagelen, page)}
        return await self._get(f"/repositories/{workspace}/{repo_slug}/refs/branches", params)

    async def create_branch(self, workspace: str, repo_slug: str, name: str, target: str) -> Dict[str, Any]:
        body = {"name": name, "target": {"hash": target}}
        return await self._post(f"/repositories/{workspace}/{repo_slug}/refs/branches", body)

    async def get_file_content(self, workspace: str, repo_slug: str, commit: str, path: str) -> str:
        """Raw file content via /src/{commit}/{path}."""
        return await self._get(
            f"/repositories/{workspace}/{repo_slug}/src/{quote(commit, safe='')}/{path.lstrip('/')}",
            expect_text=True,
        )

    # ── Pull requests ────────────────────────────────────────────────

    async def list_pull_requests(
        self,
        workspace: str,
        repo_slug: str,
        state: Optional[str] = None,
        q: Optional[str] = None,
        sort: Optional[str] = None,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        params = {"state": state, "q": q, "sort": sort, **_page_params(pagelen, page)}
        return await self._get(f"/repositories/{workspace}/{repo_slug}/pullrequests", params)

    async def get_pull_request(self, workspace: str, repo_slug: str, pull_request_id: int) -> Dict[str, Any]:
        return await self._get(f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}")

    async def get_pull_request_diff(self, workspace: str, repo_slug: str, pull_request_id: int) -> str:
        return await self._get(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}/diff",
            expect_text=True,
        )

    async def list_pull_request_comments(
        self,
        workspace: str,
        repo_slug: str,
        pull_request_id: int,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        return await self._get(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}/comments",
            _page_params(pagelen, page),
        )

    async def add_pull_request_comment(
        self,
        workspace: str,
        repo_slug: str,
        pull_request_id: int,
        content: str,
        inline_path: Optional[str] = None,
        inline_line: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"content": {"raw": content}}
        if inline_path is not None and inline_line is not None:
            body["inline"] = {"path": inline_path, "to": inline_line}
        return await self._post(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}/comments",
            body,
        )

    async def create_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        title: str,
        source_branch: str,
        destination_branch: Optional[str] = None,
        description: Optional[str] = None,
        close_source_branch: Optional[bool] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "title": title,
            "source": {"branch": {"name": source_branch}},
        }
        if destination_branch:
            body["destination"] = {"branch": {"name": destination_branch}}
        if description is not None:
            body["description"] = description
        if close_source_branch is not None:
            body["close_source_branch"] = close_source_branch
        return await self._post(f"/repositories/{workspace}/{repo_slug}/pullrequests", body)

    async def update_pull_request(
        self,
        workspace: str,
        repo_slug: str,
        pull_request_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if title is not None:
            body["title"] = title
        if description is not None:
            body["description"] = description
        return await self._put(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}", body
        )

    async def approve_pull_request(self, workspace: str, repo_slug: str, pull_request_id: int) -> Dict[str, Any]:
        return await self._post(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}/approve"
        )

    async def request_changes_pull_request(
        self, workspace: str, repo_slug: str, pull_request_id: int
    ) -> Dict[str, Any]:
        return await self._post(
            f"/repositories/{workspace}/{repo_slug}/pullrequests/{pull_request_id}/request-changes"
        )

    # ── Diffs ────────────────────────────────────────────────────────

    async def get_diffstat(
        self,
        workspace: str,
        repo_slug: str,
        spec: str,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
        topic: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Per-file summary between two refs: /diffstat/{spec}."""
        params: Dict[str, Any] = _page_params(pagelen, page)
        if topic is not None:
            params["topic"] = str(topic).lower()
        return await self._get(
            f"/repositories/{workspace}/{repo_slug}/diffstat/{quote(spec, safe='')}", params
        )

    async def get_raw_diff(self, workspace: str, repo_slug: str, spec: str) -> str:
        """Unified diff between two refs: /diff/{spec}."""
        return await self._get(
            f"/repositories/{workspace}/{repo_slug}/diff/{quote(spec, safe='')}",
            expect_text=True,
        )

    # ── Search ───────────────────────────────────────────────────────

    async def search_code(
        self,
        workspace: str,
        search_query: str,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        params = {"search_query": search_query, **_page_params(pagelen, page)}
        return await self._get(f"/workspaces/{workspace}/search/code", params)

    async def search_commits(
        self,
        workspace: str,
        repo_slug: str,
        search_query: str,
        pagelen: Optional[int] = None,
        page: Optional[Any] = None,
    ) -> Dict[str, Any]:
        return await self.list_commits(
            workspace,
            repo_slug,
            q=f'message ~ "{search_query}"',
            pagelen=pagelen,
            page=page,
        )
