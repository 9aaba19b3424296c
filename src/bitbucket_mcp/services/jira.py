"""Jira Cloud REST API v3 service (issues and projects)."""

import logging
from typing import Any, Dict, Optional

from .transport import AtlassianTransport

logger = logging.getLogger(__name__)

API_PATH = "/rest/api/3"


class JiraService:
    """Read-only access to Jira issues and projects."""

    def __init__(self, transport: AtlassianTransport):
        self.transport = transport

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.transport.request("jira", "GET", f"{API_PATH}{path}", params=params)

    async def search_issues(
        self,
        jql: Optional[str] = None,
        start_at: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {
            "jql": jql,
            "startAt": start_at,
            "maxResults": max_results,
            "fields": "summary,status,issuetype,priority,assignee,reporter,project,created,updated",
        }
        return await self._get("/search", params)

    async def get_issue(self, issue_id_or_key: str) -> Dict[str, Any]:
        params = {"fields": "*all", "expand": "renderedFields"}
        return await self._get(f"/issue/{issue_id_or_key}", params)

    async def list_projects(
        self,
        query: Optional[str] = None,
        start_at: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {
            "query": query,
            "startAt": start_at,
            "maxResults": max_results,
            "expand": "description,lead",
        }
        return await self._get("/project/search", params)

    async def get_project(self, project_key_or_id: str) -> Dict[str, Any]:
        return await self._get(
            f"/project/{project_key_or_id}", {"expand": "description,lead,issueTypes"}
        )
