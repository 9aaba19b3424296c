"""Search across repositories, pull requests, commits and code."""

import enum
import logging
import os
from typing import Any, Dict, List, Optional

from ..formatting import format_heading, format_url
from ..pagination import PaginationStyle, extract_pagination
from ..services.bitbucket import BitbucketService
from ..workspace import WorkspaceResolver
from .base import (
    BaseController,
    ControllerResponse,
    apply_defaults,
    format_bitbucket_query,
    page_from_cursor,
)
from .pullrequests import format_pull_requests_list
from .repositories import format_commits, format_repositories_list

logger = logging.getLogger(__name__)

# Common language names -> Bitbucket code search ``lang:`` values
LANGUAGE_ALIASES = {
    "hcl": "terraform",
    "tf": "terraform",
    "typescript": "ts",
    "javascript": "js",
    "python": "py",
}

_HIGHLIGHT_LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".java": "java",
    ".rb": "ruby",
    ".go": "go",
    ".rs": "rust",
    ".tf": "terraform",
    ".hcl": "hcl",
    ".sh": "bash",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".md": "markdown",
    ".sql": "sql",
}


class SearchScope(str, enum.Enum):
    ALL = "all"
    REPOSITORIES = "repositories"
    PULL_REQUESTS = "pullrequests"
    COMMITS = "commits"
    CODE = "code"


def build_code_search_query(
    query: str,
    repo_slug: Optional[str] = None,
    language: Optional[str] = None,
    extension: Optional[str] = None,
) -> str:
    """Append ``repo:``, ``lang:`` and ``ext:`` modifiers to a code search query."""
    parts = [query]
    if repo_slug:
        parts.append(f"repo:{repo_slug}")
    if language:
        normalized = language.lower()
        parts.append(f"lang:{LANGUAGE_ALIASES.get(normalized, normalized)}")
    if extension:
        parts.append(f"ext:{extension.lstrip('.')}")
    return " ".join(parts)


class SearchController(BaseController):
    source_name = "controllers/search"

    def __init__(self, service: BitbucketService, resolver: WorkspaceResolver):
        super().__init__(resolver)
        self.service = service

    async def search(
        self,
        workspace_slug: Optional[str],
        query: str,
        scope: Optional[str] = None,
        repo_slug: Optional[str] = None,
        language: Optional[str] = None,
        extension: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(query, "query")
        options = apply_defaults(
            {"scope": scope, "repo_slug": repo_slug, "language": language,
             "extension": extension, "limit": limit, "cursor": cursor},
            {"scope": SearchScope.ALL.value, "limit": self.default_limit},
        )
        try:
            search_scope = SearchScope(options["scope"])
        except ValueError:
            self._invalid(
                f"Invalid request: scope must be one of {', '.join(s.value for s in SearchScope)}"
            )
        if search_scope in (SearchScope.PULL_REQUESTS, SearchScope.COMMITS) and not repo_slug:
            self._invalid(f"Invalid request: repo_slug is required for {search_scope.value} search")

        try:
            workspace = await self._workspace(workspace_slug)
            logger.debug("Searching %s in %s for %r", search_scope.value, workspace, query)

            if search_scope is SearchScope.REPOSITORIES:
                return await self._search_repositories(workspace, query, options)
            if search_scope is SearchScope.PULL_REQUESTS:
                return await self._search_pull_requests(workspace, query, options)
            if search_scope is SearchScope.COMMITS:
                return await self._search_commits(workspace, query, options)
            if search_scope is SearchScope.CODE:
                return await self._search_code(workspace, query, options)
            return await self._search_all(workspace, query, options)
        except Exception as e:
            self._fail(e, self._context("search results", "search", "search", query, **options))

    async def _search_all(self, workspace: str, query: str, options: Dict[str, Any]) -> ControllerResponse:
        """Most specific non-empty result: PRs then commits in a repo, repositories otherwise; code last."""
        if options["repo_slug"]:
            attempts = (self._search_pull_requests, self._search_commits)
        else:
            attempts = (self._search_repositories,)

        for attempt in attempts:
            response = await attempt(workspace, query, options)
            if response.pagination is not None and response.pagination.count:
                return response
        return await self._search_code(workspace, query, options)

    async def _search_repositories(self, workspace: str, query: str, options: Dict[str, Any]) -> ControllerResponse:
        data = await self.service.list_repositories(
            workspace,
            q=format_bitbucket_query(query, "name", "description"),
            sort="-updated_on",
            pagelen=options["limit"],
            page=page_from_cursor(options["cursor"]),
        )
        values = data.get("values") or []
        content = format_heading("Repository Search Results") + "\n\n" + format_repositories_list(values)
        return self._respond(content, extract_pagination(data, PaginationStyle.PAGE))

    async def _search_pull_requests(self, workspace: str, query: str, options: Dict[str, Any]) -> ControllerResponse:
        data = await self.service.list_pull_requests(
            workspace,
            options["repo_slug"],
            q=format_bitbucket_query(query, "title", "description"),
            sort="-updated_on",
            pagelen=options["limit"],
            page=page_from_cursor(options["cursor"]),
        )
        values = data.get("values") or []
        content = format_heading("Pull Request Search Results") + "\n\n" + format_pull_requests_list(values)
        return self._respond(content, extract_pagination(data, PaginationStyle.PAGE))

    async def _search_commits(self, workspace: str, query: str, options: Dict[str, Any]) -> ControllerResponse:
        data = await self.service.search_commits(
            workspace,
            options["repo_slug"],
            query,
            pagelen=options["limit"],
            page=page_from_cursor(options["cursor"]),
        )
        values = data.get("values") or []
        content = format_commits(values, f"Commit Search Results: {workspace}/{options['repo_slug']}")
        return self._respond(content, extract_pagination(data, PaginationStyle.PAGE))

    async def _search_code(self, workspace: str, query: str, options: Dict[str, Any]) -> ControllerResponse:
        search_query = build_code_search_query(
            query, options["repo_slug"], options["language"], options["extension"]
        )
        data = await self.service.search_code(
            workspace,
            search_query,
            pagelen=options["limit"],
            page=page_from_cursor(options["cursor"]),
        )
        pagination = extract_pagination(data, PaginationStyle.PAGE)
        return self._respond(format_code_search_results(data.get("values") or [], data.get("size")), pagination)


def format_code_search_results(results: List[Dict[str, Any]], total: Optional[int]) -> str:
    if not results:
        return "**No code matches found.**"

    lines = [format_heading("Code Search Results", 2), ""]
    if total is not None:
        lines.extend([f"Found {total} matches for the code search query.", ""])

    for result in results:
        file = result.get("file") or {}
        path = file.get("path") or "Unknown File"
        href = ((file.get("links") or {}).get("self") or {}).get("href")
        match_count = result.get("content_match_count") or 0

        lines.append(format_heading(format_url(href, path) if href else path, 3))
        lines.append("")
        lines.append(f"{match_count} {'match' if match_count == 1 else 'matches'} found")
        lines.append("")
        lines.append("```" + _HIGHLIGHT_LANGUAGES.get(os.path.splitext(path)[1].lower(), ""))
        for content_match in result.get("content_matches") or []:
            for line in content_match.get("lines") or []:
                text = "".join(
                    f"**{segment.get('text', '')}**" if segment.get("match") else segment.get("text", "")
                    for segment in line.get("segments") or []
                )
                lines.append(f"{line.get('line')}: {text}")
        lines.extend(["```", ""])

    return "\n".join(lines).rstrip()
