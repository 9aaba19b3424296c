"""Repositories, branches, commits and file content."""

import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..formatting import (
    format_bullet_list,
    format_code_block,
    format_date,
    format_heading,
    format_separator,
    format_url,
    truncate,
)
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

logger = logging.getLogger(__name__)

RECENT_PULL_REQUESTS = 5
DEFAULT_BRANCH = "main"

# File extension -> code fence language
_FENCE_LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".java": "java",
    ".go": "go",
    ".rb": "ruby",
    ".sh": "bash",
    ".json": "json",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".md": "markdown",
    ".tf": "hcl",
    ".xml": "xml",
    ".sql": "sql",
}


class RepositoriesController(BaseController):
    source_name = "controllers/repositories"

    def __init__(self, service: BitbucketService, resolver: WorkspaceResolver):
        super().__init__(resolver)
        self.service = service

    async def list_repositories(
        self,
        workspace_slug: Optional[str] = None,
        query: Optional[str] = None,
        role: Optional[str] = None,
        sort: Optional[str] = None,
        project_key: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        options = apply_defaults(
            {"workspace_slug": workspace_slug, "query": query, "role": role, "sort": sort,
             "project_key": project_key, "limit": limit, "cursor": cursor},
            {"limit": self.default_limit, "sort": "-updated_on"},
        )
        try:
            workspace = await self._workspace(options["workspace_slug"])

            filters = []
            if options["query"]:
                filters.append(format_bitbucket_query(options["query"]))
            if options["project_key"]:
                filters.append(f'project.key = "{options["project_key"]}"')

            data = await self.service.list_repositories(
                workspace,
                q=" AND ".join(filters) or None,
                role=options["role"],
                sort=options["sort"],
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
            )
        except Exception as e:
            self._fail(e, self._context("repositories", "list", "list_repositories", **options))

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        values = data.get("values") or []
        if options["project_key"]:
            # BBQL project filters are fuzzy on some accounts
            values = [r for r in values if (r.get("project") or {}).get("key") == options["project_key"]]
            pagination = replace(pagination, count=len(values))

        return self._respond(format_repositories_list(values), pagination)

    async def get_repository(self, workspace_slug: Optional[str], repo_slug: str) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        try:
            workspace = await self._workspace(workspace_slug)
            repository = await self.service.get_repository(workspace, repo_slug)
        except Exception as e:
            self._fail(e, self._context("repository", "retrieve", "get_repository", repo_slug))

        try:
            pull_requests = await self.service.list_pull_requests(
                workspace, repo_slug, state="OPEN", sort="-updated_on", pagelen=RECENT_PULL_REQUESTS
            )
            recent = pull_requests.get("values") or []
        except Exception as e:
            # The details are still useful without the pull request summary
            logger.warning("Could not fetch recent pull requests for %s/%s: %s", workspace, repo_slug, e)
            recent = None

        return self._respond(format_repository_details(repository, recent))

    async def get_commit_history(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        revision: Optional[str] = None,
        path: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        options = apply_defaults(
            {"revision": revision, "path": path, "limit": limit, "cursor": cursor},
            {"limit": self.default_limit},
        )
        try:
            workspace = await self._workspace(workspace_slug)
            data = await self.service.list_commits(
                workspace,
                repo_slug,
                revision=options["revision"],
                path=options["path"],
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
            )
        except Exception as e:
            self._fail(e, self._context("commit history", "retrieve", "get_commit_history", repo_slug, **options))

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        title = f"Commit History: {repo_slug}"
        if options["path"]:
            title += f" ({options['path']})"
        return self._respond(format_commits(data.get("values") or [], title), pagination)

    async def create_branch(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        new_branch_name: str,
        source_branch_or_commit: str,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(new_branch_name, "new_branch_name")
        self._require(source_branch_or_commit, "source_branch_or_commit")
        try:
            workspace = await self._workspace(workspace_slug)
            branch = await self.service.create_branch(
                workspace, repo_slug, new_branch_name, source_branch_or_commit
            )
        except Exception as e:
            self._fail(
                e,
                self._context(
                    "branch", "create", "create_branch", new_branch_name, source=source_branch_or_commit
                ),
            )

        target = (branch.get("target") or {}).get("hash", "")
        return self._respond(
            f"Successfully created branch `{branch.get('name', new_branch_name)}` from "
            f"`{source_branch_or_commit}` in {workspace}/{repo_slug}."
            + (f"\n\nLatest commit: `{target[:12]}`" if target else "")
        )

    async def get_file_content(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        file_path: str,
        revision: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(file_path, "file_path")
        try:
            workspace = await self._workspace(workspace_slug)
            if not revision:
                repository = await self.service.get_repository(workspace, repo_slug)
                revision = (repository.get("mainbranch") or {}).get("name") or DEFAULT_BRANCH
            content = await self.service.get_file_content(workspace, repo_slug, revision, file_path)
        except Exception as e:
            self._fail(e, self._context("file", "retrieve", "get_file_content", file_path, revision=revision))

        language = _FENCE_LANGUAGES.get(os.path.splitext(file_path)[1].lower(), "")
        lines = [
            format_heading(f"File: {file_path}"),
            "",
            f"*Repository: {workspace}/{repo_slug} @ `{revision}`*",
            "",
            format_code_block(content, language),
        ]
        return self._respond("\n".join(lines))

    async def list_branches(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        query: Optional[str] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        options = apply_defaults(
            {"query": query, "sort": sort, "limit": limit, "cursor": cursor},
            {"limit": self.default_limit, "sort": "name"},
        )
        try:
            workspace = await self._workspace(workspace_slug)
            data = await self.service.list_branches(
                workspace,
                repo_slug,
                q=format_bitbucket_query(options["query"]),
                sort=options["sort"],
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
            )
        except Exception as e:
            self._fail(e, self._context("branches", "list", "list_branches", repo_slug, **options))

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        return self._respond(format_branches(data.get("values") or [], repo_slug), pagination)


def format_repositories_list(repositories: List[Dict[str, Any]]) -> str:
    if not repositories:
        return "No repositories found."

    lines = [format_heading("Bitbucket Repositories"), ""]
    for index, repo in enumerate(repositories):
        lines.append(format_heading(f"{index + 1}. {repo.get('name')}", 2))
        lines.append(
            format_bullet_list(
                {
                    "Full Name": repo.get("full_name"),
                    "Description": truncate(repo.get("description"), 160) or None,
                    "Project": (repo.get("project") or {}).get("key"),
                    "Language": repo.get("language") or None,
                    "Private": repo.get("is_private"),
                    "Main Branch": (repo.get("mainbranch") or {}).get("name"),
                    "Updated": repo.get("updated_on"),
                    "URL": ((repo.get("links") or {}).get("html") or {}).get("href"),
                }
            )
        )
        if index < len(repositories) - 1:
            lines.extend(["", format_separator(), ""])
    return "\n".join(lines)


def format_repository_details(repo: Dict[str, Any], pull_requests: Optional[List[Dict[str, Any]]]) -> str:
    lines = [format_heading(f"Repository: {repo.get('name')}"), ""]
    if repo.get("description"):
        lines.extend([f"> {repo['description']}", ""])

    lines.append(format_heading("Basic Information", 2))
    lines.append(
        format_bullet_list(
            {
                "Full Name": repo.get("full_name"),
                "UUID": repo.get("uuid"),
                "Project": (repo.get("project") or {}).get("name"),
                "Language": repo.get("language") or None,
                "Size": f"{repo['size']} bytes" if repo.get("size") is not None else None,
                "Private": repo.get("is_private"),
                "Fork Policy": repo.get("fork_policy"),
                "Main Branch": (repo.get("mainbranch") or {}).get("name"),
                "Created": repo.get("created_on"),
                "Updated": repo.get("updated_on"),
            }
        )
    )

    links = repo.get("links") or {}
    html = (links.get("html") or {}).get("href")
    if html:
        lines.extend(["", format_heading("Links", 2), f"- Web: {format_url(html)}"])
        for clone in links.get("clone") or []:
            lines.append(f"- Clone ({clone.get('name')}): `{clone.get('href')}`")

    lines.extend(["", format_heading("Recent Open Pull Requests", 2)])
    if pull_requests is None:
        lines.append("*Could not retrieve pull requests.*")
    elif not pull_requests:
        lines.append("No open pull requests.")
    for pr in pull_requests or []:
        author = (pr.get("author") or {}).get("display_name", "Unknown")
        lines.append(f"- **#{pr.get('id')}** {pr.get('title')} by {author} ({format_date(pr.get('updated_on'))})")

    return "\n".join(lines)


def format_commits(commits: List[Dict[str, Any]], title: str) -> str:
    if not commits:
        return "No commits found."

    lines = [format_heading(title), ""]
    for commit in commits:
        author = commit.get("author") or {}
        name = (author.get("user") or {}).get("display_name") or author.get("raw", "Unknown")
        message = (commit.get("message") or "").strip().splitlines()
        lines.append(f"- `{(commit.get('hash') or '')[:12]}` {message[0] if message else ''}")
        lines.append(f"  *{name}, {format_date(commit.get('date'))}*")
    return "\n".join(lines)


def format_branches(branches: List[Dict[str, Any]], repo_slug: str) -> str:
    if not branches:
        return "No branches found."

    lines = [format_heading(f"Branches: {repo_slug}"), ""]
    for branch in branches:
        target = branch.get("target") or {}
        lines.append(
            f"- **{branch.get('name')}** `{(target.get('hash') or '')[:12]}` "
            f"({format_date(target.get('date'))})"
        )
    return "\n".join(lines)
