"""Pull request operations."""

import logging
from typing import Any, Dict, List, Optional

from ..formatting import (
    format_bullet_list,
    format_date,
    format_diff,
    format_heading,
    format_separator,
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

PR_STATES = ("OPEN", "MERGED", "DECLINED", "SUPERSEDED")
COMMENTS_PREVIEW_PAGELEN = 25


class PullRequestsController(BaseController):
    source_name = "controllers/pullrequests"

    def __init__(self, service: BitbucketService, resolver: WorkspaceResolver):
        super().__init__(resolver)
        self.service = service

    async def list(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        state: Optional[str] = None,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        if state and state.upper() not in PR_STATES:
            self._invalid(f"Invalid request: state must be one of {', '.join(PR_STATES)}")
        options = apply_defaults(
            {"state": state, "query": query, "limit": limit, "cursor": cursor},
            {"limit": self.default_limit},
        )
        try:
            workspace = await self._workspace(workspace_slug)
            data = await self.service.list_pull_requests(
                workspace,
                repo_slug,
                state=options["state"].upper() if options["state"] else None,
                q=format_bitbucket_query(options["query"], "title", "description"),
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
            )
        except Exception as e:
            self._fail(e, self._context("pull requests", "list", "list", repo_slug, **options))

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        return self._respond(format_pull_requests_list(data.get("values") or []), pagination)

    async def get(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        pr_id: int,
        include_full_diff: bool = False,
        include_comments: bool = False,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        diff = None
        comments = None
        try:
            workspace = await self._workspace(workspace_slug)
            pull_request = await self.service.get_pull_request(workspace, repo_slug, pr_id)
            if include_full_diff:
                diff = await self.service.get_pull_request_diff(workspace, repo_slug, pr_id)
            if include_comments:
                data = await self.service.list_pull_request_comments(
                    workspace, repo_slug, pr_id, pagelen=COMMENTS_PREVIEW_PAGELEN
                )
                comments = data.get("values") or []
        except Exception as e:
            self._fail(e, self._context("pull request", "retrieve", "get", {"repo": repo_slug, "id": pr_id}))

        content = format_pull_request_details(pull_request)
        if comments is not None:
            content += "\n\n" + format_heading("Comments", 2) + "\n\n" + format_comments(comments)
        if diff is not None:
            content += "\n\n" + format_heading("Code Changes", 2) + "\n\n" + format_diff(diff)
        return self._respond(content)

    async def list_comments(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        pr_id: int,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        options = apply_defaults({"limit": limit, "cursor": cursor}, {"limit": self.default_limit})
        try:
            workspace = await self._workspace(workspace_slug)
            data = await self.service.list_pull_request_comments(
                workspace,
                repo_slug,
                pr_id,
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
            )
        except Exception as e:
            self._fail(
                e,
                self._context("pull request comments", "list", "list_comments", {"repo": repo_slug, "id": pr_id}),
            )

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        content = format_heading(f"Comments on Pull Request #{pr_id}") + "\n\n" + format_comments(
            data.get("values") or []
        )
        return self._respond(content, pagination)

    async def add_comment(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        pr_id: int,
        content: str,
        path: Optional[str] = None,
        line_number: Optional[int] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        self._require(content, "content")
        if (path is None) != (line_number is None):
            self._invalid("Invalid request: inline comments need both path and line_number")
        try:
            workspace = await self._workspace(workspace_slug)
            comment = await self.service.add_pull_request_comment(
                workspace, repo_slug, pr_id, content, inline_path=path, inline_line=line_number
            )
        except Exception as e:
            self._fail(
                e,
                self._context("pull request comment", "add", "add_comment", {"repo": repo_slug, "id": pr_id}),
            )

        where = f" on `{path}` line {line_number}" if path else ""
        return self._respond(
            f"Comment added to pull request #{pr_id}{where}." + (f" (comment id {comment['id']})" if comment.get("id") else "")
        )

    async def create(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        title: str,
        source_branch: str,
        destination_branch: Optional[str] = None,
        description: Optional[str] = None,
        close_source_branch: Optional[bool] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(title, "title")
        self._require(source_branch, "source_branch")
        try:
            workspace = await self._workspace(workspace_slug)
            pull_request = await self.service.create_pull_request(
                workspace,
                repo_slug,
                title=title,
                source_branch=source_branch,
                destination_branch=destination_branch,
                description=description,
                close_source_branch=close_source_branch,
            )
        except Exception as e:
            self._fail(
                e,
                self._context(
                    "pull request", "create", "create", repo_slug,
                    source_branch=source_branch, destination_branch=destination_branch,
                ),
            )

        return self._respond(
            format_heading("Pull Request Created") + "\n\n" + format_pull_request_details(pull_request)
        )

    async def update(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        pr_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        if title is None and description is None:
            self._invalid("Invalid request: provide a title or a description to update")
        try:
            workspace = await self._workspace(workspace_slug)
            pull_request = await self.service.update_pull_request(
                workspace, repo_slug, pr_id, title=title, description=description
            )
        except Exception as e:
            self._fail(e, self._context("pull request", "update", "update", {"repo": repo_slug, "id": pr_id}))

        return self._respond(
            format_heading("Pull Request Updated") + "\n\n" + format_pull_request_details(pull_request)
        )

    async def approve(self, workspace_slug: Optional[str], repo_slug: str, pr_id: int) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        try:
            workspace = await self._workspace(workspace_slug)
            participant = await self.service.approve_pull_request(workspace, repo_slug, pr_id)
        except Exception as e:
            self._fail(e, self._context("pull request", "approve", "approve", {"repo": repo_slug, "id": pr_id}))

        return self._respond(format_review_result(pr_id, participant, "approved"))

    async def reject(self, workspace_slug: Optional[str], repo_slug: str, pr_id: int) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(pr_id, "pr_id")
        try:
            workspace = await self._workspace(workspace_slug)
            participant = await self.service.request_changes_pull_request(workspace, repo_slug, pr_id)
        except Exception as e:
            self._fail(e, self._context("pull request", "reject", "reject", {"repo": repo_slug, "id": pr_id}))

        return self._respond(format_review_result(pr_id, participant, "marked as changes requested"))


def _branch(side: Optional[Dict[str, Any]]) -> str:
    return ((side or {}).get("branch") or {}).get("name", "unknown")


def format_pull_requests_list(pull_requests: List[Dict[str, Any]]) -> str:
    if not pull_requests:
        return "No pull requests found."

    lines = [format_heading("Bitbucket Pull Requests"), ""]
    for index, pr in enumerate(pull_requests):
        lines.append(format_heading(f"#{pr.get('id')}: {pr.get('title')}", 2))
        lines.append(
            format_bullet_list(
                {
                    "State": pr.get("state"),
                    "Author": (pr.get("author") or {}).get("display_name"),
                    "Branches": f"{_branch(pr.get('source'))} → {_branch(pr.get('destination'))}",
                    "Created": pr.get("created_on"),
                    "Updated": pr.get("updated_on"),
                    "URL": ((pr.get("links") or {}).get("html") or {}).get("href"),
                }
            )
        )
        description = pr.get("description") or (pr.get("summary") or {}).get("raw")
        if description:
            lines.append(f"\n> {truncate(description, 200)}")
        if index < len(pull_requests) - 1:
            lines.extend(["", format_separator(), ""])
    return "\n".join(lines)


def format_pull_request_details(pr: Dict[str, Any]) -> str:
    lines = [format_heading(f"Pull Request #{pr.get('id')}: {pr.get('title')}"), ""]
    lines.append(
        format_bullet_list(
            {
                "State": pr.get("state"),
                "Author": (pr.get("author") or {}).get("display_name"),
                "Source": _branch(pr.get("source")),
                "Destination": _branch(pr.get("destination")),
                "Comments": pr.get("comment_count"),
                "Tasks": pr.get("task_count"),
                "Close Source Branch": pr.get("close_source_branch"),
                "Created": pr.get("created_on"),
                "Updated": pr.get("updated_on"),
                "URL": ((pr.get("links") or {}).get("html") or {}).get("href"),
            }
        )
    )

    reviewers = [r.get("display_name") for r in pr.get("reviewers") or []]
    if reviewers:
        lines.extend(["", format_heading("Reviewers", 2)] + [f"- {name}" for name in reviewers])

    approvals = [
        (p.get("user") or {}).get("display_name")
        for p in pr.get("participants") or []
        if p.get("approved")
    ]
    if approvals:
        lines.extend(["", f"**Approved by:** {', '.join(approvals)}"])

    description = pr.get("description") or (pr.get("summary") or {}).get("raw")
    lines.extend(["", format_heading("Description", 2), description or "*No description provided.*"])
    return "\n".join(lines)


def format_comments(comments: List[Dict[str, Any]]) -> str:
    if not comments:
        return "No comments found."

    lines = []
    for comment in comments:
        if comment.get("deleted"):
            continue
        author = (comment.get("user") or {}).get("display_name", "Unknown")
        inline = comment.get("inline") or {}
        location = ""
        if inline.get("path"):
            line = inline.get("to") or inline.get("from")
            location = f" on `{inline['path']}`" + (f" line {line}" if line else "")
        lines.append(f"**{author}**{location} ({format_date(comment.get('created_on'))}):")
        lines.append((comment.get("content") or {}).get("raw") or "")
        lines.append("")
    return "\n".join(lines).rstrip() or "No comments found."


def format_review_result(pr_id: int, participant: Dict[str, Any], verb: str) -> str:
    user = (participant.get("user") or {}).get("display_name")
    by = f" by {user}" if user else ""
    return f"Pull request #{pr_id} {verb}{by}."
