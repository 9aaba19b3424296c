"""Branch and commit comparisons (diffstat plus optional unified diff)."""

import logging
from typing import Any, Dict, List, Optional

from ..formatting import format_diff, format_heading
from ..pagination import PaginationStyle, extract_pagination
from ..services.bitbucket import BitbucketService
from ..workspace import WorkspaceResolver
from .base import BaseController, ControllerResponse, apply_defaults, page_from_cursor

logger = logging.getLogger(__name__)

DEFAULT_DESTINATION_BRANCH = "main"


class DiffController(BaseController):
    source_name = "controllers/diff"

    def __init__(self, service: BitbucketService, resolver: WorkspaceResolver):
        super().__init__(resolver)
        self.service = service

    async def branch_diff(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        source_branch: str,
        destination_branch: Optional[str] = None,
        include_full_diff: Optional[bool] = None,
        topic: Optional[bool] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        """Changes on ``source_branch`` relative to ``destination_branch`` (default ``main``)."""
        self._require(repo_slug, "repo_slug")
        self._require(source_branch, "source_branch")
        options = apply_defaults(
            {"destination_branch": destination_branch, "include_full_diff": include_full_diff,
             "topic": topic, "limit": limit, "cursor": cursor},
            {"destination_branch": DEFAULT_DESTINATION_BRANCH, "include_full_diff": False,
             "topic": False, "limit": self.default_limit},
        )
        # Bitbucket reads "A..B" as the changes in B that are not in A
        revspec = f"{options['destination_branch']}..{source_branch}"
        return await self._compare(
            workspace_slug, repo_slug, revspec, options,
            base=options["destination_branch"], head=source_branch,
            context=("branch diff", "compare", "branch_diff"),
        )

    async def commit_diff(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        since_commit: str,
        until_commit: str,
        include_full_diff: Optional[bool] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        self._require(repo_slug, "repo_slug")
        self._require(since_commit, "since_commit")
        self._require(until_commit, "until_commit")
        options = apply_defaults(
            {"include_full_diff": include_full_diff, "limit": limit, "cursor": cursor},
            {"include_full_diff": False, "topic": None, "limit": self.default_limit},
        )
        revspec = f"{since_commit}..{until_commit}"
        return await self._compare(
            workspace_slug, repo_slug, revspec, options,
            base=since_commit, head=until_commit,
            context=("commit diff", "compare", "commit_diff"),
        )

    async def _compare(
        self,
        workspace_slug: Optional[str],
        repo_slug: str,
        revspec: str,
        options: Dict[str, Any],
        base: str,
        head: str,
        context: tuple,
    ) -> ControllerResponse:
        raw_diff = None
        try:
            workspace = await self._workspace(workspace_slug)
            diffstat = await self.service.get_diffstat(
                workspace,
                repo_slug,
                revspec,
                pagelen=options["limit"],
                page=page_from_cursor(options["cursor"]),
                topic=options["topic"],
            )
            if options["include_full_diff"]:
                raw_diff = await self.service.get_raw_diff(workspace, repo_slug, revspec)
        except Exception as e:
            entity_type, operation, method = context
            self._fail(e, self._context(entity_type, operation, method, revspec, repo=repo_slug))

        pagination = extract_pagination(diffstat, PaginationStyle.PAGE)
        content = format_diffstat(diffstat.get("values") or [], base, head)
        if raw_diff is not None:
            content += "\n\n" + format_heading("Code Changes", 2) + "\n\n" + format_diff(raw_diff)
        return self._respond(content, pagination)


def format_diffstat(files: List[Dict[str, Any]], base: str, head: str) -> str:
    lines = [format_heading(f"Diff: {base}..{head}"), ""]
    if not files:
        lines.append("*No changes detected.*")
        return "\n".join(lines)

    added = sum(f.get("lines_added") or 0 for f in files)
    removed = sum(f.get("lines_removed") or 0 for f in files)
    conflicts = [f for f in files if f.get("status") == "merge conflict"]

    lines.append(f"**Files changed:** {len(files)} (+{added} / -{removed})")
    if conflicts:
        lines.append(f"**Merge conflicts:** {len(conflicts)}")
    lines.extend(["", format_heading("Changed Files", 2)])

    for entry in files:
        path = (entry.get("new") or {}).get("path") or (entry.get("old") or {}).get("path") or "unknown"
        lines.append(
            f"- `{path}` ({entry.get('status', 'modified')}: "
            f"+{entry.get('lines_added') or 0} / -{entry.get('lines_removed') or 0})"
        )
    return "\n".join(lines)
