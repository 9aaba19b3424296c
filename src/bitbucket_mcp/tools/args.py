"""Argument models for the MCP tools.

Each model doubles as the tool's ``inputSchema`` (via ``model_json_schema``)
and as the validator for incoming ``arguments``. Field names match the
keyword arguments of the controller method the tool calls.
"""

from typing import Any, Dict, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..services.exceptions import AtlassianValidationError

ArgsT = TypeVar("ArgsT", bound="ToolArgs")


def _workspace_slug():
    return Field(
        default=None,
        description="Workspace slug. Defaults to BITBUCKET_DEFAULT_WORKSPACE or your first workspace",
    )


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class PagedArgs(ToolArgs):
    limit: Optional[int] = Field(default=None, ge=1, le=100, description="Maximum items per page (default 25)")
    cursor: Optional[str] = Field(default=None, description="Pagination cursor from a previous response")

    @field_validator("cursor", mode="before")
    @classmethod
    def stringify_cursor(cls, v):
        # Page numbers are commonly sent as integers
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class RepoArgs(ToolArgs):
    workspace_slug: Optional[str] = _workspace_slug()
    repo_slug: str = Field(min_length=1, description="Repository slug")


class PagedRepoArgs(RepoArgs, PagedArgs):
    pass


class PullRequestArgs(RepoArgs):
    pr_id: int = Field(ge=1, description="Pull request ID")


# ── Workspaces ───────────────────────────────────────────────────────

class ListWorkspacesArgs(PagedArgs):
    pass


class GetWorkspaceArgs(ToolArgs):
    workspace_slug: str = Field(min_length=1, description="Workspace slug")


# ── Repositories ─────────────────────────────────────────────────────

class ListRepositoriesArgs(PagedArgs):
    workspace_slug: Optional[str] = _workspace_slug()
    query: Optional[str] = Field(default=None, description="Filter by name, or a raw BBQL expression")
    role: Optional[Literal["owner", "admin", "contributor", "member"]] = Field(
        default=None, description="Only repositories where you have this role"
    )
    sort: Optional[str] = Field(default=None, description="Sort field, e.g. '-updated_on'")
    project_key: Optional[str] = Field(default=None, description="Only repositories in this project")


class GetRepositoryArgs(RepoArgs):
    pass


class GetCommitHistoryArgs(PagedRepoArgs):
    revision: Optional[str] = Field(default=None, description="Branch, tag or commit to start from")
    path: Optional[str] = Field(default=None, description="Only commits touching this path")


class CreateBranchArgs(RepoArgs):
    new_branch_name: str = Field(min_length=1, description="Name of the branch to create")
    source_branch_or_commit: str = Field(min_length=1, description="Branch name or commit hash to branch from")


class GetFileArgs(RepoArgs):
    file_path: str = Field(min_length=1, description="Path of the file in the repository")
    revision: Optional[str] = Field(default=None, description="Branch, tag or commit (default: main branch)")


class ListBranchesArgs(PagedRepoArgs):
    query: Optional[str] = Field(default=None, description="Filter by branch name")
    sort: Optional[str] = Field(default=None, description="Sort field (default 'name')")


# ── Pull requests ────────────────────────────────────────────────────

class ListPullRequestsArgs(PagedRepoArgs):
    state: Optional[Literal["OPEN", "MERGED", "DECLINED", "SUPERSEDED"]] = Field(
        default=None, description="Pull request state filter"
    )
    query: Optional[str] = Field(default=None, description="Filter by title or description")


class GetPullRequestArgs(PullRequestArgs):
    include_full_diff: bool = Field(default=False, description="Include the unified diff")
    include_comments: bool = Field(default=False, description="Include the comments")


class ListPrCommentsArgs(PullRequestArgs, PagedArgs):
    pass


class AddPrCommentArgs(PullRequestArgs):
    content: str = Field(min_length=1, description="Comment text (Markdown)")
    path: Optional[str] = Field(default=None, description="File path for an inline comment")
    line_number: Optional[int] = Field(default=None, ge=1, description="Line number for an inline comment")


class CreatePullRequestArgs(RepoArgs):
    title: str = Field(min_length=1, description="Pull request title")
    source_branch: str = Field(min_length=1, description="Branch with the changes")
    destination_branch: Optional[str] = Field(default=None, description="Target branch (default: main branch)")
    description: Optional[str] = Field(default=None, description="Pull request description")
    close_source_branch: Optional[bool] = Field(default=None, description="Close the source branch after merge")


class UpdatePullRequestArgs(PullRequestArgs):
    title: Optional[str] = Field(default=None, description="New title")
    description: Optional[str] = Field(default=None, description="New description")


class ReviewPullRequestArgs(PullRequestArgs):
    pass


# ── Search and diff ──────────────────────────────────────────────────

class SearchArgs(PagedArgs):
    workspace_slug: Optional[str] = _workspace_slug()
    query: str = Field(min_length=1, description="Search text")
    scope: Literal["all", "repositories", "pullrequests", "commits", "code"] = Field(
        default="all", description="What to search"
    )
    repo_slug: Optional[str] = Field(default=None, description="Repository (required for pullrequests/commits)")
    language: Optional[str] = Field(default=None, description="Code search language filter")
    extension: Optional[str] = Field(default=None, description="Code search file extension filter")


class DiffBranchesArgs(PagedRepoArgs):
    source_branch: str = Field(min_length=1, description="Branch with the changes")
    destination_branch: Optional[str] = Field(default=None, description="Branch to compare against (default 'main')")
    include_full_diff: Optional[bool] = Field(default=None, description="Include the unified diff")
    topic: Optional[bool] = Field(default=None, description="Only changes since the merge base")


class DiffCommitsArgs(PagedRepoArgs):
    since_commit: str = Field(min_length=1, description="Older commit hash")
    until_commit: str = Field(min_length=1, description="Newer commit hash")
    include_full_diff: Optional[bool] = Field(default=None, description="Include the unified diff")


# ── Jira ─────────────────────────────────────────────────────────────

class ListIssuesArgs(PagedArgs):
    jql: Optional[str] = Field(default=None, description="JQL query (default: most recently updated)")


class GetIssueArgs(ToolArgs):
    issue_id_or_key: str = Field(min_length=1, description="Issue key (e.g. PROJ-123) or ID")


class ListProjectsArgs(PagedArgs):
    name: Optional[str] = Field(default=None, description="Filter by project name or key")


class GetProjectArgs(ToolArgs):
    project_key_or_id: str = Field(min_length=1, description="Project key or ID")


def tool_input_schema(model: Type[ToolArgs]) -> Dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    return schema


def parse_arguments(model: Type[ArgsT], arguments: Optional[Dict[str, Any]]) -> ArgsT:
    """Validate tool arguments.

    Raises:
        AtlassianValidationError: One line per invalid field.
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors()
        )
        raise AtlassianValidationError(f"Invalid arguments: {problems}", original_error=e) from e
