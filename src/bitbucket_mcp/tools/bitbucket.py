"""Bitbucket Cloud tools.

Workspace model: workspace > project > repository. Every tool that takes a
``workspace_slug`` falls back to the default workspace when it is omitted.
"""

from typing import List

from . import args
from .base import BaseToolset, ToolDefinition
from .registry import register_toolset


@register_toolset("bitbucket")
class BitbucketToolset(BaseToolset):
    """Repositories, pull requests, branches, diffs and search."""

    @property
    def name(self) -> str:
        return "bitbucket"

    @property
    def display_name(self) -> str:
        return "Bitbucket"

    @property
    def description(self) -> str:
        return "Access Bitbucket Cloud workspaces, repositories, pull requests, diffs and code search"

    def tool_definitions(self) -> List[ToolDefinition]:
        workspaces = self.context.workspaces
        repositories = self.context.repositories
        pullrequests = self.context.pullrequests

        return [
            # Workspaces
            ToolDefinition(
                "list_workspaces",
                "List the Bitbucket workspaces you are a member of",
                args.ListWorkspacesArgs,
                workspaces.list_workspaces,
            ),
            ToolDefinition(
                "get_workspace",
                "Get details of a Bitbucket workspace, including its projects",
                args.GetWorkspaceArgs,
                workspaces.get_workspace,
            ),
            # Repositories
            ToolDefinition(
                "list_repositories",
                "List repositories in a workspace, optionally filtered by name, role or project",
                args.ListRepositoriesArgs,
                repositories.list_repositories,
            ),
            ToolDefinition(
                "get_repository",
                "Get repository details and its most recent open pull requests",
                args.GetRepositoryArgs,
                repositories.get_repository,
            ),
            ToolDefinition(
                "get_commit_history",
                "List commits of a repository, optionally from a revision or touching a path",
                args.GetCommitHistoryArgs,
                repositories.get_commit_history,
            ),
            ToolDefinition(
                "create_branch",
                "Create a branch from an existing branch or commit",
                args.CreateBranchArgs,
                repositories.create_branch,
            ),
            ToolDefinition(
                "get_file",
                "Get the content of a file (defaults to the repository main branch)",
                args.GetFileArgs,
                repositories.get_file_content,
            ),
            ToolDefinition(
                "list_branches",
                "List branches of a repository",
                args.ListBranchesArgs,
                repositories.list_branches,
            ),
            # Pull requests
            ToolDefinition(
                "list_pull_requests",
                "List pull requests of a repository",
                args.ListPullRequestsArgs,
                pullrequests.list,
            ),
            ToolDefinition(
                "get_pull_request",
                "Get pull request details, optionally with comments and the full diff",
                args.GetPullRequestArgs,
                pullrequests.get,
            ),
            ToolDefinition(
                "list_pr_comments",
                "List comments on a pull request",
                args.ListPrCommentsArgs,
                pullrequests.list_comments,
            ),
            ToolDefinition(
                "add_pr_comment",
                "Comment on a pull request; pass path and line_number for an inline comment",
                args.AddPrCommentArgs,
                pullrequests.add_comment,
            ),
            ToolDefinition(
                "create_pull_request",
                "Create a pull request",
                args.CreatePullRequestArgs,
                pullrequests.create,
            ),
            ToolDefinition(
                "update_pull_request",
                "Update the title and/or description of a pull request",
                args.UpdatePullRequestArgs,
                pullrequests.update,
            ),
            ToolDefinition(
                "approve_pull_request",
                "Approve a pull request",
                args.ReviewPullRequestArgs,
                pullrequests.approve,
            ),
            ToolDefinition(
                "reject_pull_request",
                "Request changes on a pull request",
                args.ReviewPullRequestArgs,
                pullrequests.reject,
            ),
            # Search and diff
            ToolDefinition(
                "search",
                "Search repositories, pull requests, commits or code in a workspace",
                args.SearchArgs,
                self.context.search.search,
            ),
            ToolDefinition(
                "diff_branches",
                "Show changes between two branches (destination defaults to 'main')",
                args.DiffBranchesArgs,
                self.context.diff.branch_diff,
            ),
            ToolDefinition(
                "diff_commits",
                "Show changes between two commits",
                args.DiffCommitsArgs,
                self.context.diff.commit_diff,
            ),
        ]
