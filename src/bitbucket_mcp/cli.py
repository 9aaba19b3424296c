"""Command line interface: one command per tool, plus ``serve``."""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Mapping, NoReturn

import click

from .config import get_settings
from .context import AppContext, create_app_context
from .controllers import ControllerResponse
from .errors import ErrorEnvelope, ErrorKind, get_deep_original_error
from .formatting import format_separator
from .observability.logging import configure_logging
from .services.exceptions import AuthMissingError
from .services.http_client import close_http_client

logger = logging.getLogger(__name__)

EXIT_CODES = {
    ErrorKind.UNKNOWN: 1,
    ErrorKind.VALIDATION_ERROR: 2,
    ErrorKind.NOT_FOUND: 3,
    ErrorKind.ACCESS_DENIED: 4,
    ErrorKind.RATE_LIMIT_ERROR: 5,
    ErrorKind.NETWORK_ERROR: 6,
}

TIPS = {
    ErrorKind.ACCESS_DENIED: (
        "Tip: Check that your Atlassian API token or app password is correct and has not expired.\n"
        "Also verify that the configured user has access to the requested resource."
    ),
    ErrorKind.RATE_LIMIT_ERROR: "Tip: You may have exceeded your Bitbucket API rate limits. Try again later.",
    ErrorKind.NETWORK_ERROR: "Tip: Check your network connection and that api.bitbucket.org is reachable.",
    ErrorKind.NOT_FOUND: "Tip: Check the workspace, repository and identifiers for typos.",
}

MISSING_CREDENTIALS_TIP = (
    "Tip: Set your Atlassian credentials in the environment or a .env file:\n"
    "- ATLASSIAN_SITE_NAME, ATLASSIAN_USER_EMAIL and ATLASSIAN_API_TOKEN; or\n"
    "- ATLASSIAN_BITBUCKET_USERNAME and ATLASSIAN_BITBUCKET_APP_PASSWORD"
)


def handle_cli_error(error: BaseException) -> NoReturn:
    """Print ``error`` to stderr and exit with a code for its kind."""
    if isinstance(error, ErrorEnvelope):
        kind, message, status = error.kind, error.message, error.http_status
    else:
        logger.debug("Unhandled CLI error", exc_info=error)
        kind, message, status = ErrorKind.UNKNOWN, str(error), None

    lines = [f"Error: {message}"]
    if status:
        lines.append(f"HTTP Status: {status}")
    lines.append(format_separator())

    cause = error.cause if isinstance(error, ErrorEnvelope) else error
    if isinstance(cause, AuthMissingError):
        lines.append(MISSING_CREDENTIALS_TIP)
    elif kind in TIPS:
        lines.append(TIPS[kind])

    vendor_error = get_deep_original_error(error)
    if isinstance(vendor_error, Mapping):
        lines.extend(["Bitbucket API Error:", json.dumps(vendor_error, indent=2, default=str)])
    elif isinstance(vendor_error, str) and vendor_error.strip():
        lines.extend(["Bitbucket API Error:", vendor_error.strip()])

    click.echo("\n".join(lines), err=True)
    sys.exit(EXIT_CODES[kind])


def _run(call: Callable[[AppContext], Awaitable[ControllerResponse]]):
    """Run one controller call and print its Markdown."""
    app_context = create_app_context(get_settings())

    async def _invoke() -> ControllerResponse:
        try:
            return await call(app_context)
        finally:
            await close_http_client()

    try:
        response = asyncio.run(_invoke())
    except Exception as e:
        handle_cli_error(e)
    click.echo(response.content)


def workspace_option(f):
    return click.option(
        "--workspace-slug", "-w", default=None,
        help="Workspace slug (defaults to BITBUCKET_DEFAULT_WORKSPACE or your first workspace)",
    )(f)


def repo_option(f):
    return click.option("--repo-slug", "-r", required=True, help="Repository slug")(f)


def paging_options(f):
    f = click.option("--cursor", "-c", default=None, help="Pagination cursor from a previous page")(f)
    f = click.option("--limit", "-l", type=click.IntRange(1, 100), default=None, help="Maximum items (default 25)")(f)
    return f


def pr_option(f):
    return click.option("--pr-id", "-p", type=click.IntRange(min=1), required=True, help="Pull request ID")(f)


@click.group(invoke_without_command=True)
@click.version_option(package_name="bitbucket-mcp")
@click.pass_context
def cli(ctx: click.Context):
    """Bitbucket Cloud (and Jira) from the command line or as an MCP server.

    Run without a command to start the MCP server.
    """
    settings = get_settings()
    configure_logging(environment=settings.environment, log_level=settings.log_level)
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, transport=settings.transport_mode)


@cli.command()
@click.option("--transport", "-t", type=click.Choice(["stdio", "http"]), default=None,
              help="MCP transport (default from TRANSPORT_MODE)")
def serve(transport):
    """Start the MCP server."""
    from .mcp.server import MCPServer, create_http_app

    settings = get_settings()
    server = MCPServer(create_app_context(settings))
    if (transport or settings.transport_mode) == "http":
        import uvicorn

        uvicorn.run(
            create_http_app(server),
            host=settings.host,
            port=settings.port,
            log_level="debug" if settings.debug else "info",
        )
    else:
        asyncio.run(server.run_stdio())


# ── Workspaces ───────────────────────────────────────────────────────

@cli.command("ls-workspaces")
@paging_options
def ls_workspaces(limit, cursor):
    """List workspaces you are a member of."""
    _run(lambda app: app.workspaces.list_workspaces(limit=limit, cursor=cursor))


@cli.command("get-workspace")
@click.option("--workspace-slug", "-w", required=True, help="Workspace slug")
def get_workspace(workspace_slug):
    """Show workspace details and projects."""
    _run(lambda app: app.workspaces.get_workspace(workspace_slug))


# ── Repositories ─────────────────────────────────────────────────────

@cli.command("ls-repos")
@workspace_option
@click.option("--query", "-q", default=None, help="Filter by name or raw BBQL")
@click.option("--role", type=click.Choice(["owner", "admin", "contributor", "member"]), default=None)
@click.option("--sort", "-s", default=None, help="Sort field, e.g. -updated_on")
@click.option("--project-key", "-k", default=None, help="Only repositories in this project")
@paging_options
def ls_repos(workspace_slug, query, role, sort, project_key, limit, cursor):
    """List repositories."""
    _run(lambda app: app.repositories.list_repositories(
        workspace_slug=workspace_slug, query=query, role=role, sort=sort,
        project_key=project_key, limit=limit, cursor=cursor,
    ))


@cli.command("get-repo")
@workspace_option
@repo_option
def get_repo(workspace_slug, repo_slug):
    """Show repository details."""
    _run(lambda app: app.repositories.get_repository(workspace_slug, repo_slug))


@cli.command("get-commit-history")
@workspace_option
@repo_option
@click.option("--revision", "-v", default=None, help="Branch, tag or commit to start from")
@click.option("--path", default=None, help="Only commits touching this path")
@paging_options
def get_commit_history(workspace_slug, repo_slug, revision, path, limit, cursor):
    """List commits of a repository."""
    _run(lambda app: app.repositories.get_commit_history(
        workspace_slug, repo_slug, revision=revision, path=path, limit=limit, cursor=cursor,
    ))


@cli.command("add-branch")
@workspace_option
@repo_option
@click.option("--new-branch-name", "-n", required=True, help="Branch to create")
@click.option("--source-branch-or-commit", "-s", required=True, help="Branch or commit to branch from")
def add_branch(workspace_slug, repo_slug, new_branch_name, source_branch_or_commit):
    """Create a branch."""
    _run(lambda app: app.repositories.create_branch(
        workspace_slug, repo_slug, new_branch_name, source_branch_or_commit,
    ))


@cli.command("get-file")
@workspace_option
@repo_option
@click.option("--file-path", "-f", required=True, help="Path of the file")
@click.option("--revision", "-v", default=None, help="Branch, tag or commit (default: main branch)")
def get_file(workspace_slug, repo_slug, file_path, revision):
    """Print the content of a file."""
    _run(lambda app: app.repositories.get_file_content(workspace_slug, repo_slug, file_path, revision))


@cli.command("ls-branches")
@workspace_option
@repo_option
@click.option("--query", "-q", default=None, help="Filter by branch name")
@click.option("--sort", "-s", default=None, help="Sort field (default name)")
@paging_options
def ls_branches(workspace_slug, repo_slug, query, sort, limit, cursor):
    """List branches."""
    _run(lambda app: app.repositories.list_branches(
        workspace_slug, repo_slug, query=query, sort=sort, limit=limit, cursor=cursor,
    ))


# ── Pull requests ────────────────────────────────────────────────────

@cli.command("ls-prs")
@workspace_option
@repo_option
@click.option("--state", "-S", type=click.Choice(["OPEN", "MERGED", "DECLINED", "SUPERSEDED"], case_sensitive=False),
              default=None)
@click.option("--query", "-q", default=None, help="Filter by title or description")
@paging_options
def ls_prs(workspace_slug, repo_slug, state, query, limit, cursor):
    """List pull requests."""
    _run(lambda app: app.pullrequests.list(
        workspace_slug, repo_slug, state=state, query=query, limit=limit, cursor=cursor,
    ))


@cli.command("get-pr")
@workspace_option
@repo_option
@pr_option
@click.option("--include-full-diff", is_flag=True, help="Include the unified diff")
@click.option("--include-comments", is_flag=True, help="Include comments")
def get_pr(workspace_slug, repo_slug, pr_id, include_full_diff, include_comments):
    """Show pull request details."""
    _run(lambda app: app.pullrequests.get(
        workspace_slug, repo_slug, pr_id,
        include_full_diff=include_full_diff, include_comments=include_comments,
    ))


@cli.command("ls-pr-comments")
@workspace_option
@repo_option
@pr_option
@paging_options
def ls_pr_comments(workspace_slug, repo_slug, pr_id, limit, cursor):
    """List pull request comments."""
    _run(lambda app: app.pullrequests.list_comments(workspace_slug, repo_slug, pr_id, limit=limit, cursor=cursor))


@cli.command("add-pr-comment")
@workspace_option
@repo_option
@pr_option
@click.option("--content", "-m", required=True, help="Comment text (Markdown)")
@click.option("--path", default=None, help="File path for an inline comment")
@click.option("--line-number", type=click.IntRange(min=1), default=None, help="Line for an inline comment")
def add_pr_comment(workspace_slug, repo_slug, pr_id, content, path, line_number):
    """Comment on a pull request."""
    _run(lambda app: app.pullrequests.add_comment(
        workspace_slug, repo_slug, pr_id, content, path=path, line_number=line_number,
    ))


@cli.command("add-pr")
@workspace_option
@repo_option
@click.option("--title", "-t", required=True)
@click.option("--source-branch", "-s", required=True)
@click.option("--destination-branch", "-d", default=None)
@click.option("--description", default=None)
@click.option("--close-source-branch/--keep-source-branch", default=None)
def add_pr(workspace_slug, repo_slug, title, source_branch, destination_branch, description, close_source_branch):
    """Create a pull request."""
    _run(lambda app: app.pullrequests.create(
        workspace_slug, repo_slug, title, source_branch,
        destination_branch=destination_branch, description=description,
        close_source_branch=close_source_branch,
    ))


@cli.command("update-pr")
@workspace_option
@repo_option
@pr_option
@click.option("--title", "-t", default=None)
@click.option("--description", default=None)
def update_pr(workspace_slug, repo_slug, pr_id, title, description):
    """Update a pull request title and/or description."""
    _run(lambda app: app.pullrequests.update(workspace_slug, repo_slug, pr_id, title=title, description=description))


@cli.command("approve-pr")
@workspace_option
@repo_option
@pr_option
def approve_pr(workspace_slug, repo_slug, pr_id):
    """Approve a pull request."""
    _run(lambda app: app.pullrequests.approve(workspace_slug, repo_slug, pr_id))


@cli.command("reject-pr")
@workspace_option
@repo_option
@pr_option
def reject_pr(workspace_slug, repo_slug, pr_id):
    """Request changes on a pull request."""
    _run(lambda app: app.pullrequests.reject(workspace_slug, repo_slug, pr_id))


# ── Search and diff ──────────────────────────────────────────────────

@cli.command("search")
@workspace_option
@click.option("--query", "-q", required=True, help="Search text")
@click.option("--scope", type=click.Choice(["all", "repositories", "pullrequests", "commits", "code"]),
              default="all", show_default=True)
@click.option("--repo-slug", "-r", default=None, help="Repository (required for pullrequests/commits)")
@click.option("--language", default=None, help="Code search language filter")
@click.option("--extension", default=None, help="Code search extension filter")
@paging_options
def search(workspace_slug, query, scope, repo_slug, language, extension, limit, cursor):
    """Search a workspace."""
    _run(lambda app: app.search.search(
        workspace_slug, query, scope=scope, repo_slug=repo_slug,
        language=language, extension=extension, limit=limit, cursor=cursor,
    ))


@cli.command("diff-branches")
@workspace_option
@repo_option
@click.option("--source-branch", "-s", required=True)
@click.option("--destination-branch", "-d", default=None, help="Default: main")
@click.option("--full-diff", "include_full_diff", is_flag=True, help="Include the unified diff")
@click.option("--topic", is_flag=True, default=None, help="Only changes since the merge base")
@paging_options
def diff_branches(workspace_slug, repo_slug, source_branch, destination_branch, include_full_diff, topic, limit, cursor):
    """Compare two branches."""
    _run(lambda app: app.diff.branch_diff(
        workspace_slug, repo_slug, source_branch, destination_branch=destination_branch,
        include_full_diff=include_full_diff, topic=topic, limit=limit, cursor=cursor,
    ))


@cli.command("diff-commits")
@workspace_option
@repo_option
@click.option("--since-commit", required=True)
@click.option("--until-commit", required=True)
@click.option("--full-diff", "include_full_diff", is_flag=True, help="Include the unified diff")
@paging_options
def diff_commits(workspace_slug, repo_slug, since_commit, until_commit, include_full_diff, limit, cursor):
    """Compare two commits."""
    _run(lambda app: app.diff.commit_diff(
        workspace_slug, repo_slug, since_commit, until_commit,
        include_full_diff=include_full_diff, limit=limit, cursor=cursor,
    ))


# ── Jira ─────────────────────────────────────────────────────────────

@cli.command("ls-issues")
@click.option("--jql", default=None, help="JQL query")
@paging_options
def ls_issues(jql, limit, cursor):
    """Search Jira issues."""
    _run(lambda app: app.issues.list_issues(jql=jql, limit=limit, cursor=cursor))


@cli.command("get-issue")
@click.option("--issue-id-or-key", "-i", required=True)
def get_issue(issue_id_or_key):
    """Show a Jira issue."""
    _run(lambda app: app.issues.get_issue(issue_id_or_key))


@cli.command("ls-projects")
@click.option("--name", "-n", default=None, help="Filter by name or key")
@paging_options
def ls_projects(name, limit, cursor):
    """List Jira projects."""
    _run(lambda app: app.issues.list_projects(name=name, limit=limit, cursor=cursor))


@cli.command("get-project")
@click.option("--project-key-or-id", "-k", required=True)
def get_project(project_key_or_id):
    """Show a Jira project."""
    _run(lambda app: app.issues.get_project(project_key_or_id))


def main(argv: Any = None):
    cli.main(args=argv, prog_name="bitbucket-mcp")
