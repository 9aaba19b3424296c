"""Process-wide wiring of settings, services and controllers."""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import Settings
from .controllers import (
    DiffController,
    JiraController,
    PullRequestsController,
    RepositoriesController,
    SearchController,
    WorkspacesController,
)
from .services import AtlassianTransport, BitbucketService, JiraService
from .workspace import WorkspaceCache, WorkspaceResolver

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    transport: AtlassianTransport
    bitbucket: BitbucketService
    jira: JiraService
    workspace_cache: WorkspaceCache
    resolver: WorkspaceResolver
    workspaces: WorkspacesController
    repositories: RepositoriesController
    pullrequests: PullRequestsController
    diff: DiffController
    search: SearchController
    issues: JiraController


def create_app_context(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> AppContext:
    """Build the object graph once per process.

    ``client`` overrides the shared HTTP client (tests pass one backed by
    ``httpx.MockTransport``).
    """
    transport = AtlassianTransport(settings, client=client)
    bitbucket = BitbucketService(transport)
    jira = JiraService(transport)

    cache = WorkspaceCache()
    resolver = WorkspaceResolver(bitbucket, cache, default_workspace=settings.bitbucket_default_workspace)

    logger.debug(
        "Created app context (default workspace: %s, jira: %s)",
        settings.bitbucket_default_workspace or "auto",
        "enabled" if settings.has_jira_credentials else "disabled",
    )

    return AppContext(
        settings=settings,
        transport=transport,
        bitbucket=bitbucket,
        jira=jira,
        workspace_cache=cache,
        resolver=resolver,
        workspaces=WorkspacesController(bitbucket, resolver),
        repositories=RepositoriesController(bitbucket, resolver),
        pullrequests=PullRequestsController(bitbucket, resolver),
        diff=DiffController(bitbucket, resolver),
        search=SearchController(bitbucket, resolver),
        issues=JiraController(jira),
    )
