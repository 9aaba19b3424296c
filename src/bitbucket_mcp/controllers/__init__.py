"""Controllers: argument defaults, REST calls and Markdown formatting per tool."""

from .base import BaseController, ControllerResponse, apply_defaults
from .diff import DiffController
from .jira import JiraController
from .pullrequests import PullRequestsController
from .repositories import RepositoriesController
from .search import SearchController
from .workspaces import WorkspacesController

__all__ = [
    "BaseController",
    "ControllerResponse",
    "DiffController",
    "JiraController",
    "PullRequestsController",
    "RepositoriesController",
    "SearchController",
    "WorkspacesController",
    "apply_defaults",
]
