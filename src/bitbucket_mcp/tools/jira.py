"""Jira Cloud tools (read-only)."""

from typing import List

from . import args
from .base import BaseToolset, ToolDefinition
from .registry import register_toolset


@register_toolset("jira")
class JiraToolset(BaseToolset):

    @property
    def name(self) -> str:
        return "jira"

    @property
    def display_name(self) -> str:
        return "Jira"

    @property
    def description(self) -> str:
        return "Search and read Jira Cloud issues and projects"

    @classmethod
    def is_enabled(cls, settings) -> bool:
        # Jira only works with site + e-mail + API token, not app passwords
        return settings.has_jira_credentials

    def tool_definitions(self) -> List[ToolDefinition]:
        issues = self.context.issues
        return [
            ToolDefinition("list_issues", "Search Jira issues with JQL", args.ListIssuesArgs, issues.list_issues),
            ToolDefinition("get_issue", "Get a Jira issue with its description and comments", args.GetIssueArgs, issues.get_issue),
            ToolDefinition("list_projects", "List Jira projects", args.ListProjectsArgs, issues.list_projects),
            ToolDefinition("get_project", "Get details of a Jira project", args.GetProjectArgs, issues.get_project),
        ]
