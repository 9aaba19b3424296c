"""Jira issues and projects."""

import logging
from typing import Any, Dict, List, Optional

from ..formatting import format_bullet_list, format_heading, format_separator, format_url, truncate
from ..pagination import PaginationStyle, extract_pagination
from ..services.jira import JiraService
from .base import BaseController, ControllerResponse, apply_defaults

logger = logging.getLogger(__name__)

# ADF block nodes that end a line of text
_ADF_BLOCKS = {"paragraph", "heading", "listItem", "blockquote", "codeBlock", "rule", "tableRow"}


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node (or plain string) to text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_to_text(child) for child in node)
    if not isinstance(node, dict):
        return str(node)

    node_type = node.get("type")
    if node_type == "text":
        return node.get("text", "")
    if node_type == "hardBreak":
        return "\n"
    if node_type in ("mention", "emoji"):
        attrs = node.get("attrs") or {}
        return attrs.get("text") or attrs.get("shortName") or ""
    if node_type == "inlineCard":
        return (node.get("attrs") or {}).get("url", "")

    text = adf_to_text(node.get("content") or [])
    if node_type == "listItem":
        text = f"- {text.strip()}"
    if node_type in _ADF_BLOCKS:
        text = text.rstrip("\n") + "\n"
    return text


def _offset(cursor: Optional[str]) -> Optional[int]:
    if not cursor:
        return None
    try:
        return max(int(cursor), 0)
    except ValueError:
        logger.warning("Ignoring non-numeric offset cursor: %s", cursor)
        return None


class JiraController(BaseController):
    source_name = "controllers/jira"

    def __init__(self, service: JiraService):
        super().__init__()
        self.service = service

    async def list_issues(
        self,
        jql: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        options = apply_defaults(
            {"jql": jql, "limit": limit, "cursor": cursor},
            {"jql": "ORDER BY updated DESC", "limit": self.default_limit},
        )
        try:
            data = await self.service.search_issues(
                jql=options["jql"], start_at=_offset(options["cursor"]), max_results=options["limit"]
            )
        except Exception as e:
            self._fail(e, self._context("issues", "search", "list_issues", **options))

        pagination = extract_pagination(data, PaginationStyle.OFFSET)
        return self._respond(format_issues_list(data.get("issues") or []), pagination)

    async def get_issue(self, issue_id_or_key: str) -> ControllerResponse:
        self._require(issue_id_or_key, "issue_id_or_key")
        try:
            issue = await self.service.get_issue(issue_id_or_key)
        except Exception as e:
            self._fail(e, self._context("issue", "retrieve", "get_issue", issue_id_or_key))

        return self._respond(format_issue_details(issue))

    async def list_projects(
        self,
        name: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ControllerResponse:
        options = apply_defaults({"name": name, "limit": limit, "cursor": cursor}, {"limit": self.default_limit})
        try:
            data = await self.service.list_projects(
                query=options["name"], start_at=_offset(options["cursor"]), max_results=options["limit"]
            )
        except Exception as e:
            self._fail(e, self._context("projects", "list", "list_projects", **options))

        pagination = extract_pagination(data, PaginationStyle.OFFSET)
        return self._respond(format_projects_list(data.get("values") or []), pagination)

    async def get_project(self, project_key_or_id: str) -> ControllerResponse:
        self._require(project_key_or_id, "project_key_or_id")
        try:
            project = await self.service.get_project(project_key_or_id)
        except Exception as e:
            self._fail(e, self._context("project", "retrieve", "get_project", project_key_or_id))

        return self._respond(format_project_details(project))


def _name(value: Optional[Dict[str, Any]], key: str = "name") -> Optional[str]:
    return (value or {}).get(key)


def format_issues_list(issues: List[Dict[str, Any]]) -> str:
    if not issues:
        return "No Jira issues found."

    lines = [format_heading("Jira Issues"), ""]
    for index, issue in enumerate(issues):
        fields = issue.get("fields") or {}
        lines.append(format_heading(f"{issue.get('key')}: {fields.get('summary')}", 2))
        lines.append(
            format_bullet_list(
                {
                    "Type": _name(fields.get("issuetype")),
                    "Status": _name(fields.get("status")),
                    "Priority": _name(fields.get("priority")),
                    "Assignee": _name(fields.get("assignee"), "displayName") or "Unassigned",
                    "Project": _name(fields.get("project"), "key"),
                    "Updated": fields.get("updated"),
                }
            )
        )
        if index < len(issues) - 1:
            lines.extend(["", format_separator(), ""])
    return "\n".join(lines)


def format_issue_details(issue: Dict[str, Any]) -> str:
    fields = issue.get("fields") or {}
    lines = [format_heading(f"Jira Issue: {issue.get('key')}: {fields.get('summary')}"), ""]
    lines.append(
        format_bullet_list(
            {
                "ID": issue.get("id"),
                "Type": _name(fields.get("issuetype")),
                "Status": _name(fields.get("status")),
                "Priority": _name(fields.get("priority")),
                "Project": _name(fields.get("project")),
                "Assignee": _name(fields.get("assignee"), "displayName") or "Unassigned",
                "Reporter": _name(fields.get("reporter"), "displayName"),
                "Labels": ", ".join(fields.get("labels") or []) or None,
                "Created": fields.get("created"),
                "Updated": fields.get("updated"),
            }
        )
    )

    description = adf_to_text(fields.get("description")).strip()
    lines.extend(["", format_heading("Description", 2), description or "*No description provided.*"])

    comments = ((fields.get("comment") or {}).get("comments")) or []
    if comments:
        lines.extend(["", format_heading("Comments", 2)])
        for comment in comments:
            author = _name(comment.get("author"), "displayName") or "Unknown"
            lines.append(f"- **{author}**: {truncate(adf_to_text(comment.get('body')).strip(), 300)}")

    return "\n".join(lines)


def format_projects_list(projects: List[Dict[str, Any]]) -> str:
    if not projects:
        return "No Jira projects found."

    lines = [format_heading("Jira Projects"), ""]
    for project in projects:
        lead = _name(project.get("lead"), "displayName")
        lines.append(
            f"- **{project.get('name')}** (`{project.get('key')}`)"
            + (f", lead: {lead}" if lead else "")
        )
    return "\n".join(lines)


def format_project_details(project: Dict[str, Any]) -> str:
    lines = [format_heading(f"Jira Project: {project.get('name')}"), ""]
    lines.append(
        format_bullet_list(
            {
                "Key": project.get("key"),
                "ID": project.get("id"),
                "Type": project.get("projectTypeKey"),
                "Lead": _name(project.get("lead"), "displayName"),
                "Category": _name(project.get("projectCategory")),
            }
        )
    )

    description = adf_to_text(project.get("description")).strip()
    if description:
        lines.extend(["", format_heading("Description", 2), description])

    issue_types = [t.get("name") for t in project.get("issueTypes") or []]
    if issue_types:
        lines.extend(["", format_heading("Issue Types", 2)] + [f"- {name}" for name in issue_types])

    url = project.get("self")
    if url:
        lines.extend(["", format_url(url, "Open in Jira")])
    return "\n".join(lines)
