"""Workspace listing and details."""

import logging
from typing import Any, Dict, List, Optional

from ..formatting import format_bullet_list, format_date, format_heading, format_separator, format_url
from ..pagination import PaginationStyle, extract_pagination
from ..services.bitbucket import BitbucketService
from ..workspace import WorkspaceResolver
from .base import BaseController, ControllerResponse, apply_defaults, page_from_cursor

logger = logging.getLogger(__name__)

PROJECTS_PREVIEW_PAGELEN = 10


class WorkspacesController(BaseController):
    source_name = "controllers/workspaces"

    def __init__(self, service: BitbucketService, resolver: WorkspaceResolver):
        super().__init__(resolver)
        self.service = service

    async def list_workspaces(self, limit: Optional[int] = None, cursor: Optional[str] = None) -> ControllerResponse:
        options = apply_defaults({"limit": limit, "cursor": cursor}, {"limit": self.default_limit})
        logger.debug("Listing workspaces: %s", options)
        try:
            data = await self.service.list_workspaces(
                pagelen=options["limit"], page=page_from_cursor(options["cursor"])
            )
        except Exception as e:
            self._fail(e, self._context("workspaces", "list", "list_workspaces", **options))

        pagination = extract_pagination(data, PaginationStyle.PAGE)
        return self._respond(format_workspaces_list(data.get("values") or []), pagination)

    async def get_workspace(self, workspace_slug: str) -> ControllerResponse:
        try:
            workspace = await self.service.get_workspace(workspace_slug)
            projects = await self.service.list_workspace_projects(
                workspace_slug, pagelen=PROJECTS_PREVIEW_PAGELEN
            )
        except Exception as e:
            self._fail(e, self._context("workspace", "retrieve", "get_workspace", workspace_slug))

        return self._respond(format_workspace_details(workspace, projects.get("values") or []))


def format_workspaces_list(memberships: List[Dict[str, Any]]) -> str:
    if not memberships:
        return "No Bitbucket workspaces found."

    lines = [format_heading("Bitbucket Workspaces"), ""]
    for index, membership in enumerate(memberships):
        workspace = membership.get("workspace") or {}
        user = membership.get("user") or {}
        lines.append(format_heading(f"{index + 1}. {workspace.get('name', workspace.get('slug'))}", 2))
        lines.append(
            format_bullet_list(
                {
                    "Slug": workspace.get("slug"),
                    "UUID": workspace.get("uuid"),
                    "Permission": membership.get("permission"),
                    "Last Accessed": membership.get("last_accessed"),
                    "Added On": membership.get("added_on"),
                    "User": user.get("display_name"),
                    "Web URL": ((workspace.get("links") or {}).get("html") or {}).get("href"),
                }
            )
        )
        if index < len(memberships) - 1:
            lines.extend(["", format_separator(), ""])
    return "\n".join(lines)


def format_workspace_details(workspace: Dict[str, Any], projects: List[Dict[str, Any]]) -> str:
    slug = workspace.get("slug")
    lines = [format_heading(f"Workspace: {workspace.get('name', slug)}"), ""]
    privacy = "private" if workspace.get("is_private") else "public"
    lines.extend([f"> A {privacy} Bitbucket workspace with slug `{slug}`.", ""])

    lines.append(format_heading("Basic Information", 2))
    lines.append(
        format_bullet_list(
            {
                "UUID": workspace.get("uuid"),
                "Slug": slug,
                "Privacy": "Private" if workspace.get("is_private") else "Public",
                "Created On": format_date(workspace.get("created_on")) if workspace.get("created_on") else None,
            }
        )
    )

    html = ((workspace.get("links") or {}).get("html") or {}).get("href")
    if html:
        lines.extend(["", format_heading("Links", 2), f"- {format_url(html, 'Open in Bitbucket')}"])

    lines.extend(["", format_heading("Projects", 2)])
    if not projects:
        lines.append("No projects found in this workspace.")
    for project in projects:
        description = f": {project['description']}" if project.get("description") else ""
        lines.append(f"- **{project.get('name')}** (`{project.get('key')}`){description}")

    return "\n".join(lines)
