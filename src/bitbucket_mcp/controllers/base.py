"""Shared controller plumbing."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, NoReturn, Optional

from ..errors import ErrorContext, handle_controller_error
from ..formatting import format_pagination, format_separator
from ..pagination import DEFAULT_PAGE_SIZE, PaginationState
from ..services.exceptions import AtlassianValidationError
from ..workspace import WorkspaceResolver

logger = logging.getLogger(__name__)

_BBQL_OPERATOR = re.compile(r"[~=!<>]")


@dataclass
class ControllerResponse:
    """Markdown produced by a controller call."""

    content: str
    pagination: Optional[PaginationState] = None


def apply_defaults(options: Mapping[str, Any], defaults: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``defaults`` under ``options``; ``None`` in ``options`` counts as unset."""
    merged = dict(defaults)
    merged.update({key: value for key, value in options.items() if value is not None})
    for key in options:
        merged.setdefault(key, None)
    return merged


def page_from_cursor(cursor: Optional[str]) -> Optional[int]:
    """Page number encoded in a PAGE-style cursor; junk cursors start from page 1."""
    if not cursor:
        return None
    try:
        return max(int(cursor), 1)
    except ValueError:
        logger.warning("Ignoring non-numeric page cursor: %s", cursor)
        return None


def format_bitbucket_query(query: Optional[str], *fields: str) -> Optional[str]:
    """Turn free text into a BBQL filter on ``fields`` (default ``name``).

    Text that already contains a BBQL operator is passed through unchanged.
    """
    if not query or not query.strip():
        return query
    if _BBQL_OPERATOR.search(query):
        return query

    term = query if query.startswith('"') and query.endswith('"') else f'"{query}"'
    clauses = [f"{field} ~ {term}" for field in fields or ("name",)]
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " OR ".join(clauses) + ")"


class BaseController:
    """Base class for controllers.

    Subclasses call ``_fail`` from their ``except`` blocks so every upstream
    failure leaves the controller as an ``ErrorEnvelope``.
    """

    # Used in the ``source`` field of error contexts
    source_name = "controller"

    default_limit = DEFAULT_PAGE_SIZE

    def __init__(self, resolver: Optional[WorkspaceResolver] = None):
        self.resolver = resolver

    async def _workspace(self, workspace_slug: Optional[str]) -> str:
        if self.resolver is None:
            # Only Bitbucket controllers resolve workspaces
            raise RuntimeError(f"{type(self).__name__} has no workspace resolver")
        return await self.resolver.resolve(workspace_slug)

    def _context(
        self,
        entity_type: str,
        operation: str,
        method: str,
        entity_id: Any = None,
        **additional_info: Any,
    ) -> ErrorContext:
        return ErrorContext(
            entity_type=entity_type,
            operation=operation,
            source=f"{self.source_name}@{method}",
            entity_id=entity_id,
            additional_info={k: v for k, v in additional_info.items() if v is not None} or None,
        )

    def _fail(self, error: Exception, context: ErrorContext) -> NoReturn:
        handle_controller_error(error, context)

    def _require(self, value: Any, name: str):
        """Reject a missing required argument with a VALIDATION_ERROR envelope."""
        if value is None or (isinstance(value, str) and not value.strip()):
            self._invalid(f"Invalid request: {name} is required")

    def _invalid(self, message: str) -> NoReturn:
        self._fail(AtlassianValidationError(message), self._context("request", "validate", "validate"))

    def _respond(self, content: str, pagination: Optional[PaginationState] = None) -> ControllerResponse:
        """Append the pagination footer to ``content`` when there is one to show."""
        if pagination is not None:
            footer = format_pagination(pagination)
            if footer:
                content = f"{content}\n\n{format_separator()}\n{footer}"
        return ControllerResponse(content=content, pagination=pagination)
