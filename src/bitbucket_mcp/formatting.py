"""Markdown helpers shared by all controllers."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from .pagination import PaginationState

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Not available"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_DIFF_FILE = re.compile(r"^diff --git a/(.*) b/(.*)$")


def format_heading(text: str, level: int = 1) -> str:
    level = min(max(level, 1), 6)
    return f"{'#' * level} {text}"


def format_separator() -> str:
    return "---"


def format_date(value: Any) -> str:
    """Format an ISO timestamp or datetime as ``YYYY-MM-DD HH:MM:SS UTC``."""
    if not value:
        return NOT_AVAILABLE

    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return "Invalid date"

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_url(url: Optional[str], title: Optional[str] = None) -> str:
    if not url:
        return NOT_AVAILABLE
    return f"[{title or url}]({url})"


def format_value(value: Any) -> str:
    if value is None:
        return NOT_AVAILABLE
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, datetime):
        return format_date(value)
    if isinstance(value, Mapping) and isinstance(value.get("url"), str):
        return format_url(value["url"], value.get("title"))
    if isinstance(value, str):
        if value.startswith(("http://", "https://")):
            return format_url(value)
        if _ISO_DATE.match(value):
            return format_date(value)
    return str(value)


def format_bullet_list(
    items: Mapping[str, Any],
    key_formatter: Optional[Callable[[str], str]] = None,
) -> str:
    """Render ``key: value`` pairs as a Markdown bullet list, skipping ``None`` values."""
    lines = []
    for key, value in items.items():
        if value is None:
            continue
        label = key_formatter(key) if key_formatter else key
        lines.append(f"- **{label}**: {format_value(value)}")
    return "\n".join(lines)


def format_numbered_list(items: Sequence[Any], formatter: Callable[[Any, int], str]) -> str:
    if not items:
        return "No items."
    return "\n\n".join(formatter(item, index) for index, item in enumerate(items))


def format_code_block(content: str, language: str = "") -> str:
    return f"```{language}\n{content.rstrip()}\n```"


def truncate(text: Optional[str], limit: int = 200) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)].rstrip() + "..."


def format_pagination(state: PaginationState) -> str:
    """Footer line describing the current page and how to fetch the next one."""
    count = state.count or 0
    parts = []

    if state.total:
        parts.append(f"*Showing {count} of {state.total} total items.*")
    elif count > 0:
        parts.append(f"*Showing {count} item{'s' if count != 1 else ''}.*")
    elif state.total == 0:
        parts.append("*Showing 0 of 0 total items.*")

    if state.has_more:
        parts.append("More results are available.")

    result = " ".join(parts)
    if state.next_cursor:
        result += f'\nTo see more results, use --cursor "{state.next_cursor}"'
    result = result.strip()
    logger.debug("Formatted pagination: %s", result)
    return result


def format_diff(raw_diff: str, max_files: int = 5, max_lines_per_file: int = 100) -> str:
    """Render a unified diff as one ```diff block per file.

    Output is capped at ``max_files`` files and ``max_lines_per_file`` lines
    per file, with a note when anything was cut.
    """
    if not raw_diff or not raw_diff.strip():
        return "*No changes found.*"

    lines = []
    file_count = 0
    in_file = False
    line_count = 0
    truncated = False

    for line in raw_diff.splitlines():
        match = _DIFF_FILE.match(line)
        if match:
            if in_file:
                lines.extend(["```", ""])
            file_count += 1
            if file_count > max_files:
                truncated = True
                in_file = False
                break
            lines.extend([format_heading(match.group(1), 3), "", "```diff"])
            in_file = True
            line_count = 0
            continue

        if not in_file:
            continue
        line_count += 1
        if line_count == max_lines_per_file + 1:
            lines.append("# ... more lines omitted")
            truncated = True
        if line_count <= max_lines_per_file:
            lines.append(line)

    if in_file:
        lines.append("```")
    if truncated:
        lines.extend(["", "*Output truncated. Some files or lines are not shown.*"])

    return "\n".join(lines)
