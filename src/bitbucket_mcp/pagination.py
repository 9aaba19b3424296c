"""Normalization of upstream pagination conventions.

Bitbucket list endpoints are page-numbered (``page``/``pagelen``/``size``),
search-like endpoints hand out an opaque ``next`` link, and Jira uses
``startAt``/``maxResults``/``total`` offsets. ``extract_pagination`` turns any
of them into a ``PaginationState``. The style is supplied by the caller, it is
never inferred from the payload.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25

# Keys that hold the item list, in lookup order
ITEM_KEYS = ("values", "results", "issues")

# Query parameters that carry the continuation token in a ``next`` URL
CURSOR_PARAMS = ("cursor", "page")


class PaginationStyle(str, enum.Enum):
    CURSOR = "cursor"  # opaque continuation token (search-like endpoints)
    PAGE = "page"      # 1-based page number (Bitbucket Cloud lists)
    OFFSET = "offset"  # startAt/maxResults (Jira)


@dataclass(frozen=True)
class PaginationState:
    """Continuation status of one list call.

    ``next_cursor`` is only ever set when ``has_more`` is true.
    """

    has_more: bool
    next_cursor: Optional[str] = None
    count: Optional[int] = None
    total: Optional[int] = None

    def __post_init__(self):
        if self.next_cursor is not None and not self.has_more:
            raise ValueError("next_cursor requires has_more")


def extract_pagination(
    raw: Mapping[str, Any],
    style: PaginationStyle,
    items: Optional[Sequence[Any]] = None,
) -> PaginationState:
    """Compute the pagination state of a raw list response.

    Args:
        raw: Decoded JSON of the list response.
        style: Pagination convention of the endpoint.
        items: The returned items, when they are not under a standard key.

    Notes:
        For ``PAGE`` responses without a total count and without a ``next``
        link, a full page is taken to mean more pages follow. This is a
        best-effort inference: a final page that happens to be exactly full
        reports ``has_more`` even though nothing follows.
    """
    if items is None:
        items = _items_of(raw)
    count = len(items) if items is not None else None

    if style is PaginationStyle.PAGE:
        return _extract_page(raw, count)
    if style is PaginationStyle.CURSOR:
        return _extract_cursor(raw, count)
    if style is PaginationStyle.OFFSET:
        return _extract_offset(raw, count)

    logger.warning("Unknown pagination style: %s", style)
    return PaginationState(has_more=False, count=count)


def _extract_page(raw: Mapping[str, Any], count: Optional[int]) -> PaginationState:
    page = _as_int(raw.get("page")) or 1
    pagelen = _as_int(raw.get("pagelen"))
    total = _as_int(raw.get("size"))
    if total is None:
        total = _as_int(raw.get("total"))

    if total is not None and pagelen:
        has_more = page * pagelen < total
    elif raw.get("next"):
        has_more = True
    elif pagelen and count:
        has_more = count == pagelen
    else:
        has_more = False

    return PaginationState(
        has_more=has_more,
        next_cursor=str(page + 1) if has_more else None,
        count=count,
        total=total,
    )


def _extract_cursor(raw: Mapping[str, Any], count: Optional[int]) -> PaginationState:
    next_value = raw.get("next")
    links = raw.get("_links")
    if not next_value and isinstance(links, Mapping):
        next_value = links.get("next")

    if not next_value:
        return PaginationState(has_more=False, count=count)

    return PaginationState(
        has_more=True,
        next_cursor=cursor_from_next(str(next_value)),
        count=count,
        total=_as_int(raw.get("size")),
    )


def _extract_offset(raw: Mapping[str, Any], count: Optional[int]) -> PaginationState:
    start_at = _as_int(raw.get("startAt"))
    max_results = _as_int(raw.get("maxResults"))
    total = _as_int(raw.get("total"))

    if start_at is not None and max_results and total is not None:
        has_more = start_at + max_results < total
        return PaginationState(
            has_more=has_more,
            next_cursor=str(start_at + max_results) if has_more else None,
            count=count,
            total=total,
        )

    # /project/search style: isLast + nextPage link
    if raw.get("isLast") is False or raw.get("nextPage"):
        next_start = (start_at or 0) + (max_results or count or 0)
        return PaginationState(
            has_more=True,
            next_cursor=str(next_start) if next_start else None,
            count=count,
            total=total,
        )

    return PaginationState(has_more=False, count=count, total=total)


def cursor_from_next(next_value: str) -> Optional[str]:
    """Continuation token from a ``next`` value.

    A full URL yields only its cursor query parameter (``cursor``, or failing
    that ``page``); anything else is already a token.
    """
    parsed = urlparse(next_value)
    if not (parsed.scheme and parsed.netloc):
        return next_value

    query = parse_qs(parsed.query)
    for param in CURSOR_PARAMS:
        values = query.get(param)
        if values and values[0]:
            return values[0]

    logger.warning("No cursor parameter in next URL: %s", next_value)
    return None


def _items_of(raw: Mapping[str, Any]) -> Optional[List[Any]]:
    for key in ITEM_KEYS:
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None
