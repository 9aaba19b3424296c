"""Classification of upstream errors into a closed set of error kinds.

Bitbucket and Jira are inconsistent about where the diagnostic signal lives:
sometimes in the HTTP status, sometimes only in free text inside one of several
JSON error shapes. ``classify_error`` checks both. Textual evidence is allowed
to override a generic or misleading status code, which is why network failures
are detected from the message before any status-based rule runs.

Rules, first match wins:

1. A network-failure substring in the error message (or an
   ``httpx.TransportError`` in the cause chain) gives ``NETWORK_ERROR`` with
   status 500, whatever status was passed in.
2. The error body is decoded into an ``ErrorPayload`` by trying the known
   shapes in priority order: classic Bitbucket, alternate Bitbucket, the
   ``errors`` array form, then Jira's ``errorMessages`` form. If nothing
   matches only the status code is used.
3. The resolved status and the extracted text are matched against the kinds
   in fixed precedence: not found, access denied, validation, rate limit.
   Anything else is ``UNKNOWN``.

Classification is pure: it never raises and never mutates its input.
"""

import enum
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CODE = 500

# Guards against cyclic original_error chains
MAX_UNWRAP_DEPTH = 10

NETWORK_ERROR_MARKERS: Tuple[str, ...] = (
    "econnrefused",
    "enotfound",
    "fetch failed",
    "failed to fetch",
    "network error",
    "network request failed",
    "connection refused",
    "name or service not known",
)


class ErrorKind(str, enum.Enum):
    """Closed set of normalized error kinds."""

    NOT_FOUND = "NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


class PayloadShape(str, enum.Enum):
    """Recognized upstream error body shapes, in decode priority order."""

    CLASSIC = "classic"        # {"error": {"message", "detail"}}
    ALTERNATE = "alternate"    # {"type": "error", "status", "message"}
    ERRORS_ARRAY = "errors"    # {"errors": [{"status", "code", "title", "message"}]}
    JIRA = "jira"              # {"errorMessages": [...], "errors": {...}}


@dataclass(frozen=True)
class ErrorPayload:
    """An upstream error body normalized to its text and optional status."""

    shape: PayloadShape
    text: str
    status: Optional[int] = None


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    status_code: int


# (kind, statuses, lowercase substrings) in precedence order
_CLASSIFICATION_RULES: Tuple[Tuple[ErrorKind, Tuple[int, ...], Tuple[str, ...]], ...] = (
    (ErrorKind.NOT_FOUND, (404,), ("not found",)),
    (ErrorKind.ACCESS_DENIED, (401, 403), ("access denied", "forbidden", "permission")),
    (ErrorKind.VALIDATION_ERROR, (400,), ("invalid", "validation")),
    (ErrorKind.RATE_LIMIT_ERROR, (429,), ("rate limit", "too many requests")),
)


def classify_error(error: Any, status_code: Optional[int] = None) -> Classification:
    """Map an arbitrary error plus optional HTTP status to an ``ErrorKind``.

    Args:
        error: Anything: an exception, a decoded JSON error body, a string.
        status_code: HTTP status if the caller knows it. When omitted, the
            error's own ``status_code`` attribute or HTTP response is used.

    Returns:
        The kind and the resolved status code (500 when none is known).
    """
    if _is_network_failure(error):
        return Classification(ErrorKind.NETWORK_ERROR, DEFAULT_STATUS_CODE)

    status = status_code if _is_status(status_code) else _status_of(error)
    payload = decode_error_payload(error)

    text = ""
    if payload is not None:
        text = payload.text.lower()
        if payload.status is not None:
            status = payload.status

    for kind, statuses, markers in _CLASSIFICATION_RULES:
        if status in statuses or (text and any(marker in text for marker in markers)):
            return Classification(kind, status if status is not None else DEFAULT_STATUS_CODE)

    return Classification(ErrorKind.UNKNOWN, status if status is not None else DEFAULT_STATUS_CODE)


def decode_error_payload(error: Any) -> Optional[ErrorPayload]:
    """Find the upstream error body behind ``error`` and decode its shape.

    Returns None when the body is missing or matches none of the known shapes.
    """
    body = _locate_body(error)
    if not isinstance(body, Mapping):
        return None

    # a. classic Bitbucket
    inner = body.get("error")
    if isinstance(inner, Mapping):
        return ErrorPayload(
            PayloadShape.CLASSIC,
            _join(inner.get("message"), inner.get("detail")),
            None,
        )

    # b. alternate Bitbucket
    if body.get("type") == "error":
        return ErrorPayload(
            PayloadShape.ALTERNATE,
            _join(body.get("message")),
            _coerce_status(body.get("status")),
        )

    # c. errors array; only the first element counts
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        if isinstance(first, Mapping):
            return ErrorPayload(
                PayloadShape.ERRORS_ARRAY,
                _join(first.get("message"), first.get("title"), first.get("code")),
                _coerce_status(first.get("status")),
            )

    # d. Jira
    messages = body.get("errorMessages")
    if isinstance(messages, list) or isinstance(errors, Mapping):
        parts = list(messages or [])
        if isinstance(errors, Mapping):
            parts.extend(f"{field}: {msg}" for field, msg in errors.items())
        return ErrorPayload(
            PayloadShape.JIRA,
            _join(*parts),
            _coerce_status(body.get("status")),
        )

    return None


def error_message(error: Any) -> str:
    """Human-readable message of an error of unknown type."""
    if error is None:
        return ""
    if isinstance(error, Mapping):
        message = error.get("message")
        return str(message) if message is not None else ""
    try:
        return str(error)
    except Exception:  # a broken __str__ must not break classification
        return repr(type(error))


def _is_network_failure(error: Any) -> bool:
    current = error
    for _ in range(MAX_UNWRAP_DEPTH):
        if current is None:
            break
        if isinstance(current, httpx.TransportError):
            return True
        message = error_message(current).lower()
        if any(marker in message for marker in NETWORK_ERROR_MARKERS):
            return True
        current = _next_in_chain(current)
    return False


def _locate_body(error: Any) -> Any:
    """Follow wrapped errors down to the upstream body."""
    current = error
    for _ in range(MAX_UNWRAP_DEPTH):
        if isinstance(current, Mapping):
            return current
        if isinstance(current, str):
            return _parse_json_text(current)
        if isinstance(current, httpx.HTTPStatusError):
            return _parse_json_text(_response_text(current.response))
        nested = getattr(current, "original_error", None)
        if nested is None:
            return None
        current = nested
    return None


def _next_in_chain(error: Any) -> Any:
    nested = getattr(error, "original_error", None)
    if nested is not None:
        return nested
    if isinstance(error, BaseException):
        return error.__cause__
    return None


def _status_of(error: Any) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if _is_status(status):
        return status
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _parse_json_text(text: str) -> Any:
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        return json.loads(stripped)
    except ValueError:
        logger.debug("Error text looks like JSON but does not parse")
        return None


def _response_text(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        return ""


def _coerce_status(value: Any) -> Optional[int]:
    if _is_status(value):
        return value
    if isinstance(value, str) and value.isdigit() and int(value) > 0:
        return int(value)
    return None


def _is_status(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _join(*parts: Any) -> str:
    return " ".join(str(part) for part in parts if part)
