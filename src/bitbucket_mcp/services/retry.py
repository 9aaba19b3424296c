"""Retry with exponential backoff for Atlassian HTTP requests.

Transparent to callers: wrap any async callable and it retries on transient
failures. Final failures are converted into the ``services.exceptions``
hierarchy with the decoded response body attached as ``original_error``.
"""

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, Set

import httpx

from .exceptions import (
    ApiError,
    AuthInvalidError,
    NetworkError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

# Status codes that trigger a retry
RETRYABLE_STATUS_CODES: Set[int] = {429, 500, 502, 503, 504}

# Status codes that should NOT be retried (auth failures)
AUTH_FAILURE_CODES: Set[int] = {401, 403}

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


async def retry_with_backoff(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    **kwargs: Any,
) -> Any:
    """Execute an async function with retry and exponential backoff.

    Retries on:
      - HTTP 429, 500, 502, 503, 504
      - httpx.ConnectError, httpx.TimeoutException

    Never retries:
      - HTTP 401, 403 (raises AuthInvalidError immediately)

    On 429, uses Retry-After header if present, else exponential backoff.
    Uses full jitter: delay = random(0, min(max_delay, base_delay * 2^attempt)).

    Raises:
        AuthInvalidError: On 401/403 (never retried).
        RateLimitError: On 429 after exhausting retries.
        ApiError: On other HTTP errors after exhausting retries.
        NetworkError: On connection failure or timeout after exhausting retries.
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)

        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            body = decode_error_body(exc.response)

            # Never retry auth failures
            if status in AUTH_FAILURE_CODES:
                raise AuthInvalidError(
                    f"Authentication failed: HTTP {status}",
                    status_code=status,
                    original_error=body,
                ) from exc

            if status in RETRYABLE_STATUS_CODES and attempt < max_retries:
                delay = _compute_delay(
                    attempt, base_delay, max_delay, exc.response
                )
                logger.warning(
                    "Retryable HTTP %d (attempt %d/%d), waiting %.1fs",
                    status,
                    attempt + 1,
                    max_retries,
                    delay,
                )
                last_exception = exc
                await asyncio.sleep(delay)
                continue

            # Exhausted retries or non-retryable status
            if status == 429:
                raise RateLimitError(
                    "Rate limited: HTTP 429",
                    retry_after=_parse_retry_after(exc.response),
                    original_error=body,
                ) from exc
            if status == 404:
                raise ApiError(
                    "Resource not found: HTTP 404",
                    status_code=404,
                    original_error=body,
                ) from exc
            raise ApiError(
                f"API error: HTTP {status}{_summarize(body)}",
                status_code=status,
                original_error=body,
            ) from exc

        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            if attempt < max_retries:
                delay = _compute_delay(attempt, base_delay, max_delay)
                logger.warning(
                    "Connection error (attempt %d/%d), waiting %.1fs: %s",
                    attempt + 1,
                    max_retries,
                    delay,
                    type(exc).__name__,
                )
                last_exception = exc
                await asyncio.sleep(delay)
                continue

            raise NetworkError(
                f"Network error: request failed after {max_retries} retries: "
                f"{type(exc).__name__}: {exc}",
                original_error=exc,
            ) from exc

    # Should not reach here, but just in case
    if last_exception:
        raise last_exception  # pragma: no cover


def decode_error_body(response: httpx.Response) -> Any:
    """Return the error body as decoded JSON, or the raw text if it isn't JSON."""
    text = response.text
    if text and text.lstrip()[:1] in ("{", "["):
        try:
            return json.loads(text)
        except ValueError:
            logger.debug("Error body is not valid JSON, keeping raw text")
    return text


def _summarize(body: Any) -> str:
    """Short human-readable hint from an error body for the exception message."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f" - {error['message']}"
        if body.get("message"):
            return f" - {body['message']}"
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            title = first.get("title") or first.get("message")
            if title:
                return f" - {title}"
        messages = body.get("errorMessages")
        if isinstance(messages, list) and messages:
            return f" - {messages[0]}"
    elif isinstance(body, str) and body.strip():
        return f" - {body.strip()[:200]}"
    return ""


def _compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    response: httpx.Response | None = None,
) -> float:
    """Compute retry delay with full jitter.

    On 429, prefers the Retry-After header value if present.
    """
    if response is not None:
        retry_after = _parse_retry_after(response)
        if retry_after is not None:
            return min(retry_after, max_delay)

    # Full jitter: uniform random in [0, min(max_delay, base * 2^attempt)]
    exp_delay = base_delay * (2**attempt)
    return random.uniform(0, min(exp_delay, max_delay))


def _parse_retry_after(response: httpx.Response) -> float | None:
    """Parse Retry-After header (seconds only, not HTTP-date)."""
    value = response.headers.get("Retry-After") or response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None
