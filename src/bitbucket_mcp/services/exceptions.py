"""Exception types raised by the Atlassian REST client layer.

Every exception keeps the raw upstream error body (decoded JSON when possible,
otherwise the response text) in ``original_error`` so the error classifier can
inspect it later.
"""

from typing import Any, Optional


class AtlassianError(Exception):
    """Base exception for all Atlassian client errors."""

    status_code: Optional[int] = None

    def __init__(self, message: str, original_error: Any = None):
        self.original_error = original_error
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class AuthMissingError(AtlassianError):
    """No usable credentials are configured."""

    pass


class AuthInvalidError(AtlassianError):
    """Authentication or authorization failure (401/403)."""

    def __init__(
        self,
        message: str,
        status_code: int = 401,
        original_error: Any = None,
    ):
        self.status_code = status_code
        super().__init__(message, original_error)


class ApiError(AtlassianError):
    """API returned an error response (4xx/5xx)."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        original_error: Any = None,
    ):
        self.status_code = status_code
        super().__init__(message, original_error)


class RateLimitError(ApiError):
    """Rate limit exceeded (429). Includes retry_after hint if available."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        original_error: Any = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, status_code=429, original_error=original_error)


class NetworkError(AtlassianError):
    """Connection failure or timeout after exhausting retries."""

    pass


class AtlassianValidationError(AtlassianError):
    """Invalid input provided to a tool or controller."""

    status_code = 400
