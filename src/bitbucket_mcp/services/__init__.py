"""REST client layer for Bitbucket Cloud and Jira Cloud."""

from .bitbucket import BitbucketService
from .exceptions import (
    ApiError,
    AtlassianError,
    AtlassianValidationError,
    AuthInvalidError,
    AuthMissingError,
    NetworkError,
    RateLimitError,
)
from .jira import JiraService
from .transport import AtlassianCredentials, AtlassianTransport, get_atlassian_credentials

__all__ = [
    "ApiError",
    "AtlassianCredentials",
    "AtlassianError",
    "AtlassianTransport",
    "AtlassianValidationError",
    "AuthInvalidError",
    "AuthMissingError",
    "BitbucketService",
    "JiraService",
    "NetworkError",
    "RateLimitError",
    "get_atlassian_credentials",
]
