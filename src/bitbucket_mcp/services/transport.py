"""Authenticated transport for the Bitbucket Cloud and Jira Cloud REST APIs."""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

import httpx

from ..config import Settings
from .exceptions import AuthMissingError
from .http_client import get_http_client
from .retry import retry_with_backoff

logger = logging.getLogger(__name__)

BITBUCKET_BASE_URL = "https://api.bitbucket.org"

ApiName = Literal["bitbucket", "jira"]


@dataclass(frozen=True)
class AtlassianCredentials:
    """Credentials for either the standard Atlassian API or a Bitbucket app password."""

    site_name: Optional[str] = None
    user_email: Optional[str] = None
    api_token: Optional[str] = None
    bitbucket_username: Optional[str] = None
    bitbucket_app_password: Optional[str] = None

    @property
    def use_bitbucket_auth(self) -> bool:
        return bool(self.bitbucket_username and self.bitbucket_app_password) and not self.has_standard

    @property
    def has_standard(self) -> bool:
        return bool(self.site_name and self.user_email and self.api_token)

    def basic_auth_header(self) -> str:
        if self.has_standard:
            raw = f"{self.user_email}:{self.api_token}"
        else:
            raw = f"{self.bitbucket_username}:{self.bitbucket_app_password}"
        return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")


def get_atlassian_credentials(settings: Settings) -> Optional[AtlassianCredentials]:
    """Read credentials from settings.

    Standard Atlassian credentials (site, e-mail, API token) are preferred;
    the Bitbucket username/app password pair is the fallback.
    """
    if (
        settings.atlassian_site_name
        and settings.atlassian_user_email
        and settings.atlassian_api_token
    ):
        logger.debug("Using standard Atlassian credentials")
        return AtlassianCredentials(
            site_name=settings.atlassian_site_name,
            user_email=settings.atlassian_user_email,
            api_token=settings.atlassian_api_token,
        )

    if settings.atlassian_bitbucket_username and settings.atlassian_bitbucket_app_password:
        logger.debug("Using Bitbucket-specific credentials")
        return AtlassianCredentials(
            bitbucket_username=settings.atlassian_bitbucket_username,
            bitbucket_app_password=settings.atlassian_bitbucket_app_password,
        )

    logger.warning(
        "Missing Atlassian credentials. Set ATLASSIAN_SITE_NAME, ATLASSIAN_USER_EMAIL "
        "and ATLASSIAN_API_TOKEN, or ATLASSIAN_BITBUCKET_USERNAME and "
        "ATLASSIAN_BITBUCKET_APP_PASSWORD."
    )
    return None


class AtlassianTransport:
    """Performs authenticated requests against Bitbucket or Jira.

    Transient failures are retried by ``retry_with_backoff``; anything that
    still fails surfaces as a ``services.exceptions`` error.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        credentials: Optional[AtlassianCredentials] = None,
    ):
        self.settings = settings
        self._client = client
        self._credentials = credentials

    @property
    def credentials(self) -> AtlassianCredentials:
        if self._credentials is None:
            self._credentials = get_atlassian_credentials(self.settings)
        if self._credentials is None:
            raise AuthMissingError("Atlassian credentials are required")
        return self._credentials

    def base_url(self, api: ApiName) -> str:
        if api == "bitbucket":
            return BITBUCKET_BASE_URL
        credentials = self.credentials
        if not credentials.has_standard:
            raise AuthMissingError(
                "Jira requires ATLASSIAN_SITE_NAME, ATLASSIAN_USER_EMAIL and ATLASSIAN_API_TOKEN"
            )
        return f"https://{credentials.site_name}.atlassian.net"

    async def request(
        self,
        api: ApiName,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        expect_text: bool = False,
    ) -> Any:
        """Call ``path`` on the given API and return decoded JSON (or text).

        Responses with an empty body (e.g. 204) return an empty dict.
        """
        normalized_path = path if path.startswith("/") else f"/{path}"
        url = f"{self.base_url(api)}{normalized_path}"

        headers = {
            "Authorization": self.credentials.basic_auth_header(),
            "Accept": "text/plain" if expect_text else "application/json",
        }
        if json is not None:
            headers["Content-Type"] = "application/json"

        query = {k: v for k, v in (params or {}).items() if v is not None}

        logger.debug("Calling %s API: %s %s params=%s", api, method, url, query)

        async def _do_request():
            client = self._client or get_http_client(self.settings.request_timeout)
            response = await client.request(
                method, url, params=query or None, json=json, headers=headers
            )
            response.raise_for_status()
            return response

        response = await retry_with_backoff(
            _do_request, max_retries=self.settings.max_retries
        )
        logger.debug("Response %d from %s", response.status_code, url)

        content_type = response.headers.get("content-type", "")
        if expect_text or "application/json" not in content_type:
            return response.text
        if not response.content:
            return {}
        return response.json()
