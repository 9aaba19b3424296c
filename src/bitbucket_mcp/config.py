"""Configuration management for Bitbucket MCP."""

import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = "Bitbucket MCP"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # Server
    transport_mode: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 3000

    # Standard Atlassian credentials (preferred)
    atlassian_site_name: Optional[str] = None
    atlassian_user_email: Optional[str] = None
    atlassian_api_token: Optional[str] = None

    # Bitbucket-only credentials (app password)
    atlassian_bitbucket_username: Optional[str] = None
    atlassian_bitbucket_app_password: Optional[str] = None

    bitbucket_default_workspace: Optional[str] = Field(
        default=None,
        description="Workspace used when a tool call does not name one",
    )

    # HTTP client
    request_timeout: float = 30.0
    max_retries: int = Field(default=3, ge=0, le=10)

    @field_validator("atlassian_site_name", mode="before")
    @classmethod
    def normalize_site_name(cls, v):
        # Accept "acme", "acme.atlassian.net" or "https://acme.atlassian.net"
        if not v:
            return None
        site = str(v).strip()
        for prefix in ("https://", "http://"):
            if site.startswith(prefix):
                site = site[len(prefix):]
        return site.rstrip("/").removesuffix(".atlassian.net") or None

    @property
    def has_jira_credentials(self) -> bool:
        """Jira endpoints need the standard Atlassian credentials."""
        return bool(
            self.atlassian_site_name
            and self.atlassian_user_email
            and self.atlassian_api_token
        )

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
