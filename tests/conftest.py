"""Test configuration and fixtures."""

import os

import pytest

# Set test environment variables BEFORE importing the app
os.environ["ENVIRONMENT"] = "test"

from bitbucket_mcp.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; start each test from a clean slate."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings with standard Atlassian credentials and no retries."""
    return Settings(
        _env_file=None,
        atlassian_site_name="acme",
        atlassian_user_email="dev@acme.test",
        atlassian_api_token="token-123",
        bitbucket_default_workspace="acme-ws",
        max_retries=0,
    )


@pytest.fixture
def bitbucket_only_settings():
    """Settings with only a Bitbucket app password (Jira unavailable)."""
    return Settings(
        _env_file=None,
        atlassian_bitbucket_username="dev",
        atlassian_bitbucket_app_password="app-pass",
        max_retries=0,
    )
