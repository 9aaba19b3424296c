"""MCP toolsets. Importing this package registers them."""

from .base import BaseToolset, ToolDefinition
from .bitbucket import BitbucketToolset
from .jira import JiraToolset
from .registry import ToolsetRegistry, register_toolset, toolset_registry

__all__ = [
    "BaseToolset",
    "BitbucketToolset",
    "JiraToolset",
    "ToolDefinition",
    "ToolsetRegistry",
    "register_toolset",
    "toolset_registry",
]
