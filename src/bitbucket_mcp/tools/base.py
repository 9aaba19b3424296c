"""Base toolset interface."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from mcp import types

from ..controllers import ControllerResponse
from ..errors import ErrorContext, handle_controller_error
from ..observability.logging import clear_log_context, set_log_context
from .args import ToolArgs, parse_arguments, tool_input_schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDefinition:
    """One tool: its unprefixed name, argument model and controller call."""

    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Callable[..., Awaitable[ControllerResponse]]


class BaseToolset(ABC):
    """Base class for all toolsets.

    A toolset publishes its tools with a ``<name>_`` prefix; the MCP server
    routes calls back by that prefix and passes the unprefixed tool name to
    ``execute_tool``.
    """

    def __init__(self, context):
        self.context = context
        self._definitions: Optional[Dict[str, ToolDefinition]] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Toolset name, also the tool name prefix."""
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def prefix(self) -> str:
        return f"{self.name}_"

    @classmethod
    def is_enabled(cls, settings) -> bool:
        """Whether the toolset should be offered with these settings."""
        return True

    @abstractmethod
    def tool_definitions(self) -> List[ToolDefinition]:
        pass

    @property
    def definitions(self) -> Dict[str, ToolDefinition]:
        if self._definitions is None:
            self._definitions = {d.name: d for d in self.tool_definitions()}
        return self._definitions

    def get_tools(self) -> List[types.Tool]:
        """Available tools, prefixed with the toolset name."""
        return [
            types.Tool(
                name=f"{self.prefix}{definition.name}",
                description=definition.description,
                inputSchema=tool_input_schema(definition.args_model),
            )
            for definition in self.definitions.values()
        ]

    async def execute_tool(self, tool_name: str, arguments: Optional[Dict[str, Any]]) -> str:
        """Run a tool by its unprefixed name and return its Markdown.

        Raises:
            ErrorEnvelope: Invalid arguments or a failed controller call.
            KeyError: Unknown tool name.
        """
        definition = self.definitions.get(tool_name)
        if definition is None:
            raise KeyError(f"Unknown tool: {self.prefix}{tool_name}")

        set_log_context(tool_name=f"{self.prefix}{tool_name}")
        try:
            try:
                args = parse_arguments(definition.args_model, arguments)
            except Exception as e:
                handle_controller_error(
                    e,
                    ErrorContext(
                        entity_type="tool arguments",
                        operation="validate",
                        source=f"tools/{self.name}@{tool_name}",
                        additional_info={"arguments": arguments},
                    ),
                )

            logger.debug("Executing %s%s", self.prefix, tool_name)
            response = await definition.handler(**args.model_dump())
            return response.content
        finally:
            clear_log_context()
