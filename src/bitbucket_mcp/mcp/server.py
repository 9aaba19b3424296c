"""MCP server: tool listing, tool dispatch and the stdio/HTTP transports."""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from ..context import AppContext
from ..errors import ErrorEnvelope
from ..observability.logging import set_log_context
from ..services.http_client import close_http_client
from ..tools import BaseToolset, ToolsetRegistry, toolset_registry

logger = logging.getLogger(__name__)


def format_error_for_mcp_tool(error: BaseException) -> str:
    """Text returned to the MCP client for a failed tool call."""
    if isinstance(error, ErrorEnvelope):
        return f"Error: {error.message}"
    return f"Error: {error}"


class MCPServer:
    """Exposes every enabled toolset through one ``mcp.server.Server``."""

    def __init__(self, context: AppContext, registry: ToolsetRegistry = toolset_registry):
        self.context = context
        self.toolsets: List[BaseToolset] = registry.create_toolsets(context)
        self.server = Server("bitbucket-mcp", version=context.settings.app_version)
        self._setup_handlers()
        logger.debug("MCPServer created with toolsets: %s", [t.name for t in self.toolsets])

    def _setup_handlers(self):
        """Set up MCP protocol handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            return await self.list_tools()

        # Arguments are validated by the tool argument models
        @self.server.call_tool(validate_input=False)
        async def handle_call_tool(
            name: str, arguments: Optional[Dict[str, Any]] = None
        ) -> List[types.TextContent]:
            return await self.call_tool(name, arguments)

    async def list_tools(self) -> List[types.Tool]:
        tools = []
        for toolset in self.toolsets:
            tools.extend(toolset.get_tools())
        logger.debug("Returning %d total tools", len(tools))
        return tools

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> List[types.TextContent]:
        """Run a tool; failures are returned as ``Error: ...`` text, never raised."""
        toolset, action = self._resolve_tool_target(name)
        if toolset is None:
            return [types.TextContent(type="text", text=f"Error: Unknown tool: {name}")]

        set_log_context(request_id=uuid.uuid4().hex[:12])
        logger.info("Tool call: %s (toolset=%s, action=%s)", name, toolset.name, action)

        start = time.perf_counter()
        try:
            result = await toolset.execute_tool(action, arguments or {})
        except Exception as e:
            # Envelopes were already logged with their context when built
            if not isinstance(e, ErrorEnvelope):
                logger.exception("Tool execution failed: %s", name)
            return [types.TextContent(type="text", text=format_error_for_mcp_tool(e))]

        logger.debug("Tool %s finished in %.3fs", name, time.perf_counter() - start)
        return [types.TextContent(type="text", text=result)]

    def _resolve_tool_target(self, tool_name: str) -> Tuple[Optional[BaseToolset], Optional[str]]:
        """Resolve a tool call into (toolset, unprefixed action)."""
        # Longest prefix first so overlapping toolset names route correctly
        for toolset in sorted(self.toolsets, key=lambda t: len(t.prefix), reverse=True):
            if tool_name.startswith(toolset.prefix):
                action = tool_name[len(toolset.prefix):]
                if action in toolset.definitions:
                    return toolset, action
        return None, None

    async def run_stdio(self):
        """Serve over stdin/stdout until the client disconnects."""
        logger.info("Starting MCP server on stdio")
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream, write_stream, self.server.create_initialization_options()
                )
        finally:
            await close_http_client()


def create_http_app(mcp_server: MCPServer) -> FastAPI:
    """FastAPI app serving the streamable HTTP transport at ``/mcp``."""
    settings = mcp_server.context.settings
    session_manager = StreamableHTTPSessionManager(app=mcp_server.server, stateless=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with session_manager.run():
            logger.info("MCP HTTP transport ready on %s:%s/mcp", settings.host, settings.port)
            yield
        await close_http_client()
        logger.info("MCP HTTP transport shut down")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    async def handle_mcp(scope, receive, send):
        await session_manager.handle_request(scope, receive, send)

    app.mount("/mcp", handle_mcp)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "toolsets": [t.name for t in mcp_server.toolsets],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app
