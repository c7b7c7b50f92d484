"""
MCP server exposing the Omi.me tools over stdio.

stdout carries the MCP message stream, so nothing in this process may print
to it; logging is configured on stderr by the CLI.
"""

import logging
from typing import Dict, Any, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp import types

from omi_mcp import __version__
from omi_mcp.tools import ToolDispatcher

logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "omi-me-integration"

def build_tool_list(dispatcher: ToolDispatcher) -> List[types.Tool]:
    return [
        types.Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema)
        for spec in dispatcher.list_tools()
    ]

def build_server(dispatcher: ToolDispatcher, name: str = DEFAULT_SERVER_NAME) -> Server:
    """
    Create an MCP server wired to the dispatcher.

    Args:
        dispatcher: ToolDispatcher serving every tool call.
        name: Server name announced to the host.

    Returns:
        Configured mcp Server instance.
    """
    server = Server(name, version=__version__)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return build_tool_list(dispatcher)

    # Arguments are validated by the request types, not by the SDK, so
    # missing fields surface as "Error: Missing required argument: ..." results.
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> types.CallToolResult:
        result = await dispatcher.dispatch(name, arguments)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=result.text)],
            isError=result.is_error,
        )

    return server

async def run_stdio_server(dispatcher: ToolDispatcher, name: str = DEFAULT_SERVER_NAME) -> None:
    """Serve MCP requests on stdin/stdout until the host disconnects."""
    server = build_server(dispatcher, name)
    logger.info(f"Omi.me MCP server '{name}' v{__version__} is running on stdio")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
