"""
Task bridge MCP server: exposes task execution tools over stdio.

Run: python -m taskbridge.mcp.server
"""

import asyncio
import json
import logging
from typing import Any, Dict

from mcp.server import Server
from mcp.types import TextContent, Tool
from pydantic import ValidationError as ParamsValidationError

from taskbridge.config.settings import get_settings
from taskbridge.container import get_container, shutdown_container
from taskbridge.exceptions import error_payload
from taskbridge.mcp.tools import get_tool_definitions
from taskbridge.observability import configure_logging
from taskbridge.tools import TOOL_REGISTRY, ToolDependencies

logger = logging.getLogger(__name__)

server = Server(get_settings().app_name)


async def dispatch_tool(name: str, arguments: Dict[str, Any], deps: ToolDependencies) -> Dict[str, Any]:
    """Validate arguments and run one tool. Never raises."""
    spec = TOOL_REGISTRY.get(name)
    if spec is None:
        return {"error": f"Unknown tool: {name}"}
    try:
        params = spec.params.model_validate(arguments or {})
    except ParamsValidationError as e:
        return {"error": f"Invalid arguments for {name}: {e}"}
    try:
        return await spec.handler(params, deps)
    except Exception as e:
        logger.error(f"Tool {name} failed: {e}")
        return error_payload(e)


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Return available task bridge tools."""
    return [
        Tool(name=t["name"], description=t["description"], inputSchema=t["inputSchema"])
        for t in get_tool_definitions()
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        result = await dispatch_tool(name, arguments, get_container().tools)
    except Exception as e:
        # Container wiring failed (usually configuration)
        logger.error(f"Tool {name} failed: {e}")
        result = error_payload(e)
    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def main():
    """Run the MCP server on stdio."""
    from mcp.server.stdio import stdio_server

    configure_logging(get_settings())
    container = get_container()
    await container.start()
    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Task bridge MCP server starting on stdio")
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await shutdown_container()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
