# POS MCP Server
# File: tools/tasks.py
# Version: v1
#
# NOTE: The MCP-facing wrappers are intentionally thin. Each one forwards its
# arguments to the ToolDispatcher held in the server lifespan context and
# returns the dispatcher's envelope unchanged.

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Optional

from mcp.server.fastmcp import Context
from mcp.types import CallToolResult, TextContent, ToolAnnotations
from pydantic import Field

from ..models import ToolResponse
from .dispatcher import DESCRIBE_TABLE_TOOL, LIST_TABLES_TOOL, QUERY_TOOL, ToolDispatcher

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, openWorldHint=False)


def to_call_tool_result(response: ToolResponse) -> CallToolResult:
    """Convert a dispatcher envelope into the MCP wire type."""
    return CallToolResult(
        content=[TextContent(type="text", text=block["text"]) for block in response.content],
        isError=response.is_error,
    )


def _dispatcher_from(ctx: Any) -> ToolDispatcher:
    return ctx.request_context.lifespan_context.dispatcher


async def _invoke(ctx: Any, name: str, arguments: Dict[str, Any]) -> CallToolResult:
    response = await _dispatcher_from(ctx).invoke(name, arguments)
    return to_call_tool_result(response)


# ---------------------------------------------------------------------------
# MCP tool registration
# ---------------------------------------------------------------------------


def register_tools(server: Any) -> None:
    """Register the POS tools on an MCP Server-like instance."""
    if server is None or not hasattr(server, "tool"):
        raise ValueError(
            "register_tools(server) expects an MCP Server-like object that exposes a .tool() decorator."
        )

    @server.tool(
        name=QUERY_TOOL.name,
        description=QUERY_TOOL.description,
        annotations=_READ_ONLY,
    )
    async def query_pos_database(
        sql: Annotated[str, Field(description="SQL SELECT statement to run")],
        ctx: Context,
        params: Annotated[
            Optional[List[str]],
            Field(description="Optional values bound to %s placeholders, in order"),
        ] = None,
    ) -> CallToolResult:
        arguments: Dict[str, Any] = {"sql": sql}
        if params is not None:
            arguments["params"] = params
        return await _invoke(ctx, QUERY_TOOL.name, arguments)

    @server.tool(
        name=LIST_TABLES_TOOL.name,
        description=LIST_TABLES_TOOL.description,
        annotations=_READ_ONLY,
    )
    async def list_tables(ctx: Context) -> CallToolResult:
        return await _invoke(ctx, LIST_TABLES_TOOL.name, {})

    @server.tool(
        name=DESCRIBE_TABLE_TOOL.name,
        description=DESCRIBE_TABLE_TOOL.description,
        annotations=_READ_ONLY,
    )
    async def describe_table(
        tableName: Annotated[str, Field(description="Name of the table to describe")],  # noqa: N803
        ctx: Context,
    ) -> CallToolResult:
        return await _invoke(ctx, DESCRIBE_TABLE_TOOL.name, {"tableName": tableName})
