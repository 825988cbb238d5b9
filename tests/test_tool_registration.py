# POS MCP Server
# File: tests/test_tool_registration.py
# Version: v1

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from mcp.types import CallToolResult

from pos_mcp.config import PosConfig
from pos_mcp.gatekeeper import QueryGatekeeper
from pos_mcp.mock import MockPool
from pos_mcp.models import ToolResponse
from pos_mcp.server import AppContext, build_server
from pos_mcp.tools import ToolDispatcher, register_tools
from pos_mcp.tools.tasks import to_call_tool_result


class DummyServer:
    """Minimal duck-typed MCP server that keeps the registered functions."""

    def __init__(self) -> None:
        self.tools = {}

    def tool(self, *args, **kwargs):
        def decorator(fn):
            self.tools[kwargs["name"]] = {"fn": fn, "kwargs": kwargs}
            return fn

        return decorator


def _ctx(pool: MockPool) -> SimpleNamespace:
    app = AppContext(config=PosConfig(mock_mode=True), dispatcher=ToolDispatcher(QueryGatekeeper(pool)))
    return SimpleNamespace(request_context=SimpleNamespace(lifespan_context=app))


def test_register_tools_rejects_objects_without_tool_decorator() -> None:
    with pytest.raises(ValueError):
        register_tools(object())


def test_register_tools_uses_registry_names_and_descriptions() -> None:
    server = DummyServer()
    register_tools(server)

    assert set(server.tools) == {"query_pos_database", "list_tables", "describe_table"}
    for entry in server.tools.values():
        assert entry["kwargs"]["description"]
        assert entry["kwargs"]["annotations"].readOnlyHint is True


@pytest.mark.asyncio
async def test_registered_tools_forward_to_dispatcher() -> None:
    server = DummyServer()
    register_tools(server)
    pool = MockPool()
    ctx = _ctx(pool)

    result = await server.tools["query_pos_database"]["fn"](sql="SELECT * FROM customers", ctx=ctx)
    assert isinstance(result, CallToolResult)
    assert result.isError is False
    assert json.loads(result.content[0].text)["rowCount"] == 3

    result = await server.tools["list_tables"]["fn"](ctx=ctx)
    assert json.loads(result.content[0].text)["tableCount"] == 4

    result = await server.tools["describe_table"]["fn"](tableName="nope", ctx=ctx)
    assert result.isError is True
    assert "doesn't exist" in result.content[0].text

    assert pool.in_use == 0


@pytest.mark.asyncio
async def test_query_tool_passes_params_only_when_given() -> None:
    server = DummyServer()
    register_tools(server)
    pool = MockPool()
    ctx = _ctx(pool)

    await server.tools["query_pos_database"]["fn"](sql="SELECT * FROM sales", ctx=ctx)
    assert pool.executed[-1][1] is None

    await server.tools["query_pos_database"]["fn"](
        sql="SELECT * FROM sales WHERE id = %s", ctx=ctx, params=["1"]
    )
    assert pool.executed[-1][1] == ["1"]


def test_to_call_tool_result_preserves_error_flag() -> None:
    ok = to_call_tool_result(ToolResponse.success('{"success": true}'))
    err = to_call_tool_result(ToolResponse.error("Unknown tool: x"))

    assert ok.isError is False
    assert ok.content[0].text == '{"success": true}'
    assert err.isError is True
    assert err.content[0].type == "text"
    assert err.content[0].text == "Unknown tool: x"


@pytest.mark.asyncio
async def test_fastmcp_advertises_the_three_tools() -> None:
    mcp = build_server(PosConfig(mock_mode=True))

    tools = {t.name: t for t in await mcp.list_tools()}

    assert set(tools) == {"query_pos_database", "list_tables", "describe_table"}

    query_schema = tools["query_pos_database"].inputSchema
    assert query_schema["required"] == ["sql"]
    assert query_schema["properties"]["sql"]["type"] == "string"
    assert "params" in query_schema["properties"]
    assert "ctx" not in query_schema["properties"]

    assert tools["describe_table"].inputSchema["required"] == ["tableName"]
    assert tools["list_tables"].inputSchema.get("required", []) == []
