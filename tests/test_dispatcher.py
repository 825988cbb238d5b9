# POS MCP Server
# File: tests/test_dispatcher.py
# Version: v1
#
# Tests for ToolDispatcher.invoke: per-tool success payloads, error envelopes
# and the shutdown protocol. All calls run against MockPool.

from __future__ import annotations

import asyncio
import datetime
import json
from decimal import Decimal
from typing import Any, Dict

import pytest

from pos_mcp.gatekeeper import QueryGatekeeper
from pos_mcp.mock import MockPool, MockTable, column
from pos_mcp.models import QueryResult, ToolResponse
from pos_mcp.tools import TOOL_SPECS, ToolDispatcher


def _dispatcher(pool: MockPool | None = None, **kwargs: Any) -> ToolDispatcher:
    return ToolDispatcher(QueryGatekeeper(pool or MockPool(), **kwargs))


def _payload(response: ToolResponse) -> Dict[str, Any]:
    assert response.is_error is False
    assert len(response.content) == 1
    assert response.content[0]["type"] == "text"
    return json.loads(response.text)


def _assert_error(response: ToolResponse, fragment: str) -> None:
    assert response.is_error is True
    assert response.to_dict()["isError"] is True
    assert response.content == [{"type": "text", "text": response.text}]
    assert fragment in response.text


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_declares_three_tools_with_schemas() -> None:
    assert list(TOOL_SPECS) == ["query_pos_database", "list_tables", "describe_table"]

    query = TOOL_SPECS["query_pos_database"].input_schema
    assert query["required"] == ["sql"]
    assert query["properties"]["sql"]["type"] == "string"
    assert query["properties"]["params"] == {
        "type": "array",
        "description": query["properties"]["params"]["description"],
        "items": {"type": "string"},
    }

    assert TOOL_SPECS["list_tables"].required == []
    assert TOOL_SPECS["describe_table"].required == ["tableName"]


# ---------------------------------------------------------------------------
# Success envelopes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_query_tool_success_payload() -> None:
    dispatcher = _dispatcher()

    response = await dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM products"})

    payload = _payload(response)
    assert payload["success"] is True
    assert payload["rowCount"] == 3
    assert payload["executionTime"].endswith("ms")
    assert int(payload["executionTime"][:-2]) >= 0
    assert payload["data"][0] == {
        "id": 1,
        "sku": "CAF-001",
        "name": "Café molido 500g",
        "price": "7.50",
        "stock": 40,
    }
    assert "isError" not in response.to_dict()


@pytest.mark.asyncio
async def test_list_tables_payload() -> None:
    dispatcher = _dispatcher()

    payload = _payload(await dispatcher.invoke("list_tables"))

    assert payload == {
        "success": True,
        "tableCount": 4,
        "tables": ["customers", "products", "sales", "sale_items"],
    }


@pytest.mark.asyncio
async def test_describe_table_payload() -> None:
    dispatcher = _dispatcher()

    payload = _payload(await dispatcher.invoke("describe_table", {"tableName": "sales"}))

    assert payload["success"] is True
    assert payload["tableName"] == "sales"
    assert payload["columnCount"] == 4
    assert payload["schema"][1]["Field"] == "customer_id"
    assert payload["schema"][1]["Null"] == "YES"


@pytest.mark.asyncio
async def test_mysql_value_types_are_serialised() -> None:
    table = MockTable(
        columns=[column("total", "decimal(10,2)"), column("sold_at", "datetime"), column("note", "blob")],
        rows=[
            {
                "total": Decimal("15.50"),
                "sold_at": datetime.datetime(2024, 5, 2, 10, 15),
                "note": b"\x00\xff",
            }
        ],
    )
    dispatcher = _dispatcher(MockPool(tables={"sales": table}))

    payload = _payload(
        await dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM sales"})
    )

    row = payload["data"][0]
    assert row["total"] == "15.50"
    assert row["sold_at"] == "2024-05-02T10:15:00"
    assert isinstance(row["note"], str)


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_tool_returns_error_envelope() -> None:
    dispatcher = _dispatcher()

    response = await dispatcher.invoke("drop_everything", {})

    _assert_error(response, "Unknown tool: drop_everything")


@pytest.mark.asyncio
async def test_write_statement_returns_error_without_touching_pool() -> None:
    pool = MockPool()
    dispatcher = _dispatcher(pool)

    response = await dispatcher.invoke(
        "query_pos_database", {"sql": "DELETE FROM sales WHERE id = 1"}
    )

    _assert_error(response, "read-only statements only")
    assert pool.acquired == 0


@pytest.mark.asyncio
async def test_created_orders_false_positive_is_an_error_envelope() -> None:
    dispatcher = _dispatcher()

    response = await dispatcher.invoke(
        "query_pos_database", {"sql": "SELECT * FROM created_orders"}
    )

    _assert_error(response, "write operation detected")


@pytest.mark.asyncio
async def test_describe_missing_table_returns_error_envelope() -> None:
    pool = MockPool()
    dispatcher = _dispatcher(pool)

    response = await dispatcher.invoke("describe_table", {"tableName": "ghosts"})

    _assert_error(response, "Table 'pos.ghosts' doesn't exist")
    assert pool.in_use == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name, arguments, fragment",
    [
        ("query_pos_database", {}, "Missing required argument 'sql'"),
        ("query_pos_database", {"sql": None}, "Missing required argument 'sql'"),
        ("query_pos_database", {"sql": 42}, "must be of type string"),
        ("query_pos_database", {"sql": "SELECT 1", "params": "x"}, "must be of type array"),
        ("describe_table", {}, "Missing required argument 'tableName'"),
        ("describe_table", {"tableName": ["products"]}, "must be of type string"),
    ],
)
async def test_argument_shape_errors(name: str, arguments: Dict[str, Any], fragment: str) -> None:
    dispatcher = _dispatcher()

    _assert_error(await dispatcher.invoke(name, arguments), fragment)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM products WHERE id = ?",
        "SELECT * FROM products WHERE name LIKE '%caf%' AND id = %s",
    ],
)
async def test_parameter_binding_failure_returns_error_envelope(sql: str) -> None:
    pool = MockPool()
    dispatcher = _dispatcher(pool)

    response = await dispatcher.invoke("query_pos_database", {"sql": sql, "params": ["1"]})

    _assert_error(response, "Query failed")
    assert dispatcher.in_flight == 0
    assert pool.in_use == 0
    # Nothing reached the server, so the connection went back to the pool open.
    assert pool.closed_connections == 0


@pytest.mark.asyncio
async def test_execution_time_comes_from_the_query_result(monkeypatch) -> None:
    dispatcher = _dispatcher()

    async def _fixed(sql, params=None):
        return QueryResult(rows=[{"id": 1}], row_count=1, elapsed_ms=42, truncated=True)

    monkeypatch.setattr(dispatcher.gatekeeper, "execute_read_only_query", _fixed)

    payload = _payload(
        await dispatcher.invoke("query_pos_database", {"sql": "SELECT id FROM sales"})
    )

    assert payload["executionTime"] == "42ms"
    assert payload["rowCount"] == 1


@pytest.mark.asyncio
async def test_timeout_is_reported_as_error_envelope() -> None:
    dispatcher = _dispatcher(MockPool(delay=0.5), query_timeout=0.05)

    response = await dispatcher.invoke("list_tables")

    _assert_error(response, "timed out")


@pytest.mark.asyncio
async def test_unexpected_errors_are_not_converted(monkeypatch) -> None:
    dispatcher = _dispatcher()

    async def _broken() -> list:
        raise RuntimeError("programming error")

    monkeypatch.setattr(dispatcher.gatekeeper, "list_tables", _broken)

    with pytest.raises(RuntimeError, match="programming error"):
        await dispatcher.invoke("list_tables")
    assert dispatcher.in_flight == 0


@pytest.mark.asyncio
async def test_failing_call_does_not_affect_concurrent_calls() -> None:
    pool = MockPool(maxsize=2, delay=0.01)
    dispatcher = _dispatcher(pool)

    good, bad, schema = await asyncio.gather(
        dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM customers"}),
        dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM nowhere"}),
        dispatcher.invoke("describe_table", {"tableName": "products"}),
    )

    assert _payload(good)["rowCount"] == 3
    _assert_error(bad, "doesn't exist")
    assert _payload(schema)["columnCount"] == 5
    assert pool.in_use == 0


@pytest.mark.asyncio
async def test_concurrent_invocations_all_succeed_under_contention() -> None:
    pool = MockPool(maxsize=2, delay=0.01)
    dispatcher = _dispatcher(pool)

    responses = await asyncio.gather(
        *(
            dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM products"})
            for _ in range(8)
        )
    )

    assert all(not r.is_error for r in responses)
    assert pool.peak_in_use <= 2
    assert pool.acquired == pool.released == 8


# ---------------------------------------------------------------------------
# Shutdown protocol
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_shutdown_drains_in_flight_calls_then_closes_pool() -> None:
    pool = MockPool(delay=0.05)
    dispatcher = _dispatcher(pool)

    in_flight = asyncio.create_task(
        dispatcher.invoke("query_pos_database", {"sql": "SELECT * FROM products"})
    )
    await asyncio.sleep(0.01)
    assert dispatcher.in_flight == 1

    await dispatcher.shutdown(grace_seconds=5)

    assert dispatcher.accepting is False
    assert _payload(await in_flight)["rowCount"] == 3
    assert pool.closed is True

    late = await dispatcher.invoke("list_tables")
    _assert_error(late, "server is shutting down")
    assert pool.acquired == 1


@pytest.mark.asyncio
async def test_shutdown_grace_period_is_bounded() -> None:
    pool = MockPool(delay=2.0)
    dispatcher = _dispatcher(pool)

    in_flight = asyncio.create_task(dispatcher.invoke("list_tables"))
    await asyncio.sleep(0.01)

    await asyncio.wait_for(dispatcher.shutdown(grace_seconds=0.05), timeout=1.0)
    assert pool.closed is True

    in_flight.cancel()
    with pytest.raises(asyncio.CancelledError):
        await in_flight
