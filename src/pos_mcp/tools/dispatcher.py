# POS MCP Server
# File: tools/dispatcher.py
# Version: v1
#
# NOTE: This module is the single place where tool names are mapped onto the
# query gatekeeper and where every outcome is turned into a response
# envelope. Transports only ever call `ToolDispatcher.invoke`.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic_core import to_json

from ..errors import ExecutionError, UnknownToolError, ValidationError
from ..gatekeeper import QueryGatekeeper
from ..models import QueryRequest, ToolInvocation, ToolResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required", []))


QUERY_TOOL = ToolSpec(
    name="query_pos_database",
    description=(
        "Run a SELECT, SHOW or DESCRIBE statement against the POS database. "
        "Read-only: statements containing write keywords are rejected and "
        "results are capped (100 rows by default). Use %s placeholders for params."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "sql": {"type": "string", "description": "SQL SELECT statement to run"},
            "params": {
                "type": "array",
                "description": "Optional values bound to %s placeholders, in order",
                "items": {"type": "string"},
            },
        },
        "required": ["sql"],
    },
)

LIST_TABLES_TOOL = ToolSpec(
    name="list_tables",
    description="List every table available in the POS database.",
    input_schema={"type": "object", "properties": {}},
)

DESCRIBE_TABLE_TOOL = ToolSpec(
    name="describe_table",
    description="Show the structure (columns, types, nullability, keys) of one POS table.",
    input_schema={
        "type": "object",
        "properties": {
            "tableName": {"type": "string", "description": "Name of the table to describe"},
        },
        "required": ["tableName"],
    },
)

TOOL_SPECS: Dict[str, ToolSpec] = {
    spec.name: spec for spec in (QUERY_TOOL, LIST_TABLES_TOOL, DESCRIBE_TABLE_TOOL)
}

_JSON_TYPES: Dict[str, type | tuple] = {
    "string": str,
    "array": (list, tuple),
    "object": dict,
}


def check_arguments(spec: ToolSpec, arguments: Dict[str, Any]) -> None:
    """Check required arguments are present and of the declared type."""
    properties = spec.input_schema.get("properties", {})
    for name in spec.required:
        if arguments.get(name) is None:
            raise ValidationError(f"Missing required argument '{name}' for tool {spec.name}")

    for name, value in arguments.items():
        declared = properties.get(name, {}).get("type")
        expected = _JSON_TYPES.get(declared or "")
        if value is None or expected is None:
            continue
        if not isinstance(value, expected):
            raise ValidationError(
                f"Argument '{name}' for tool {spec.name} must be of type {declared}"
            )


def render_payload(payload: Dict[str, Any]) -> str:
    """Serialise a success payload; handles Decimal, datetime and bytes values."""
    return to_json(payload, indent=2, bytes_mode="base64", serialize_unknown=True).decode("utf-8")


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class ToolDispatcher:
    """Maps tool invocations onto the gatekeeper and normalises outcomes.

    Stateless across calls apart from the shared gatekeeper and the in-flight
    bookkeeping used by :meth:`shutdown`.
    """

    def __init__(self, gatekeeper: QueryGatekeeper) -> None:
        self.gatekeeper = gatekeeper
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            QUERY_TOOL.name: self._query_pos_database,
            LIST_TABLES_TOOL.name: self._list_tables,
            DESCRIBE_TABLE_TOOL.name: self._describe_table,
        }
        self._accepting = True
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def tools(self) -> List[ToolSpec]:
        return list(TOOL_SPECS.values())

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def accepting(self) -> bool:
        return self._accepting

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Run one tool call. Business failures never escape this method."""
        invocation = ToolInvocation(name=name, arguments=dict(arguments or {}))

        if not self._accepting:
            logger.warning("Rejecting %s: server is shutting down", name)
            return ToolResponse.error("server is shutting down")

        logger.info("Running tool: %s", invocation.name)
        logger.debug("Arguments: %r", invocation.arguments)

        self._in_flight += 1
        self._idle.clear()
        try:
            payload = await self._dispatch(invocation)
        except (ValidationError, ExecutionError, UnknownToolError) as exc:
            logger.error("Tool %s failed: %s", invocation.name, exc.message)
            return ToolResponse.error(exc.message)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

        logger.info("Tool %s completed", invocation.name)
        return ToolResponse.success(render_payload(payload))

    async def _dispatch(self, invocation: ToolInvocation) -> Dict[str, Any]:
        spec = TOOL_SPECS.get(invocation.name)
        handler = self._handlers.get(invocation.name)
        if spec is None or handler is None:
            raise UnknownToolError(invocation.name)

        check_arguments(spec, invocation.arguments)
        return await handler(invocation.arguments)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Stop intake, let in-flight calls finish, then close the pool."""
        self._accepting = False
        if self._in_flight:
            logger.info("Waiting for %d in-flight tool call(s)", self._in_flight)
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    "%d tool call(s) still running after %ss grace period",
                    self._in_flight,
                    grace_seconds,
                )
        await self.gatekeeper.close(timeout=grace_seconds)

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    async def _query_pos_database(self, args: Dict[str, Any]) -> Dict[str, Any]:
        request = QueryRequest(sql=args["sql"], params=list(args.get("params") or []))
        logger.debug("Running SQL: %s", request.sql)

        result = await self.gatekeeper.execute_read_only_query(request.sql, request.params)

        logger.info("Query ran in %dms, %d rows returned", result.elapsed_ms, result.row_count)
        if result.truncated:
            logger.warning("Result cut to %d rows by the row cap", result.row_count)
        return {
            "success": True,
            "rowCount": result.row_count,
            "executionTime": f"{result.elapsed_ms}ms",
            "data": result.rows,
        }

    async def _list_tables(self, args: Dict[str, Any]) -> Dict[str, Any]:
        tables = await self.gatekeeper.list_tables()
        logger.info("%d tables found", len(tables))
        return {
            "success": True,
            "tableCount": len(tables),
            "tables": tables,
        }

    async def _describe_table(self, args: Dict[str, Any]) -> Dict[str, Any]:
        table_name = args["tableName"]
        descriptor = await self.gatekeeper.get_table_schema(table_name)
        logger.info("Table %s has %d columns", table_name, descriptor.column_count)
        return {
            "success": True,
            "tableName": descriptor.table_name,
            "columnCount": descriptor.column_count,
            "schema": descriptor.columns,
        }

