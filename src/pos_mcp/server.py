# POS MCP Server
# File: server.py
# Version: v1

"""FastMCP server construction and lifespan.

The connection pool lives for exactly as long as the server lifespan: it is
created on startup, injected into the query gatekeeper, and closed through
the dispatcher's shutdown protocol when the server stops.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from .config import PosConfig
from .gatekeeper import QueryGatekeeper
from .pool import create_pool
from .tools import ToolDispatcher, register_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "pos-mcp-server"

INSTRUCTIONS = (
    "Read-only access to a point-of-sale MySQL database. Start with list_tables, "
    "inspect columns with describe_table, then run SELECT statements with "
    "query_pos_database."
)


@dataclass
class AppContext:
    """Objects shared by every tool call for the lifetime of the server."""

    config: PosConfig
    dispatcher: ToolDispatcher


async def build_dispatcher(config: PosConfig) -> ToolDispatcher:
    """Create the pool described by ``config`` and wire the tool pipeline."""
    pool = await create_pool(config)
    gatekeeper = QueryGatekeeper(
        pool,
        max_rows=config.max_rows,
        acquire_timeout=config.acquire_timeout_seconds,
        query_timeout=config.query_timeout_seconds,
        max_pending=config.max_pending,
    )
    return ToolDispatcher(gatekeeper)


def make_lifespan(config: PosConfig):
    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
        dispatcher = await build_dispatcher(config)
        logger.info("Connected to %s", config.describe())
        try:
            yield AppContext(config=config, dispatcher=dispatcher)
        finally:
            logger.info("Shutting down, closing connections...")
            await dispatcher.shutdown(grace_seconds=config.shutdown_grace_seconds)

    return lifespan


def build_server(config: Optional[PosConfig] = None) -> FastMCP:
    """Create a FastMCP server exposing the POS tools."""
    config = config or PosConfig.from_env()

    mcp = FastMCP(
        SERVER_NAME,
        instructions=INSTRUCTIONS,
        lifespan=make_lifespan(config),
        log_level=config.log_level,
    )
    register_tools(mcp)
    return mcp
