# POS MCP Server
# File: pool.py
# Version: v1

"""Connection pool factory for the POS database."""

from __future__ import annotations

import logging
from typing import Any

import aiomysql

from .config import PosConfig

logger = logging.getLogger(__name__)


async def create_pool(config: PosConfig) -> Any:
    """Create the process-wide connection pool described by ``config``.

    In mock mode an in-memory :class:`~pos_mcp.mock.MockPool` is returned so
    the server can run without a MySQL instance.

    The real pool runs in autocommit mode: aiomysql closes connections that
    are returned while a transaction is still open, and every statement this
    server runs is a single read.
    """
    if config.mock_mode:
        from .mock import MockPool

        logger.info("Using in-memory mock POS database (POS_MOCK_MODE is set).")
        return MockPool(maxsize=config.connection_limit)

    logger.info(
        "Creating connection pool for %s (limit=%d)",
        config.describe(),
        config.connection_limit,
    )
    return await aiomysql.create_pool(
        host=config.host,
        port=config.port,
        user=config.user,
        password=config.password,
        db=config.database,
        minsize=1,
        maxsize=config.connection_limit,
        connect_timeout=config.connect_timeout,
        autocommit=True,
        charset="utf8mb4",
        # Recycle idle connections before the server's wait_timeout drops them.
        pool_recycle=3600,
    )
