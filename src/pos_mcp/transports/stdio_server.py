# POS MCP Server
# File: transports/stdio_server.py
# Version: v1

"""STDIO entrypoint for the POS MCP server.

This is the script behind the ``pos-mcp-server`` console command.

It:

- loads configuration from the environment,
- creates the FastMCP server with the three POS tools,
- runs the built-in stdio transport until stdin closes or a signal arrives.

Exit status is 0 on a clean or signal-driven shutdown and 1 when startup
fails or an unexpected error escapes the server.
"""

from __future__ import annotations

import logging
import signal
import sys

from ..config import PosConfig
from ..server import build_server

logger = logging.getLogger(__name__)


def main() -> None:
    """Synchronous entrypoint for console_scripts."""
    # SIGTERM takes the same path as Ctrl+C so the lifespan closes the pool.
    signal.signal(signal.SIGTERM, signal.default_int_handler)

    try:
        config = PosConfig.from_env()
        mcp = build_server(config)
        logger.info("POS MCP server running on stdio (%s)", config.describe())

        # Let FastMCP handle stdio + event loop setup.
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal, server stopped")
        sys.exit(0)
    except Exception:
        logger.exception("Fatal error in POS MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
