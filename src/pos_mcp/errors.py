# POS MCP Server
# File: errors.py
# Version: v1

"""Exception hierarchy for the POS MCP Server.

ValidationError, ExecutionError and UnknownToolError are business outcomes:
the tool dispatcher turns them into error envelopes. Anything else is treated
as a programming or startup failure and is left to propagate.
"""

from __future__ import annotations


class PosMcpError(Exception):
    """Base exception for recoverable gateway errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PosMcpError):
    """Statement or arguments rejected before touching the database."""


class ExecutionError(PosMcpError):
    """Driver failure, timeout or pool exhaustion while running a statement."""


class UnknownToolError(PosMcpError):
    """Invocation names a tool outside the registry."""

    def __init__(self, name: str) -> None:
        self.tool_name = name
        super().__init__(f"Unknown tool: {name}")
