# POS MCP Server
# File: tools/__init__.py
# Version: v1

"""Tool registry, dispatcher and MCP registration helpers."""

from __future__ import annotations

from .dispatcher import TOOL_SPECS, ToolDispatcher, ToolSpec
from .tasks import register_tools

__all__ = ["TOOL_SPECS", "ToolDispatcher", "ToolSpec", "register_tools"]
