# POS MCP Server
# File: transports/__init__.py
# Version: v1

"""Transports that expose the POS tools to MCP clients."""
