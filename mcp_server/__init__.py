"""MCP server exposing Tiny11 Builder tools.

This module implements the Model Context Protocol (MCP) server that
exposes the core tiny11_builder functionality to AI tools and external
systems.

MCP tools:
- Are read-only, except start_build which queues one build
- Return structured errors with codes
- Map directly to core services
"""

from mcp_server.server import mcp

__all__ = ["mcp"]
