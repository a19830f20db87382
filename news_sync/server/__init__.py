"""MCP server package initialization"""

from news_sync.server.app import build_engine, create_mcp_server, engine_running, main

__all__ = ["build_engine", "create_mcp_server", "engine_running", "main"]
