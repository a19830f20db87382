"""news_sync - MCP Server with Decorators

This module implements the MCP server exposing the reading-state sync engine,
with multi-transport support (STDIO, SSE, and Streamable HTTP) and automatic
application of decorators (exception handling, logging) to every tool.
"""

import asyncio
import contextlib
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from news_sync.config import ServerConfig, get_config, load_config
from news_sync.decorators.exception_handler import exception_handler
from news_sync.decorators.tool_logger import tool_logger
from news_sync.decorators.type_converter import type_converter
from news_sync.log_system.correlation import (
    clear_initialization_correlation_id,
    generate_correlation_id,
    set_initialization_correlation_id,
)
from news_sync.logging_config import logger, setup_logging
from news_sync.remote.base import RemoteStore
from news_sync.remote.http_remote import HttpRemoteStore
from news_sync.remote.memory import InMemoryRemoteStore
from news_sync.services.sync_engine import SyncEngine
from news_sync.storage.database import LocalStore
from news_sync.tools.sync_tools import create_sync_tools


def build_remote(config: ServerConfig) -> RemoteStore:
    """Create the remote store adapter selected by the configuration."""
    if config.remote_url:
        return HttpRemoteStore(
            base_url=config.remote_url,
            workspace=config.workspace,
            token=config.remote_token,
            timeout=config.request_timeout,
        )
    logger.warning("No remote_url configured, syncing against an in-memory remote")
    return InMemoryRemoteStore()


def build_engine(config: ServerConfig) -> SyncEngine:
    """Create a sync engine wired to the configured local and remote stores."""
    return SyncEngine(
        store=LocalStore(config.db_path),
        remote=build_remote(config),
        complete_display_delay=config.complete_display_delay,
        max_concurrent_uploads=config.max_concurrent_uploads,
    )


@asynccontextmanager
async def engine_running(engine: SyncEngine, sync_interval: float = 0.0) -> AsyncIterator[SyncEngine]:
    """Run the engine for the lifetime of the process.

    Starts the engine and, if ``sync_interval`` is positive, the periodic sync
    task. On exit the task is stopped and the engine closed.
    """
    await engine.start()

    stop_event = asyncio.Event()
    periodic_task = None
    if sync_interval > 0:
        periodic_task = asyncio.create_task(engine.run_periodic(sync_interval, stop_event))

    try:
        yield engine
    finally:
        stop_event.set()
        if periodic_task is not None:
            periodic_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await periodic_task
        await engine.close()


def create_mcp_server(
    config: Optional[ServerConfig] = None,
    engine: Optional[SyncEngine] = None,
) -> FastMCP:
    """Create and configure the MCP server with decorators.

    Args:
        config: Optional server configuration
        engine: Optional pre-built sync engine (built from config otherwise).
                The caller owns its lifecycle, see engine_running()

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    # Set startup correlation ID BEFORE initializing logging
    startup_correlation_id = "startup_" + generate_correlation_id().split("_")[1]
    set_initialization_correlation_id(startup_correlation_id)

    setup_logging(config)
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    if engine is None:
        engine = build_engine(config)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[Dict[str, SyncEngine]]:
        # Entered once per client session on SSE and Streamable HTTP; the
        # engine itself is owned by engine_running()
        await engine.start()
        yield {"engine": engine}

    # Configure DNS rebinding protection (disabled by default for development)
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()] if allowed_hosts_env else []

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")
    if dns_protection and allowed_hosts:
        logger.info(f"Allowed hosts: {allowed_hosts}")

    mcp_server = FastMCP(
        config.name or "news_sync",
        lifespan=lifespan,
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts,
        ),
    )

    # Register all tools with the server
    register_tools(mcp_server, config, engine)

    # Clear initialization correlation ID after initialization
    logger.info("Server initialization complete")
    clear_initialization_correlation_id()

    return mcp_server


def register_tools(mcp_server: FastMCP, config: ServerConfig, engine: SyncEngine) -> None:
    """Register all MCP tools with the server using decorators.

    Registers decorated functions directly with MCP to preserve function signatures
    for proper parameter introspection.
    """
    for tool_func in create_sync_tools(engine):
        # Apply decorator chain: exception_handler → tool_logger → type_converter
        decorated_func = exception_handler(tool_logger(type_converter(tool_func), config.__dict__))

        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(decorated_func)

        logger.debug(f"Registered sync tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized with decorators")


@click.command()
@click.option(
    "--port",
    default=3001,
    help="Port to listen on for SSE or Streamable HTTP transport"
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    help="Transport type (stdio, sse, or streamable-http)"
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to a YAML config file"
)
def main(port: int, host: str, transport: str, config_path: Optional[str] = None) -> int:
    """Run the news_sync server with specified transport."""
    try:
        config = load_config(config_path) if config_path else get_config()
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        return 1

    setup_logging(config)
    engine = build_engine(config)
    server = create_mcp_server(config, engine=engine)

    async def run_server():
        """Inner async function to run the server and manage the event loop."""
        async with engine_running(engine, config.sync_interval):
            await serve()

    async def serve():
        if transport == "stdio":
            logger.info("Starting server with STDIO transport")
            await server.run_stdio_async()
        elif transport == "sse":
            logger.info(f"Starting server with SSE transport on {host}:{port}")
            server.settings.host = host
            server.settings.port = port
            await server.run_sse_async()
        elif transport == "streamable-http":
            logger.info(f"Starting server with Streamable HTTP transport on {host}:{port}")
            server.settings.host = host
            server.settings.port = port
            server.settings.streamable_http_path = "/mcp"
            await server.run_streamable_http_async()
        else:
            raise ValueError(f"Unknown transport: {transport}")

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1


def main_stdio() -> int:
    """Entry point for STDIO transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="stdio")


def main_http() -> int:
    """Entry point for Streamable HTTP transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="streamable-http")


if __name__ == "__main__":
    sys.exit(main())
