"""MCP Server for Jira task sync using stdio transport.

This module implements the Model Context Protocol server that enables
AI agents to run and inspect the bidirectional sync between the local
project store and Jira.

Transport: stdio (for desktop and IDE agent integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..errors import SyncError
from ..logger import setup_logging
from ..sync.engine import SyncEngine
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    READ_ONLY_PERMISSIONS,
    ToolRegistry,
    build_error_response,
    load_permissions_file,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

server = Server("jira-sync-mcp")

# Global engine instance (initialized in lifespan)
_engine: SyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, no permission required)
# ---------------------------------------------------------------------------


async def _handle_ping(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test Jira connectivity."""
    try:
        account = await run_sync(engine.client.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"Jira sync server connected as {account}. "
                        f"Project: {engine.project_id}"
                    ),
                )
            ]
        )
    except SyncError as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Jira connection failed: {e}. Check JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test Jira sync server connectivity and return the authenticated account",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    permissions=frozenset(),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    """Set the global SyncEngine instance, or None to clear."""
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


def resolve_permissions(
    permissions_file: str | None, read_only: bool
) -> frozenset[str] | None:
    """Combine the permissions file and the read-only flag.

    Returns:
        Allowed permissions, or None when every tool is allowed.
    """
    allowed = None
    if permissions_file:
        allowed = load_permissions_file(permissions_file)
        logger.info(
            "Loaded %d permissions from %s", len(allowed), permissions_file
        )
    if read_only:
        allowed = (
            READ_ONLY_PERMISSIONS
            if allowed is None
            else allowed & READ_ONLY_PERMISSIONS
        )
    return allowed


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List registered (and permitted) sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    Jira connection via the lifespan manager, and starts the server with
    stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (domain, email, project_key, insecure, log_file,
            permissions_file, read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout during negotiation
    setup_logging(mode="mcp", log_file=overrides.get("log_file"))

    permissions_file = overrides.get("permissions_file")
    read_only = bool(overrides.get("read_only", False))
    allowed_permissions = resolve_permissions(permissions_file, read_only)

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, allowed_permissions)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )

    if allowed_permissions is not None:
        print(
            f"Tool filter: {permissions_file or 'read-only'} "
            f"({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_engine() is called here rather than in the lifespan so that running
    # this file as __main__ does not update a second copy of the module.
    lifespan_overrides = {
        k: v
        for k, v in overrides.items()
        if k not in ("log_file", "permissions_file", "read_only")
    }
    async with server_lifespan(
        config_overrides=lifespan_overrides or None
    ) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="jira-sync-mcp",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_engine(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Jira Sync MCP Server - bidirectional task sync with Jira over MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .jira_sync/config.yml)
  jira-sync-mcp

  # Override the Jira site and project
  jira-sync-mcp --domain acme.atlassian.net --project-key ABC

  # Diagnostics only: hide every tool that changes data
  jira-sync-mcp --read-only

  # Custom log file location
  jira-sync-mcp --log-file /var/log/jira-sync-mcp.log

  # Restrict tools by permission
  jira-sync-mcp --permissions-file /etc/jira-sync/view.permissions

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. The API token is read from
JIRA_API_TOKEN only, so it never appears in the process list.
        """,
    )

    parser.add_argument(
        "--domain",
        help="Override Jira site host (takes precedence over JIRA_DOMAIN env var and config files)",
    )
    parser.add_argument(
        "--email",
        help="Override account email (takes precedence over JIRA_EMAIL env var and config files)",
    )
    parser.add_argument(
        "--project-key",
        help="Override Jira project key (takes precedence over JIRA_PROJECT_KEY env var and config files)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/jira-sync-mcp.log",
        help="Log file path (default: /tmp/jira-sync-mcp.log)",
    )
    parser.add_argument(
        "--permissions-file",
        help="Path to permissions file restricting available tools. "
        "Format: one permission per line (SYNC_VIEW, SYNC_RUN, SYNC_ADMIN), # for comments. "
        "If not specified, all tools are available.",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Expose only tools that do not modify local or remote data",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"jira-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {}
    if args.domain:
        config_overrides["domain"] = args.domain
    if args.email:
        config_overrides["email"] = args.email
    if args.project_key:
        config_overrides["project_key"] = args.project_key
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.permissions_file:
        config_overrides["permissions_file"] = args.permissions_file
    if args.read_only:
        config_overrides["read_only"] = True

    if config_overrides:
        print(
            f"Config overrides from CLI: {', '.join(config_overrides)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
