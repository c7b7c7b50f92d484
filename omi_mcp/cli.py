"""
Command-line interface for the Omi MCP integration.

Running ``omi-mcp`` without a subcommand starts the MCP server on stdio,
which is how agent hosts launch it. The ``tools`` and ``call`` subcommands
help with trying the integration from a terminal.
"""

import sys
import json
import asyncio
import logging
import click
from typing import Optional, Dict, Any

from omi_mcp import __version__
from omi_mcp.client import create_client
from omi_mcp.config import ConfigManager
from omi_mcp.error_reporting import ErrorReporter, error_context
from omi_mcp.tools import ToolDispatcher, TOOL_SPECS

logger = logging.getLogger(__name__)

class CLIError(Exception):
    """Custom exception for CLI-related errors."""
    pass

def setup_logging(verbose: bool = False, log_level: str = "INFO") -> None:
    """
    Setup logging configuration.

    Everything goes to stderr because stdout is the MCP transport.

    Args:
        verbose: Enable verbose logging output.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    if verbose:
        level = logging.DEBUG
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)
        format_str = "%(levelname)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler(sys.stderr)]
    )

def parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse the JSON object passed with --arguments.

    Raises:
        CLIError: If the value is not a JSON object.
    """
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CLIError(f"--arguments must be valid JSON: {e}")
    if not isinstance(arguments, dict):
        raise CLIError("--arguments must be a JSON object")
    return arguments

def build_dispatcher(config_manager: ConfigManager, verbose: bool) -> ToolDispatcher:
    """Create the client and dispatcher from loaded configuration."""
    logging_settings = config_manager.get_logging_settings()
    error_log_dir = logging_settings.get('error_log_dir')
    reporter = ErrorReporter(
        log_dir=error_log_dir,
        enable_file_logging=bool(error_log_dir),
        verbose=verbose,
    )
    client = create_client(config_manager.get_omi_config())
    return ToolDispatcher(client, error_reporter=reporter)

@click.group(invoke_without_command=True)
@click.option("--config", "-c", help="Path to configuration file (default: ~/.omi-mcp/config.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging on stderr")
@click.version_option(__version__, prog_name="omi-mcp")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """
    Omi MCP - Omi.me memories, action items and conversations for AI agents.

    Without a subcommand the MCP server is started on stdio.

    Examples:

        omi-mcp

        omi-mcp tools

        omi-mcp call get-memories --arguments '{"limit": 5}'
    """
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['verbose'] = verbose

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)

@cli.command("serve")
@click.pass_context
def serve(ctx):
    """Run the MCP server on stdio."""
    from omi_mcp.server import run_stdio_server

    verbose = ctx.obj['verbose']
    reporter = ErrorReporter(verbose=verbose)

    with error_context(reporter, "loading configuration"):
        config_manager = ConfigManager(ctx.obj['config'])
        config_manager.load_config()

    setup_logging(verbose, config_manager.get_logging_settings()['level'])
    dispatcher = build_dispatcher(config_manager, verbose)

    try:
        asyncio.run(run_stdio_server(dispatcher, config_manager.get_server_settings()['name']))
    except KeyboardInterrupt:
        logger.info("Omi.me MCP server stopped")

@cli.command("tools")
def list_tools():
    """List the available tools and their required arguments."""
    for spec in TOOL_SPECS:
        required = spec.required_arguments()
        suffix = f" (requires: {', '.join(required)})" if required else ""
        click.echo(f"{spec.name:<28} {spec.description}{suffix}")

@cli.command("call")
@click.argument("tool_name")
@click.option("--arguments", "-a", "raw_arguments", help="Tool arguments as a JSON object")
@click.option("--show-rate-limit", is_flag=True, help="Print the rate-limit state after the call")
@click.pass_context
def call_tool(ctx, tool_name: str, raw_arguments: Optional[str], show_rate_limit: bool):
    """Invoke one tool and print its result."""
    verbose = ctx.obj['verbose']
    setup_logging(verbose, "WARNING")
    reporter = ErrorReporter(verbose=verbose)

    with error_context(reporter, f"preparing '{tool_name}'"):
        arguments = parse_arguments(raw_arguments)
        config_manager = ConfigManager(ctx.obj['config'])
        config_manager.load_config()
        dispatcher = build_dispatcher(config_manager, verbose)

    try:
        result = asyncio.run(dispatcher.dispatch(tool_name, arguments))
    finally:
        dispatcher.client.close()

    click.echo(result.text)

    if show_rate_limit:
        status = dispatcher.client.get_rate_limit_status()
        click.echo(f"Rate limit: {status.remaining} remaining, resets at {status.reset_at}", err=True)

    if result.is_error:
        sys.exit(1)

def main():
    """Console script entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
