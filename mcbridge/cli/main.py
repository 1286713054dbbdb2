"""
mcbridge CLI - Start the stdio bridge and inspect its tool catalogue.

Run `mcbridge serve` from an assistant's MCP configuration. Stdout carries
protocol frames only; everything human-readable goes to stderr.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from mcbridge import __version__
from mcbridge.core.context import ServerContext
from mcbridge.errors import StartupError
from mcbridge.logging_setup import configure_logging
from mcbridge.protocol.registry import ToolRegistry
from mcbridge.protocol.transport import StdioTransport
from mcbridge.server import BridgeServer
from mcbridge.validation.config import Config, ConfigError

console = Console()
err_console = Console(stderr=True)


def _overrides(log_level: Optional[str], log_file: Optional[str]) -> dict:
    logging_overrides = {}
    if log_level:
        logging_overrides["level"] = log_level
    if log_file:
        logging_overrides["file"] = log_file
    return {"logging": logging_overrides} if logging_overrides else {}


@click.group()
def cli() -> None:
    """
    mcbridge - Safe protocol bridge between an AI assistant and local engines.

    \b
    Examples:
        mcbridge serve --project-root ./infra    # Serve over stdio
        mcbridge tools                           # Show the tool catalogue
    """


@cli.command()
@click.option("--project-root", "-p", default=None, help="Directory the session is rooted at")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Explicit config file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Diagnostic verbosity",
)
@click.option("--log-file", default=None, help="Write diagnostics to this file instead of stderr")
def serve(
    project_root: Optional[str],
    config_path: Optional[Path],
    log_level: Optional[str],
    log_file: Optional[str],
) -> None:
    """Serve the bridge over stdin/stdout until EOF or shutdown."""
    try:
        config = Config.load(config_path, overrides=_overrides(log_level, log_file))
        settings = config.merged
        configure_logging(settings.logging.level, settings.logging.file)
        context = ServerContext.create(settings, config.resolve_project_root(project_root))
    except (ConfigError, StartupError) as exc:
        err_console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    server = BridgeServer(context, StdioTransport.from_stdio())
    sys.exit(server.serve())


@cli.command()
def tools() -> None:
    """List the tools the bridge exposes."""
    table = Table(title="mcbridge tools", show_lines=False, border_style="blue")
    table.add_column("Tool", style="bold cyan")
    table.add_column("Engine", style="dim")
    table.add_column("Destructive")
    table.add_column("Confirm")
    table.add_column("Description", style="white")

    for tool in ToolRegistry().list_tools():
        table.add_row(
            tool.name,
            tool.engine,
            "[yellow]yes[/yellow]" if tool.destructive else "no",
            "[yellow]yes[/yellow]" if tool.requires_confirmation else "-",
            tool.description,
        )
    console.print(table)


@cli.command()
def version() -> None:
    """Show version."""
    console.print(f"mcbridge v{__version__}")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
