"""Command-line interface for the SOCKS proxy server.

This module provides the command-line interface for the proxy server, handling:
- Command-line argument parsing
- Logging setup
- Server lifecycle
- Error reporting

Example:
    # Run from command line:
    $ socks5-relay serve --port 1080 --idle-timeout 300
    $ python -m socks5_relay serve --host 127.0.0.1 --debug
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from socks5_relay import __version__
from socks5_relay.core.proxy import SessionPolicy, run_server
from socks5_relay.core.utils.log_config import configure_logging

console = Console()
app = typer.Typer(help="SOCKS5 proxy server relaying TCP connections to their targets")


@app.callback(invoke_without_command=True)
def version_callback():
    """Show version information."""
    console.print(f"[cyan]SOCKS5 Relay v{__version__}[/cyan]")


@app.command(name="serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Address to listen on"),
    port: int = typer.Option(1080, "--port", "-p", help="Port to listen on"),
    idle_timeout: float | None = typer.Option(
        None,
        "--idle-timeout",
        help="Drop sessions blocked on I/O for this many seconds (default: never)",
    ),
    log_file: Path | None = typer.Option(None, "--log-file", help="Log file path"),
    debug: bool = typer.Option(
        default=False,
        help="Enable debug logging",
    ),
):
    """Start the SOCKS5 proxy server."""
    if idle_timeout is not None and idle_timeout <= 0:
        console.print("[red]--idle-timeout must be a positive number of seconds")
        raise typer.Exit(1)

    log_path = configure_logging(log_file, debug=debug)
    logger.info(f"Starting SOCKS5 proxy server, logging to {log_path}")

    try:
        run_server(host, port, SessionPolicy(idle_timeout=idle_timeout))
    except OSError as e:
        logger.exception("Error starting proxy server")
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
