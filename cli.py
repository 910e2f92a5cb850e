#!/usr/bin/env python3
"""
FileShare CLI

Command-line interface for a single-session HTTP file transfer.

Usage:
    python cli.py send FILE_OR_DIR       # Serve a file or directory for download
    python cli.py recv DIR               # Accept uploads into a directory
    python cli.py -p 8080 send FILE      # Fixed port
    python cli.py --auto-exit recv DIR   # Stop after the first transfer ends
"""

import asyncio
import logging
import socket
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.logging import RichHandler

from config import Config, load_config
from fileshare import FileServer, Mode, prepare_target
from fileshare.api import run_api_server
from fileshare.errors import StartupError
from fileshare.utils import calculate_dir_size, format_size, get_local_ips

console = Console()


def setup_logging(verbose: bool = False, level: str = "INFO"):
    """Configure logging with rich output."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the listening socket up front.

    With port 0 the OS picks a free port; binding before printing lets us
    show the real one.
    """
    family = socket.AF_INET6 if ':' in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def describe_target(mode: Mode, path: Path) -> str:
    """Target line for the startup panel."""
    if path.is_dir():
        try:
            size = format_size(calculate_dir_size(path))
        except OSError:
            size = "unknown size"
        kind = "directory" if mode is Mode.SEND else "receive directory"
        return f"[cyan]{path.name}[/cyan] ({kind}, {size})"
    return f"[cyan]{path.name}[/cyan] ({format_size(path.stat().st_size)})"


def print_info(server: FileServer, port: int):
    """Show where the session can be reached."""
    urls = "\n".join(f"   [green]http://{ip}:{port}[/green]" for ip in get_local_ips())
    auto_exit = "\n\n[yellow]Auto-exit enabled[/yellow]" if server.auto_exit else ""
    console.print(Panel.fit(
        f"[bold green]FileShare - Ready[/bold green]\n\n"
        f"Mode: [yellow]{server.mode.value.upper()}[/yellow]\n"
        f"Target: {describe_target(server.mode, server.path)}\n\n"
        f"[bold]URLs:[/bold]\n{urls}"
        f"{auto_exit}\n\n"
        f"[dim]Press Ctrl+C to stop[/dim]",
        title="Session Info"
    ))


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON config file')
@click.option('-p', '--port', type=int, default=None, help='Port to listen on (0 for random)')
@click.option('--host', default=None, help='Address to bind to')
@click.option('--auto-exit', is_flag=True, help='Exit after the transfer ends')
@click.pass_context
def cli(ctx, verbose, config_path, port, host, auto_exit):
    """FileShare - share a file or receive uploads over HTTP."""
    config = load_config(config_path)
    if port is not None:
        config.port = port
    if host is not None:
        config.host = host
    if auto_exit:
        config.auto_exit = True

    try:
        config.validate()
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


def serve(config: Config, mode: Mode, path: str):
    """Validate the target, bind, and run the session until it ends."""
    try:
        target = prepare_target(mode, path)
    except StartupError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    try:
        sock = bind_socket(config.host, config.port)
    except OSError as e:
        console.print(f"[red]Error: cannot listen on {config.host}:{config.port}: {e}[/red]")
        sys.exit(1)

    server = FileServer(
        mode,
        target,
        auto_exit=config.auto_exit,
        chunk_size=config.chunk_size,
        log_capacity=config.log_capacity,
        subscriber_buffer=config.subscriber_buffer,
    )
    print_info(server, sock.getsockname()[1])

    async def run():
        await run_api_server(
            server,
            sock=sock,
            heartbeat_interval=config.heartbeat_interval,
            exit_grace=config.exit_grace,
            log_level=config.log_level.lower(),
        )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    finally:
        sock.close()

    phase = server.status.phase
    if phase.is_terminal:
        colour = "green" if phase.value == "completed" else "red"
        console.print(f"[{colour}]Transfer {phase.value}[/{colour}]")


@cli.command()
@click.argument('path')
@click.pass_context
def send(ctx, path):
    """Serve a file or directory for download."""
    serve(ctx.obj['config'], Mode.SEND, path)


@cli.command()
@click.argument('directory')
@click.pass_context
def recv(ctx, directory):
    """Receive uploaded files into a directory."""
    serve(ctx.obj['config'], Mode.RECV, directory)


if __name__ == '__main__':
    cli()
