#!/usr/bin/env python3
"""
cmdfiles CLI

Command-line interface for moving files to and from a cmdfiles server.

Usage:
    python cli.py config --host HOST --port PORT   # Remember the server
    python cli.py upload --from FILE --to DIR      # Upload a file
    python cli.py down --from PATH --to DIR        # Download a file
    python cli.py delete --from PATH               # Delete a remote path
    python cli.py list --from DIR                  # List a remote directory
    python cli.py serve --port 8081 --root ./public  # Run the server
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress, SpinnerColumn, TextColumn, BarColumn, DownloadColumn,
    TransferSpeedColumn,
)
from rich.logging import RichHandler
from rich.markup import escape

from cmdfiles.config import ClientConfig, ScratchArea, ServerConfig, TransferSettings
from cmdfiles.client import TransferClient
from cmdfiles.errors import CmdfilesError
from cmdfiles.utils import format_size

console = Console()

# Commands that don't talk to a remote server
LOCAL_COMMANDS = ('config', 'serve', 'help')


def setup_logging(verbose: bool = False):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def run_transfer(ctx, operation):
    """
    Run one client operation, turning transfer errors into a red message
    and a non-zero exit.
    """
    config = ctx.obj['config']
    settings = ctx.obj['settings']
    start = time.time()

    async def run():
        async with TransferClient(config, settings) as client:
            return await operation(client)

    try:
        result = asyncio.run(run())
    except CmdfilesError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)

    console.print(f"[dim]------ {time.time() - start:.3f}s ------[/dim]")
    return result


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--scratch-dir', type=click.Path(), default=None,
              help='Scratch directory (config and chunk artifacts)')
@click.option('--chunk-size', type=int, default=None,
              help='Max bytes per upload request (chunks files at or above this size)')
@click.pass_context
def cli(ctx, verbose, scratch_dir, chunk_size):
    """cmdfiles - upload, download, delete and list files on a remote store."""
    setup_logging(verbose)
    ctx.ensure_object(dict)

    scratch = ScratchArea(Path(scratch_dir) if scratch_dir else None)
    if ctx.invoked_subcommand not in LOCAL_COMMANDS:
        scratch.purge()

    settings = TransferSettings()
    if chunk_size:
        settings.max_upload_size = chunk_size
        settings.chunk_threshold = chunk_size

    ctx.obj['scratch'] = scratch
    ctx.obj['config'] = ClientConfig.load(scratch)
    ctx.obj['settings'] = settings


@cli.command()
@click.option('--host', default='localhost', help='Remote host')
@click.option('--port', default='8081', help='Remote port')
@click.pass_context
def config(ctx, host, port):
    """Save the remote host and port."""
    client_config = ctx.obj['config']
    client_config.save(host, port)
    console.print(f"[green]✓ Saved {client_config.base_url}[/green]")


@cli.command()
@click.option('--from', 'source', default='', help='Local file path')
@click.option('--to', 'remote_dir', default='', help='Remote directory')
@click.pass_context
def upload(ctx, source, remote_dir):
    """Upload a local file."""

    def show_chunk(result):
        label = f"chunk {result.index}" if result.index else "file"
        console.print(f"{label} ({format_size(result.size)}): {result.text}", markup=False)

    requests = run_transfer(ctx, lambda client: client.upload(source, remote_dir, show_chunk))
    console.print(f"[green]✓ Uploaded {source} in {requests} request(s)[/green]")


@cli.command()
@click.option('--from', 'remote_path', default='', help='Remote file path')
@click.option('--to', 'local_dir', default='.', help='Local directory')
@click.pass_context
def down(ctx, remote_path, local_dir):
    """Download a remote file."""

    async def operation(client):
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task(f"Downloading {remote_path}", total=None)

            def update_progress(p):
                progress.update(task, total=p.total_size, completed=p.bytes_downloaded)

            return await client.download(remote_path, local_dir, update_progress)

    result = run_transfer(ctx, operation)
    console.print(Panel.fit(
        f"[bold green]SUCCESS[/bold green]\n\n"
        f"From: [cyan]{result.url}[/cyan]\n"
        f"To: [blue]{result.path}[/blue]\n"
        f"Size: [yellow]{result.bytes_downloaded:,} bytes[/yellow]",
        title="Download"
    ))


@cli.command()
@click.option('--from', 'remote_path', default='', help='Remote file path')
@click.pass_context
def delete(ctx, remote_path):
    """Delete a remote file or directory."""
    text = run_transfer(ctx, lambda client: client.delete(remote_path))
    console.print(text, markup=False)


@cli.command('list')
@click.option('--from', 'remote_path', default='', help='Remote directory')
@click.pass_context
def list_files(ctx, remote_path):
    """List a remote directory."""
    text = run_transfer(ctx, lambda client: client.list(remote_path))
    console.print(text, markup=False, highlight=False)


@cli.command()
@click.option('--host', default=None, help='Bind address')
@click.option('-p', '--port', type=int, default=None, help='Listen port')
@click.option('--root', type=click.Path(), default=None, help='Directory to serve')
def serve(host, port, root):
    """Run the file store server."""
    server_config = ServerConfig.from_env()
    if host:
        server_config.host = host
    if port:
        server_config.port = port
    if root:
        server_config.root = Path(root)

    console.print(Panel.fit(
        f"[bold green]File Store Started[/bold green]\n\n"
        f"Listen: [yellow]{server_config.host}:{server_config.port}[/yellow]\n"
        f"Root: [blue]{server_config.root}[/blue]\n"
        f"Max request: [yellow]{format_size(server_config.max_request_size)}[/yellow]",
        title="cmdfiles"
    ))

    from cmdfiles.api import run_api_server

    try:
        asyncio.run(run_api_server(server_config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")


@cli.command('help')
@click.pass_context
def help_command(ctx):
    """Show usage and exit."""
    click.echo(ctx.parent.get_help())
    ctx.exit(2)


if __name__ == '__main__':
    cli()
