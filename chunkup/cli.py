"""
chunkup CLI

Command-line interface for uploading files as components.

Usage:
    chunkup upload FILE            # Upload a file
    chunkup plan SIZE              # Show how a payload of SIZE bytes would be sent
    chunkup config                 # Show the effective configuration
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.logging import RichHandler

from .config import Config, load_config
from .file import FilePayload
from .session import RpcSession
from .transfer import AbortController, BackoffPolicy, Uploader, UploadError, select_plan

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """chunkup - resumable multipart uploads to pre-signed storage."""
    config = load_config(Path(config_path) if config_path else None)
    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--name', '-n', default=None, help='Component name (defaults to the file name)')
@click.option('--component-id', default=None, help='Use this id instead of a generated one')
@click.pass_context
def upload(ctx, file_path, name, component_id):
    """Upload a file."""
    config: Config = ctx.obj['config']
    payload = FilePayload(Path(file_path))
    data = {'id': component_id} if component_id else None

    async def run() -> Optional[str]:
        session = RpcSession(config.server_url, config.api_user, config.api_key)
        controller = AbortController()
        errors = []

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, controller.abort)
        except NotImplementedError:
            pass  # Windows

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            task = progress.add_task(f"Uploading {payload.name}...", total=100)

            try:
                uploader = Uploader(
                    session,
                    payload,
                    name=name,
                    data=data,
                    on_progress=lambda percent: progress.update(task, completed=percent),
                    on_aborted=lambda: progress.update(task, description="Aborting..."),
                    on_error=errors.append,
                    on_cleanup_error=lambda failure: console.print(f"[yellow]{failure}[/yellow]"),
                    signal=controller.signal,
                    max_connections=config.max_concurrent_connections,
                    backoff=BackoffPolicy(
                        max_retries=config.max_retries,
                        base_delay_ms=config.backoff_base_ms,
                    ),
                    timeout=config.connection_timeout,
                    location_id=config.location_id,
                )
                component_id = await uploader.start()
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass
                await session.aclose()

        if errors:
            raise errors[0]
        return component_id

    try:
        component_id = asyncio.run(run())
    except UploadError as e:
        console.print(f"[red]Upload failed: {e}[/red]")
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold green]Upload Complete[/bold green]\n\n"
        f"Name: [cyan]{payload.name}[/cyan]\n"
        f"Size: [yellow]{payload.size:,} bytes[/yellow]\n\n"
        f"[bold]Component ID:[/bold]\n"
        f"[green]{component_id}[/green]",
        title="Uploaded Component"
    ))


@cli.command()
@click.argument('size', type=int)
def plan(size):
    """Show the strategy used for a payload of SIZE bytes."""
    transfer_plan = select_plan(size)
    parts = transfer_plan.part_count if transfer_plan.part_count else 1
    console.print(Panel.fit(
        f"Strategy: [cyan]{transfer_plan.strategy.value}[/cyan]\n"
        f"Chunk size: [yellow]{transfer_plan.chunk_size:,} bytes[/yellow]\n"
        f"Parts: [yellow]{parts}[/yellow]",
        title="Upload Plan"
    ))


@cli.command(name='config')
@click.pass_context
def show_config(ctx):
    """Show the effective configuration."""
    config: Config = ctx.obj['config']
    for key, value in config.to_dict(redact=True).items():
        console.print(f"[bold]{key}[/bold]: {value}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
