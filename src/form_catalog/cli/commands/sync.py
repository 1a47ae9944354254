"""Command module for form-catalog scan and sync operations."""

import asyncio
from typing import Optional

import typer
from loguru import logger
from pydantic import SecretStr

from form_catalog.cli.app import app
from form_catalog.cli.commands.command_utils import (
    ConsoleListener,
    console,
    get_services,
    run_task,
)
from form_catalog.config import CatalogConfig, get_config
from form_catalog.sync import TaskKind
from form_catalog.sync.watch_service import WatchService


async def run_scan(config: CatalogConfig) -> bool:
    async with get_services(config) as services:
        outcome = await run_task(services, TaskKind.DISK_SCAN)
        return outcome.ok


async def run_sync(config: CatalogConfig) -> bool:
    if not config.server_url:
        console.print("[red]No server configured. Pass --server or set FORM_CATALOG_SERVER_URL.[/red]")
        return False
    async with get_services(config) as services:
        outcome = await run_task(services, TaskKind.CATALOG_SYNC)
        return outcome.ok and not outcome.result.failures


async def run_watch(config: CatalogConfig) -> None:
    async with get_services(config) as services:
        # pick up anything copied in while we were not watching
        await run_task(services, TaskKind.DISK_SCAN)
        watch_service = WatchService(services.coordinator, config, ConsoleListener(console))
        await watch_service.run()


@app.command()
def scan() -> None:
    """Index form files found in the forms directory."""
    try:
        if not asyncio.run(run_scan(get_config())):
            raise typer.Exit(1)
    except Exception as e:
        if not isinstance(e, typer.Exit):
            logger.exception("Scan failed")
            typer.echo(f"Error during scan: {e}", err=True)
            raise typer.Exit(1)
        raise


@app.command()
def sync(
    server: Optional[str] = typer.Option(None, "--server", "-s", help="Server base URL."),
    list_path: Optional[str] = typer.Option(None, "--list-path", help="Form list path."),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Server username."),
    password: Optional[str] = typer.Option(
        None, "--password", help="Server password.", envvar="FORM_CATALOG_PASSWORD"
    ),
) -> None:
    """Download forms from the remote catalog that are not indexed yet."""
    overrides = {
        "server_url": server,
        "form_list_path": list_path,
        "username": username,
        "password": SecretStr(password) if password is not None else None,
    }
    config = get_config().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    try:
        if not asyncio.run(run_sync(config)):
            raise typer.Exit(1)
    except Exception as e:
        if not isinstance(e, typer.Exit):
            logger.exception("Sync failed")
            typer.echo(f"Error during sync: {e}", err=True)
            raise typer.Exit(1)
        raise


@app.command()
def watch() -> None:
    """Rescan the forms directory whenever form files change."""
    try:
        asyncio.run(run_watch(get_config()))
    except KeyboardInterrupt:  # pragma: no cover
        console.print("Stopped watching")
