"""List command for form-catalog."""

import asyncio
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from form_catalog.cli.app import app
from form_catalog.cli.commands.command_utils import console, get_services
from form_catalog.config import CatalogConfig, get_config
from form_catalog.models import FormRecord
from form_catalog.repository import SortOrder


def display_forms(records: List[FormRecord], console: Console = console) -> None:
    """Render index records as a table."""
    if not records:
        console.print("[yellow]No forms found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Form")
    table.add_column("ID")
    table.add_column("Version")
    table.add_column("Modified")
    table.add_column("File", style="dim")

    for record in records:
        table.add_row(
            record.display_name,
            record.form_id,
            record.version or "-",
            record.last_modified.isoformat(timespec="minutes"),
            record.file_path,
        )
    console.print(table)


async def run_list(
    config: CatalogConfig, filter_text: str, sort: SortOrder, hide_old_versions: bool
) -> List[FormRecord]:
    async with get_services(config) as services:
        return await services.form_repository.query(filter_text, sort, hide_old_versions)


@app.command("list")
def list_forms(
    filter_text: str = typer.Option("", "--filter", "-f", help="Match form names."),
    sort: SortOrder = typer.Option(SortOrder.NAME_ASC, "--sort", help="Sort order."),
    all_versions: Optional[bool] = typer.Option(
        None,
        "--all-versions/--latest-only",
        help="Show every version instead of the newest one per form.",
    ),
) -> None:
    """List indexed forms."""
    config = get_config()
    hide_old_versions = config.hide_old_versions if all_versions is None else not all_versions
    records = asyncio.run(run_list(config, filter_text, sort, hide_old_versions))
    display_forms(records)
