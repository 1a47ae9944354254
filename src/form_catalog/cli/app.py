from typing import Optional

import typer

from form_catalog.config import get_config
from form_catalog.utils import setup_logging


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        import form_catalog

        config = get_config()
        typer.echo(f"form-catalog version: {form_catalog.__version__}")
        typer.echo(f"Forms directory: {config.forms_dir}")
        raise typer.Exit()


app = typer.Typer(name="form-catalog")


@app.callback()
def app_callback(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """form-catalog - keep a local form index in step with disk and a remote catalog."""
    if ctx.invoked_subcommand is not None:
        config = get_config()
        setup_logging(level=config.log_level, home=config.home, log_file="form-catalog.log")
