from typing import Optional

import typer

from streamnotes import __version__
from streamnotes.config import init_cli_logging


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        typer.echo(f"streamnotes version: {__version__}")
        raise typer.Exit()


app = typer.Typer(name="streamnotes", help="Markdown notes in a local folder or a local store")


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
    """Streamnotes - browse and edit a markdown vault from the terminal."""
    # Log to file only so command output stays clean
    init_cli_logging()
