"""Image commands: upload next to a note, find and delete unreferenced images."""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from streamnotes.cli.app import app
from streamnotes.cli.commands.command_utils import (
    DirOption,
    console,
    open_vault,
    resolve_folder,
    resolve_path,
    run_with_cleanup,
)
from streamnotes.cli.commands.notes import fail
from streamnotes.services.exceptions import StreamNotesError


@app.command()
def upload(
    image: Annotated[Path, typer.Argument(help="Image file to add", exists=True, dir_okay=False)],
    note: Annotated[
        Optional[str], typer.Option("--note", help="Store the image beside this note")
    ] = None,
    into: Annotated[Optional[str], typer.Option("--into", help="Target folder")] = None,
    directory: Optional[Path] = DirOption,
):
    """Add an image to the vault and print the markdown to reference it."""
    data = image.read_bytes()

    async def _upload():
        async with open_vault(directory) as adapter:
            if note is not None:
                await adapter.select(resolve_path(adapter, note).id)
                item = await adapter.upload_image(image.name, data)
            else:
                await adapter.select(None)
                item = await adapter.upload_image(
                    image.name, data, parent_id=resolve_folder(adapter, into)
                )
            console.print(f"[green]Saved {adapter.tree.path_of(item.id)}[/green]")
            console.print(f"![{item.name}]({item.name})", markup=False, highlight=False)

    try:
        run_with_cleanup(_upload())
    except StreamNotesError as e:
        fail("Error uploading image", e)


@app.command()
def cleanup(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="List unreferenced images without deleting them"
    ),
    directory: Optional[Path] = DirOption,
):
    """Delete images that no note in their folder mentions."""

    async def _cleanup():
        async with open_vault(directory) as adapter:
            if not dry_run:
                result = await adapter.cleanup_assets()
                for name in result.deleted_names:
                    console.print(f"  [red]-[/red] {name}")
                for failure in result.failed:
                    console.print(f"  [yellow]![/yellow] {failure.name}: {failure.error}")
                return

            report = await adapter.scan_orphans()
            for warning in report.warnings:
                console.print(f"[yellow]{warning}[/yellow]")
            if not report.orphans:
                console.print("No orphaned images found.")
                return
            table = Table(title="Unreferenced images")
            table.add_column("Path", style="cyan")
            for orphan in report.orphans:
                table.add_row(adapter.tree.path_of(orphan.id))
            console.print(table)

    try:
        run_with_cleanup(_cleanup())
    except StreamNotesError as e:
        fail("Error cleaning up images", e)
