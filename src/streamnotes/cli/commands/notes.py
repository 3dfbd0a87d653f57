"""Note and folder commands: browse, search, create, rename, move, delete, edit."""

from pathlib import Path
from typing import Annotated, List, Optional

import typer
from loguru import logger
from rich.text import Text
from rich.tree import Tree

from streamnotes.cli.app import app
from streamnotes.cli.commands.command_utils import (
    DirOption,
    console,
    open_vault,
    resolve_folder,
    resolve_path,
    run_with_cleanup,
)
from streamnotes.schemas import ItemKind, MatchSpan, TreeRow
from streamnotes.services.exceptions import StreamNotesError


def highlight(name: str, spans: List[MatchSpan]) -> Text:
    """Name with matched spans rendered in bold yellow."""
    text = Text(name)
    for span in spans:
        text.stylize("bold yellow", span.start, span.end)
    return text


def build_tree(title: str, rows: List[TreeRow]) -> Tree:
    """Turn depth-annotated rows back into a rich Tree."""
    root = Tree(f"[bold]{title}[/bold]")
    branches = {-1: root}
    for row in rows:
        label = highlight(row.item.name, row.spans)
        if row.item.is_folder:
            label.append("/")
            label.stylize("blue")
        branches[row.depth] = branches[row.depth - 1].add(label)
    return root


def fail(message: str, error: Exception) -> None:
    logger.error(f"{message}: {error}")
    console.print(f"[red]{message}: {error}[/red]")
    raise typer.Exit(code=1)


@app.command()
def tree(
    query: Annotated[str, typer.Option("--query", "-q", help="Only show matching names")] = "",
    directory: Optional[Path] = DirOption,
):
    """Show the note tree (folders and markdown notes)."""

    async def _tree():
        async with open_vault(directory) as adapter:
            rows = adapter.search_service.visible_tree(adapter.tree, query)
            title = directory.name if directory else "notes"
            console.print(build_tree(title, rows))

    try:
        run_with_cleanup(_tree())
    except StreamNotesError as e:
        fail("Error showing tree", e)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Text to look for in item names")],
    directory: Optional[Path] = DirOption,
):
    """List items whose name contains the query (case-insensitive)."""

    async def _search():
        async with open_vault(directory) as adapter:
            result = adapter.search_service.search(adapter.tree.all(), query)
            matched = [
                adapter.tree.require(item_id)
                for item_id in result.matched_ids
                if result.items[item_id].visible
            ]
            if not matched:
                console.print(f"No matches for '{query}'")
                return
            for item in sorted(matched, key=lambda i: adapter.tree.path_of(i.id)):
                path = adapter.tree.path_of(item.id)
                prefix = path[: len(path) - len(item.name)]
                line = Text(prefix, style="dim")
                line.append_text(highlight(item.name, result.items[item.id].spans))
                console.print(line)

    try:
        run_with_cleanup(_search())
    except StreamNotesError as e:
        fail("Error searching", e)


@app.command()
def show(
    path: Annotated[str, typer.Argument(help="Path of the note to print")],
    directory: Optional[Path] = DirOption,
):
    """Print a note's text and list the images beside it."""

    async def _show():
        async with open_vault(directory) as adapter:
            item = resolve_path(adapter, path)
            if item.is_folder:
                raise StreamNotesError(f"{path} is a folder")
            selected = await adapter.select(item.id)
            assets = await adapter.resolve_assets()
            console.print(selected.content or "", markup=False, highlight=False)
            if assets:
                console.print(f"[dim]Images: {', '.join(sorted(assets))}[/dim]")

    try:
        run_with_cleanup(_show())
    except StreamNotesError as e:
        fail("Error showing note", e)


@app.command()
def new(
    parent: Annotated[Optional[str], typer.Argument(help="Folder to create in")] = None,
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="Name to use")] = None,
    folder: bool = typer.Option(False, "--folder", "-f", help="Create a folder"),
    directory: Optional[Path] = DirOption,
):
    """Create a note (or folder). Taken names get a numeric suffix."""

    async def _new():
        async with open_vault(directory) as adapter:
            parent_id = resolve_folder(adapter, parent)
            kind = ItemKind.FOLDER if folder else ItemKind.FILE
            item = await adapter.create_item(kind, parent_id=parent_id, name=name)
            console.print(f"[green]Created {adapter.tree.path_of(item.id)}[/green]")

    try:
        run_with_cleanup(_new())
    except StreamNotesError as e:
        fail("Error creating item", e)


@app.command()
def rename(
    path: Annotated[str, typer.Argument(help="Item to rename")],
    new_name: Annotated[str, typer.Argument(help="New name")],
    directory: Optional[Path] = DirOption,
):
    """Rename a note or folder."""

    async def _rename():
        async with open_vault(directory) as adapter:
            item = resolve_path(adapter, path)
            renamed = await adapter.rename_item(item.id, new_name)
            console.print(f"[green]Renamed to {adapter.tree.path_of(renamed.id)}[/green]")

    try:
        run_with_cleanup(_rename())
    except StreamNotesError as e:
        fail("Error renaming", e)


@app.command()
def mv(
    path: Annotated[str, typer.Argument(help="Item to move")],
    target: Annotated[str, typer.Argument(help="Destination folder ('/' for the root)")],
    directory: Optional[Path] = DirOption,
):
    """Move a note or folder into another folder."""

    async def _mv():
        async with open_vault(directory) as adapter:
            item = resolve_path(adapter, path)
            target_id = resolve_folder(adapter, target.strip("/"))
            moved = await adapter.move_item(item.id, target_id)
            console.print(f"[green]Moved to {adapter.tree.path_of(moved.id)}[/green]")

    try:
        run_with_cleanup(_mv())
    except StreamNotesError as e:
        fail("Error moving", e)


@app.command()
def rm(
    path: Annotated[str, typer.Argument(help="Item to delete")],
    directory: Optional[Path] = DirOption,
):
    """Delete a note, or a folder with everything inside it."""

    async def _rm():
        async with open_vault(directory) as adapter:
            item = resolve_path(adapter, path)
            removed = await adapter.delete_item(item.id)
            console.print(f"[green]Deleted {len(removed)} item(s)[/green]")

    try:
        run_with_cleanup(_rm())
    except StreamNotesError as e:
        fail("Error deleting", e)


@app.command()
def edit(
    path: Annotated[str, typer.Argument(help="Note to overwrite")],
    text: Annotated[Optional[str], typer.Option("--text", "-t", help="New content")] = None,
    source: Annotated[
        Optional[Path],
        typer.Option("--from", help="Read new content from this file", dir_okay=False),
    ] = None,
    directory: Optional[Path] = DirOption,
):
    """Replace a note's content."""
    if (text is None) == (source is None):
        console.print("[red]Give exactly one of --text or --from[/red]")
        raise typer.Exit(code=1)
    content = text if text is not None else source.read_text(encoding="utf-8")

    async def _edit():
        async with open_vault(directory) as adapter:
            item = resolve_path(adapter, path)
            await adapter.update_content(item.id, content)
            console.print(f"[green]Saved {path}[/green]")

    try:
        run_with_cleanup(_edit())
    except StreamNotesError as e:
        fail("Error saving note", e)
