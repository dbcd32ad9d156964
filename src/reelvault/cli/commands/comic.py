"""Comic CLI commands."""

from __future__ import annotations

import json

import typer
from sqlalchemy.exc import IntegrityError

from ...catalog.records import serialize_comic
from .. import context

app = typer.Typer(name="comic", help="Comic catalog operations")


@app.command("add")
def add_comic(
    name: str = typer.Argument(..., help="Comic name (unique)"),
    folder_link: str = typer.Argument(..., help="Storage locator of the folder holding the pages"),
    thumbnail: str = typer.Option("", "--thumbnail", help="Thumbnail URL"),
    description: str = typer.Option("", "--description", help="Short description"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Add a comic to the catalog."""
    try:
        comic = context.get_store().add_comic(
            name, folder_link, thumbnail=thumbnail, description=description
        )
    except IntegrityError:
        typer.echo(f"Error: a comic named '{name}' already exists", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps({"status": "ok", "comic": serialize_comic(comic)}, indent=2))
    else:
        typer.echo(f"Added comic {comic.id}  {name}")


@app.command("list")
def list_comics(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List catalog comics, newest first."""
    comics = [serialize_comic(c) for c in context.get_store().list_comics()]

    if json_output:
        typer.echo(json.dumps({"status": "ok", "total": len(comics), "comics": comics}, indent=2))
        raise typer.Exit(0)

    if not comics:
        typer.echo("No comics in catalog")
        raise typer.Exit(0)
    for c in comics:
        typer.echo(f"{c['id']}  {c['name']}  {c['folderLink']}")
