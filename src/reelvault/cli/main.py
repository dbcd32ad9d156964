"""
Main CLI application using Typer.

Runs the relay service, manages the catalog, imports the catalog from the
upstream drive, and downloads comics through the client request governor.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path

import typer

from ..client.api import ReelVaultClient
from ..client.banner import RateLimitBanner
from ..client.governor import from_data_url
from ..infra.exceptions import ConfigurationError, NotFoundError, ThrottledError, UnauthorizedError
from ..infra.logging import configure_logging
from ..usecases import catalog_sync
from . import context
from .commands import comic, video

app = typer.Typer(help="ReelVault media relay CLI")

app.add_typer(video.app, name="video", help="Video catalog operations")
app.add_typer(comic.app, name="comic", help="Comic catalog operations")


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(log_level)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: PORT)"),
):
    """Run the HTTP relay service."""
    from ..web.server import run_server

    run_server(host=host, port=port)


@app.command("sync")
def sync(
    videos_folder: str = typer.Option(catalog_sync.VIDEOS_FOLDER, "--videos-folder", help="Drive folder holding videos"),
    comics_folder: str = typer.Option(catalog_sync.COMICS_FOLDER, "--comics-folder", help="Drive folder holding comic folders"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Import videos and comics from the upstream drive into the catalog."""
    store = context.get_store()
    locator = context.get_locator()

    async def _run():
        try:
            return await catalog_sync.sync_all(store, locator, videos_folder, comics_folder)
        finally:
            await locator.provider.aclose()

    try:
        results = asyncio.run(_run())
    except (UnauthorizedError, ConfigurationError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps({name: result.to_dict() for name, result in results.items()}, indent=2))
    else:
        for result in results.values():
            typer.echo(result.message)
            for error in result.errors:
                typer.echo(f"  - {error}")

    if not all(result.success for result in results.values()):
        raise typer.Exit(1)


def _page_filename(index: int, media_type: str) -> str:
    ext = mimetypes.guess_extension(media_type) or ".jpg"
    if ext == ".jpe":
        ext = ".jpg"
    return f"{index:03d}{ext}"


async def _fetch_comic(comic_id: str, api: str, out: Path) -> tuple[int, int]:
    async with ReelVaultClient(api) as client:
        listing = await client.list_pages(comic_id)
        pages = listing.get("data", [])

        banner = RateLimitBanner(client.mirror)
        shown: list[str | None] = [None]

        def render(message: str | None) -> None:
            if message is not None and message != shown[0]:
                typer.echo(message, err=True)
            shown[0] = message

        stop = asyncio.Event()
        watcher = asyncio.create_task(banner.watch(render, stop))
        try:
            results = await asyncio.gather(*(client.fetch_page(comic_id, page["index"]) for page in pages))
        finally:
            stop.set()
            await watcher

    out.mkdir(parents=True, exist_ok=True)
    saved = 0
    for page, result in zip(pages, results):
        if not result.ok or result.payload is None:
            typer.echo(f"  page {page['index']}: skipped ({result.reason})", err=True)
            continue
        media_type, content = from_data_url(result.payload)
        (out / _page_filename(page["index"], media_type)).write_bytes(content)
        saved += 1
    return saved, len(pages)


@app.command("fetch-comic")
def fetch_comic(
    comic_id: str = typer.Argument(..., help="Comic id"),
    api: str = typer.Option("http://127.0.0.1:5000", "--api", help="ReelVault service URL"),
    out: Path = typer.Option(Path("."), "--out", help="Directory to write pages into"),
):
    """Download every page of a comic through the request governor."""
    try:
        saved, total = asyncio.run(_fetch_comic(comic_id, api, out))
    except ThrottledError as exc:
        typer.echo(f"Upstream bandwidth limit reached. Try again in {exc.reset_seconds}s", err=True)
        raise typer.Exit(2)
    except NotFoundError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Saved {saved}/{total} pages to {out}")
    if saved < total:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
