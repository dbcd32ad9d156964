"""
Video CLI commands.

Adds and lists catalog videos. Streaming itself is served by ``reelvault serve``.
"""

from __future__ import annotations

import json

import typer

from ...catalog.records import serialize_video
from .. import context

app = typer.Typer(name="video", help="Video catalog operations")


@app.command("add")
def add_video(
    name: str = typer.Argument(..., help="Display name"),
    link: str = typer.Argument(..., help="Storage locator (path under the drive root or URL)"),
    thumbnail: str = typer.Option("", "--thumbnail", help="Thumbnail URL"),
    duration: int = typer.Option(0, "--duration", help="Duration in seconds"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Add a video to the catalog."""
    video = context.get_store().add_video(name, link, thumbnail=thumbnail, duration=duration)
    if json_output:
        typer.echo(json.dumps({"status": "ok", "video": serialize_video(video)}, indent=2))
    else:
        typer.echo(f"Added video {video.id}  {name}")


@app.command("list")
def list_videos(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List catalog videos, newest first."""
    videos = [serialize_video(v) for v in context.get_store().list_videos()]

    if json_output:
        typer.echo(json.dumps({"status": "ok", "total": len(videos), "videos": videos}, indent=2))
        raise typer.Exit(0)

    if not videos:
        typer.echo("No videos in catalog")
        raise typer.Exit(0)
    for v in videos:
        typer.echo(f"{v['id']}  {v['duration']:>6}s  {v['name']}  {v['link']}")
