"""
CLI tests using Typer's CliRunner.

The catalog store and the asset locator are swapped for the in-memory fixtures
by patching ``reelvault.cli.context``.
"""

from __future__ import annotations

import json

import httpx
import pytest
from typer.testing import CliRunner

import reelvault.cli.main as cli_main
from reelvault.cli.main import app
from reelvault.client import ReelVaultClient
from reelvault.infra.exceptions import UpstreamError
from reelvault.web.server import create_app

runner = CliRunner()


@pytest.fixture(autouse=True)
def wired(monkeypatch, store, locator):
    monkeypatch.setattr("reelvault.cli.context.get_store", lambda: store)
    monkeypatch.setattr("reelvault.cli.context.get_locator", lambda: locator)


class TestVideoCommands:
    def test_add_and_list(self, store):
        result = runner.invoke(app, ["video", "add", "Clip", "Exhibition/clip.mp4", "--duration", "42"])
        assert result.exit_code == 0
        assert "Added video" in result.output

        result = runner.invoke(app, ["video", "list", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["total"] == 1
        assert payload["videos"][0]["name"] == "Clip"
        assert payload["videos"][0]["duration"] == 42

    def test_empty_list(self):
        result = runner.invoke(app, ["video", "list"])
        assert result.exit_code == 0
        assert "No videos in catalog" in result.output


class TestComicCommands:
    def test_add_json(self):
        result = runner.invoke(app, ["comic", "add", "Issue 1", "Comic/Issue 1", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["comic"]["folderLink"] == "Comic/Issue 1"

    def test_duplicate_name_fails(self):
        runner.invoke(app, ["comic", "add", "Issue 1", "Comic/Issue 1"])
        result = runner.invoke(app, ["comic", "add", "Issue 1", "Comic/Other"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_list(self, store):
        store.add_comic("Issue 1", "Comic/Issue 1")
        result = runner.invoke(app, ["comic", "list"])
        assert result.exit_code == 0
        assert "Comic/Issue 1" in result.output


class TestSyncCommand:
    def test_sync_imports_catalog(self, store, provider):
        result = runner.invoke(app, ["sync", "--json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["videos"]["inserted"] == 2
        assert payload["comics"]["inserted"] == 1
        assert len(store.list_videos()) == 2
        assert provider.aclosed is True

    def test_missing_folder_exits_nonzero(self):
        result = runner.invoke(app, ["sync", "--videos-folder", "Nope"])
        assert result.exit_code == 1
        assert "Nope folder not found in storage root" in result.output

    def test_unauthorized_exits_nonzero(self, provider):
        provider.list_errors = [UpstreamError("forbidden", status=403)]
        result = runner.invoke(app, ["sync"])
        assert result.exit_code == 1


class TestFetchComic:
    @pytest.fixture
    def served(self, monkeypatch, test_settings, store, provider):
        service = create_app(test_settings, store=store, provider=provider)

        def client_for(api):
            http_client = httpx.AsyncClient(
                transport=httpx.ASGITransport(app=service), base_url=api, follow_redirects=False
            )
            return ReelVaultClient(api, http_client=http_client)

        monkeypatch.setattr(cli_main, "ReelVaultClient", client_for)
        return service

    def test_pages_are_saved_in_order(self, served, store, tmp_path):
        comic = store.add_comic("Issue 1", "Comic/Issue 1")
        out = tmp_path / "issue-1"
        result = runner.invoke(app, ["fetch-comic", str(comic.id), "--out", str(out)])

        assert result.exit_code == 0
        assert "Saved 3/3 pages" in result.output
        assert (out / "001.jpg").read_bytes() == b"page-one"
        assert (out / "002.png").read_bytes() == b"page-two"
        assert (out / "003.jpg").read_bytes() == b"page-ten"

    def test_unknown_comic(self, served, tmp_path):
        result = runner.invoke(
            app, ["fetch-comic", "00000000-0000-0000-0000-000000000000", "--out", str(tmp_path)]
        )
        assert result.exit_code == 1

    def test_throttled_listing_exits_2(self, served, store, provider, tmp_path):
        comic = store.add_comic("Issue 1", "Comic/Issue 1")
        provider.list_errors = [UpstreamError("Bandwidth limit exceeded", time_limit=99)]
        result = runner.invoke(app, ["fetch-comic", str(comic.id), "--out", str(tmp_path)])
        assert result.exit_code == 2
        assert "99s" in result.output
