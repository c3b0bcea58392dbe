"""Tests for the Typer CLI."""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mmdb_images import cli
from mmdb_images.appctx import ImageCacheContext
from mmdb_images.errors import TransportError
from mmdb_images.infrastructure.services.disk_store import DiskStore

runner = CliRunner()


class StubTransport:
    def __init__(self, payload: bytes | None):
        self.payload = payload

    def fetch(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        if self.payload is None:
            raise TransportError("HTTP 404", url=url, status_code=404)
        return self.payload


@pytest.fixture()
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"disk": {"directory": str(tmp_path / "images")}}))
    return path


def _use_transport(monkeypatch, transport) -> None:
    monkeypatch.setattr(
        cli,
        "ImageCacheContext",
        lambda config: ImageCacheContext(config=config, transport=transport),
    )


class TestCli:
    def test_info(self, settings_file: Path):
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "info"])
        assert result.exit_code == 0
        assert "memory" in result.output

    def test_fetch_warms_disk(self, settings_file: Path, tmp_path: Path, monkeypatch, png_bytes):
        _use_transport(monkeypatch, StubTransport(png_bytes(8, 8)))
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "fetch", "https://example/a.jpg"])
        assert result.exit_code == 0, result.output
        assert DiskStore(tmp_path / "images").contains("https://example/a.jpg")

    def test_fetch_failure_exits_nonzero(self, settings_file: Path, monkeypatch):
        _use_transport(monkeypatch, StubTransport(None))
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "fetch", "https://example/a.jpg"])
        assert result.exit_code == 1

    def test_poster_resolves_tmdb_url(self, settings_file: Path, tmp_path: Path, monkeypatch, png_bytes):
        _use_transport(monkeypatch, StubTransport(png_bytes(8, 8)))
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "poster", "/abc.jpg"])
        assert result.exit_code == 0, result.output
        assert DiskStore(tmp_path / "images").contains("https://image.tmdb.org/t/p/w500/abc.jpg")

    def test_clean_removes_expired(self, settings_file: Path, tmp_path: Path):
        store = DiskStore(tmp_path / "images")
        store.write("old", b"1").result(timeout=5)
        store.write("new", b"2").result(timeout=5)
        stale = time.time() - 3 * 86400
        os.utime(store.path_for("old"), (stale, stale))

        result = runner.invoke(cli.app, ["--settings", str(settings_file), "clean", "--days", "2"])

        assert result.exit_code == 0
        assert "Removed 1" in result.output
        assert not store.contains("old")
        assert store.contains("new")

    def test_clear(self, settings_file: Path, tmp_path: Path):
        store = DiskStore(tmp_path / "images")
        store.write("k", b"1").result(timeout=5)
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "clear"])
        assert result.exit_code == 0
        assert not store.contains("k")

    def test_invalid_settings_exit_nonzero(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"memory": {"max_entry_count": -1}}))
        result = runner.invoke(cli.app, ["--settings", str(path), "info"])
        assert result.exit_code == 1

    def test_fetch_blank_url_exits_cleanly(self, settings_file: Path, monkeypatch, png_bytes):
        _use_transport(monkeypatch, StubTransport(png_bytes(8, 8)))
        result = runner.invoke(cli.app, ["--settings", str(settings_file), "fetch", "   "])
        assert result.exit_code == 1
        # Exited through the error handler rather than an uncaught traceback.
        assert isinstance(result.exception, SystemExit)
